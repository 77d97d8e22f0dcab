import logging

import requests

from .config import settings
from .errores import GeminiError, GeminiNoConfigurado

logger = logging.getLogger(__name__)


def consultar_gemini(prompt: str) -> str:
    """Envía el prompt a Gemini (generateContent) y devuelve el texto de la respuesta."""
    if not settings.GEMINI_API_KEY:
        raise GeminiNoConfigurado("Falta configurar GEMINI_API_KEY.")

    url = f"{settings.GEMINI_URL}/{settings.GEMINI_MODEL}:generateContent"
    try:
        r = requests.post(
            url,
            params={"key": settings.GEMINI_API_KEY},
            json={"contents": [{"parts": [{"text": prompt}]}]},
            timeout=60,
        )
        r.raise_for_status()
    except requests.RequestException as e:
        logger.error("Error al llamar a Gemini: %s", e)
        raise GeminiError("No se pudo obtener respuesta de Gemini.") from e

    try:
        partes = r.json()["candidates"][0]["content"]["parts"]
    except (ValueError, KeyError, IndexError) as e:
        raise GeminiError("Respuesta de Gemini sin contenido.") from e
    return "".join(p.get("text", "") for p in partes)
