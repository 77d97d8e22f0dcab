import logging

from zeep.exceptions import Fault
from zeep.helpers import serialize_object

from . import wsaa
from .config import settings
from .errores import AfipError, ContribuyenteNoEncontrado
from .models import ConfiguracionAfip

logger = logging.getLogger(__name__)

SERVICE = "ws_sr_padron_a13"

IMPUESTO_IVA = "30"
IMPUESTO_IVA_EXENTO = "32"


def _deep_get(d, key):
    """Busca 'key' en cualquier nivel de un dict/list anidado."""
    if isinstance(d, dict):
        if key in d and d[key] is not None:
            return d[key]
        for v in d.values():
            r = _deep_get(v, key)
            if r is not None:
                return r
    elif isinstance(d, list):
        for v in d:
            r = _deep_get(v, key)
            if r is not None:
                return r
    return None


def _impuestos(persona: dict) -> list:
    encontrados = []

    def recorrer(nodo):
        if isinstance(nodo, dict):
            if "idImpuesto" in nodo or "descripcionImpuesto" in nodo:
                encontrados.append(nodo)
            for v in nodo.values():
                recorrer(v)
        elif isinstance(nodo, list):
            for v in nodo:
                recorrer(v)

    recorrer(persona)
    return encontrados


def nombre_contribuyente(persona: dict) -> str:
    razon_social = _deep_get(persona, "razonSocial")
    if razon_social:
        return str(razon_social).strip()
    apellido = _deep_get(persona, "apellido") or ""
    nombre = _deep_get(persona, "nombre") or ""
    return f"{apellido} {nombre}".strip()


def domicilio_contribuyente(persona: dict) -> str:
    partes = [
        _deep_get(persona, "direccion"),
        _deep_get(persona, "localidad"),
        _deep_get(persona, "descripcionProvincia"),
    ]
    return ", ".join(str(p).strip() for p in partes if p and str(p).strip())


def clasificar_responsable(persona: dict) -> str:
    """Condición frente al IVA; RI tiene prioridad sobre monotributo y exento."""
    impuestos = _impuestos(persona)
    ids = {str(i.get("idImpuesto")) for i in impuestos}
    descripciones = {str(i.get("descripcionImpuesto") or "").upper() for i in impuestos}

    if IMPUESTO_IVA in ids or "IVA" in descripciones:
        return "Responsable Inscripto"
    if _deep_get(persona, "datosMonotributo") is not None or _deep_get(persona, "monotributo") is not None:
        return "Responsable Monotributo"
    if IMPUESTO_IVA_EXENTO in ids or "IVA EXENTO" in descripciones:
        return "Exento"
    return "Consumidor Final"


def consultar_contribuyente(config: ConfiguracionAfip, cuit: str) -> dict:
    """
    Consulta el padrón A13 (getPersona) y devuelve nombre, domicilio,
    condición frente al IVA y CUIT consultado.
    """
    cuit_consultado = "".join(c for c in str(cuit) if c.isdigit())
    ticket = wsaa.obtener_ticket(config, SERVICE)

    logger.info(
        "[AFIP] Consultando CUIT %s en entorno: %s",
        cuit_consultado, "PRODUCCIÓN" if ticket.produccion else "HOMOLOGACIÓN",
    )

    wsdl = settings.PADRON_WSDL_PROD if ticket.produccion else settings.PADRON_WSDL_HOMO
    client = wsaa.crear_cliente(wsdl, ticket.produccion)
    try:
        respuesta = client.service.getPersona(
            token=ticket.token,
            sign=ticket.sign,
            cuitRepresentada=int(config.cuit),
            idPersona=int(cuit_consultado),
        )
    except Fault as e:
        if "no presente en padron" in (e.message or "").lower():
            raise ContribuyenteNoEncontrado("El CUIT ingresado no existe.") from e
        raise AfipError(f"AFIP Error: {e.message}") from e

    data = serialize_object(respuesta, dict) or {}
    persona = data.get("persona") or data

    return {
        "nombre": nombre_contribuyente(persona),
        "domicilio": domicilio_contribuyente(persona),
        "tipo": clasificar_responsable(persona),
        "cuit": cuit_consultado,
    }
