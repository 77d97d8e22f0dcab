import re

# Orden importante: "RSA PRIVATE KEY" contiene "PRIVATE KEY" y
# "CERTIFICATE REQUEST" contiene "CERTIFICATE".
TIPOS_PEM = ("RSA PRIVATE KEY", "PRIVATE KEY", "CERTIFICATE REQUEST", "CERTIFICATE")


def tipo_pem(pem: str) -> str | None:
    for tipo in TIPOS_PEM:
        if tipo in pem:
            return tipo
    return None


def es_solicitud_certificado(pem: str) -> bool:
    """Un CSR no sirve para firmar el TRA; suele cargarse por error."""
    return "REQUEST" in (pem or "")


def limpiar_pem(pem: str) -> str:
    """
    Normaliza un PEM pegado a mano:
      - acepta delimitadores con 4 o 5 guiones y espacios internos
      - quita todo espacio/salto de línea del cuerpo
      - reescribe el cuerpo en líneas de 64 caracteres con delimitadores
        de 5 guiones
    Si no reconoce el tipo devuelve el texto sin cambios; si reconoce el
    tipo pero no sus delimitadores (p. ej. EC PRIVATE KEY) lanza ValueError.
    """
    if not pem:
        return ""

    tipo = tipo_pem(pem)
    if tipo is None:
        return pem

    etiqueta = r"\s+".join(map(re.escape, tipo.split()))
    inicio = re.compile(rf"-{{4,5}}\s*BEGIN\s+{etiqueta}\s*-{{4,5}}")
    fin = re.compile(rf"-{{4,5}}\s*END\s+{etiqueta}\s*-{{4,5}}")
    if not inicio.search(pem) or not fin.search(pem):
        raise ValueError(f"Delimitadores {tipo} no reconocidos.")

    cuerpo = re.sub(r"\s", "", fin.sub("", inicio.sub("", pem)))
    if not cuerpo:
        raise ValueError(f"El bloque {tipo} no tiene contenido.")

    lineas = [cuerpo[i:i + 64] for i in range(0, len(cuerpo), 64)]
    return f"-----BEGIN {tipo}-----\n" + "\n".join(lineas) + f"\n-----END {tipo}-----"
