import os
import base64
import datetime
import logging
import ssl
import tempfile
from datetime import timezone

from lxml import etree
from zeep import Client
from zeep.exceptions import Fault
from zeep.transports import Transport
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.poolmanager import PoolManager
from cryptography import x509
from cryptography.hazmat.primitives import serialization, hashes
from cryptography.hazmat.primitives.serialization import pkcs7

from .config import settings
from .errores import CertificadoInvalido, WsaaError
from .models import ConfiguracionAfip, TicketAcceso
from .pem import es_solicitud_certificado, limpiar_pem

logger = logging.getLogger(__name__)


# ——————————————————————————————————————————————————————————————
# Adapter para inyectar nuestro SSLContext en urllib3 (requests)
# ——————————————————————————————————————————————————————————————
class TLSAdapter(HTTPAdapter):
    def __init__(self, ssl_context: ssl.SSLContext, **kwargs):
        self.ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False):
        self.poolmanager = PoolManager(
            num_pools=connections,
            maxsize=maxsize,
            block=block,
            ssl_context=self.ssl_context
        )


def get_afip_ssl_context(produccion: bool) -> ssl.SSLContext:
    """
    En homologación baja OpenSSL a SECLEVEL=1 (los servidores de prueba
    todavía negocian DHE-1024); en producción deja el contexto por defecto.
    """
    ctx = ssl.create_default_context()
    if not produccion:
        ctx.set_ciphers("DEFAULT@SECLEVEL=1")
    return ctx


def crear_cliente(wsdl: str, produccion: bool) -> Client:
    """Cliente zeep montado sobre nuestro TLSAdapter."""
    session = Session()
    session.mount("https://", TLSAdapter(get_afip_ssl_context(produccion)))
    transport = Transport(session=session, timeout=settings.AFIP_TIMEOUT)
    return Client(wsdl=wsdl, transport=transport)


# ——————————————————————————————————————————————————————————————
def create_tra(service: str, ttl: datetime.timedelta | None = None) -> bytes:
    """
    Crea el XML de loginTicketRequest para WSAA:
      - uniqueId: epoch UTC en segundos
      - generationTime: UTC actual - 10 minutos (tolera relojes desfasados)
      - expirationTime: UTC actual + ttl
      - service: nombre del servicio (ej. 'wsfe')
    """
    if ttl is None:
        ttl = datetime.timedelta(minutes=settings.TRA_TTL_MINUTOS)

    now_utc = datetime.datetime.now(timezone.utc).replace(microsecond=0)
    gen_time = now_utc - datetime.timedelta(minutes=10)
    exp_time = now_utc + ttl

    tra = etree.Element("loginTicketRequest", version="1.0")
    header = etree.SubElement(tra, "header")
    etree.SubElement(header, "uniqueId").text = str(int(now_utc.timestamp()))
    etree.SubElement(header, "generationTime").text = gen_time.isoformat()
    etree.SubElement(header, "expirationTime").text = exp_time.isoformat()
    etree.SubElement(tra, "service").text = service

    return etree.tostring(
        tra,
        pretty_print=True,
        xml_declaration=True,
        encoding="UTF-8"
    )


# ——————————————————————————————————————————————————————————————
def cargar_credenciales(cert_pem: str, key_pem: str):
    """Devuelve (certificado, clave privada) a partir del texto PEM."""
    try:
        cert = x509.load_pem_x509_certificate(cert_pem.encode())
        key = serialization.load_pem_private_key(key_pem.encode(), password=None)
    except (ValueError, TypeError) as e:
        raise CertificadoInvalido("Formato PEM inválido.") from e
    return cert, key


def verificar_par(cert, key, ahora: datetime.datetime | None = None) -> None:
    """Valida vigencia del certificado y que la clave privada le corresponda."""
    ahora = ahora or datetime.datetime.now(timezone.utc)
    if cert.not_valid_after_utc < ahora:
        raise CertificadoInvalido("Certificado expirado.")
    if cert.not_valid_before_utc > ahora:
        raise CertificadoInvalido("Certificado aún no válido.")

    spki = serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    if cert.public_key().public_bytes(*spki) != key.public_key().public_bytes(*spki):
        raise CertificadoInvalido("Certificado y Clave no coinciden.")


def detectar_entorno(cert, produccion: bool) -> bool:
    """
    El emisor del certificado manda sobre la configuración: un certificado
    de homologación no sirve contra producción y viceversa.
    """
    emisor = cert.issuer.rfc4514_string().lower()
    if "produccion" in emisor or "computadores" in emisor:
        if not produccion:
            logger.info("[WSAA] Certificado de producción: se usa entorno de producción")
        return True
    if "homologacion" in emisor or "testing" in emisor:
        if produccion:
            logger.info("[WSAA] Certificado de homologación: se usa entorno de homologación")
        return False
    return produccion


# ——————————————————————————————————————————————————————————————
def sign_tra(tra_xml: bytes, cert, key) -> str:
    """
    Firma el TRA en memoria (CMS SignedData con el contenido adjunto) y
    devuelve el DER en base64 sin saltos de línea, que es lo que espera
    loginCms.
    """
    signed_data = (
        pkcs7.PKCS7SignatureBuilder()
        .set_data(tra_xml)
        .add_signer(cert, key, hashes.SHA256())
        .sign(serialization.Encoding.DER, [pkcs7.PKCS7Options.Binary])
    )
    return base64.b64encode(signed_data).decode("ascii")


# ——————————————————————————————————————————————————————————————
def parsear_ticket(xml: str, produccion: bool) -> TicketAcceso:
    """Extrae token, sign y vencimiento de un loginTicketResponse."""
    try:
        root = etree.fromstring(xml.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise WsaaError("No se pudo extraer el Token.") from e

    token = root.findtext(".//token")
    sign = root.findtext(".//sign")
    vencimiento = root.findtext(".//expirationTime")

    if not token or not sign:
        raise WsaaError("No se pudo extraer el Token.")

    if vencimiento:
        expiracion = datetime.datetime.fromisoformat(vencimiento.strip())
        if expiracion.tzinfo is None:
            expiracion = expiracion.replace(tzinfo=timezone.utc)
    else:
        # AFIP emite los TA por 12 horas
        expiracion = datetime.datetime.now(timezone.utc) + datetime.timedelta(hours=12)

    return TicketAcceso(
        token=token.strip(),
        sign=sign.strip(),
        expiracion=expiracion,
        produccion=produccion,
    )


def call_wsaa(cms: str, produccion: bool) -> str:
    """Llama a WSAA.loginCms y devuelve el loginTicketResponse (XML)."""
    wsdl = settings.WSAA_WSDL_PROD if produccion else settings.WSAA_WSDL_HOMO
    client = crear_cliente(wsdl, produccion)
    try:
        return client.service.loginCms(cms)
    except Fault as e:
        raise WsaaError(f"AFIP RECHAZÓ EL PEDIDO: {e.message}") from e


# ——————————————————————————————————————————————————————————————
class TicketCache:
    """
    Guarda el loginTicketResponse en disco, un archivo por CUIT, servicio
    y entorno. AFIP rechaza un nuevo loginCms mientras el TA anterior siga
    vigente, así que hay que reutilizarlo.
    """

    def __init__(self, directorio: str, margen: datetime.timedelta):
        self.directorio = directorio
        self.margen = margen

    def _path(self, cuit: str, service: str, produccion: bool) -> str:
        entorno = "prod" if produccion else "homo"
        return os.path.join(self.directorio, f"TA-{cuit}-{service}-{entorno}.xml")

    def obtener(self, cuit: str, service: str, produccion: bool) -> TicketAcceso | None:
        path = self._path(cuit, service, produccion)
        try:
            with open(path, encoding="utf-8") as f:
                xml = f.read()
        except FileNotFoundError:
            return None
        try:
            ticket = parsear_ticket(xml, produccion)
        except WsaaError:
            logger.warning("[WSAA] TA en caché ilegible, se descarta: %s", path)
            self._borrar(path)
            return None
        if ticket.expiracion - self.margen <= datetime.datetime.now(timezone.utc):
            return None
        return ticket

    def guardar(self, cuit: str, service: str, produccion: bool, xml: str) -> None:
        """Escribe en un temporal y lo reemplaza, nunca se lee un TA a medio escribir."""
        os.makedirs(self.directorio, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directorio, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(xml)
            os.replace(tmp, self._path(cuit, service, produccion))
        except OSError:
            self._borrar(tmp)
            raise

    def invalidar(self, cuit: str, service: str, produccion: bool) -> None:
        self._borrar(self._path(cuit, service, produccion))

    @staticmethod
    def _borrar(path: str) -> None:
        # Otro worker pudo haberlo borrado antes
        try:
            os.remove(path)
        except FileNotFoundError:
            pass


def get_cache() -> TicketCache:
    return TicketCache(
        settings.TA_PATH,
        datetime.timedelta(minutes=settings.TA_MARGEN_MINUTOS),
    )


# ——————————————————————————————————————————————————————————————
def preparar_credenciales(config: ConfiguracionAfip):
    """
    Normaliza y valida los PEM de la configuración. Devuelve
    (certificado, clave, produccion) con el entorno ya corregido según
    el emisor del certificado.
    """
    if es_solicitud_certificado(config.cert):
        raise CertificadoInvalido("Es un CSR, no un Certificado.")
    try:
        cert_pem = limpiar_pem(config.cert)
        key_pem = limpiar_pem(config.key)
    except ValueError as e:
        raise CertificadoInvalido("Formato PEM inválido.") from e

    cert, key = cargar_credenciales(cert_pem, key_pem)
    verificar_par(cert, key)
    return cert, key, detectar_entorno(cert, config.produccion)


def obtener_ticket(config: ConfiguracionAfip, service: str) -> TicketAcceso:
    """
    Para una configuración dada devuelve un TA vigente para `service`:
    reutiliza el de la caché o genera el TRA, lo firma y llama a WSAA.
    """
    cert, key, produccion = preparar_credenciales(config)

    cache = get_cache()
    ticket = cache.obtener(config.cuit, service, produccion)
    if ticket:
        return ticket

    logger.info(
        "[WSAA] Solicitando TA para %s (CUIT %s, %s)",
        service, config.cuit, "PRODUCCIÓN" if produccion else "HOMOLOGACIÓN",
    )
    tra = create_tra(service)
    cms = sign_tra(tra, cert, key)
    xml = call_wsaa(cms, produccion)
    ticket = parsear_ticket(xml, produccion)
    cache.guardar(config.cuit, service, produccion, xml)
    return ticket


def invalidar_ticket(config: ConfiguracionAfip, service: str, produccion: bool) -> None:
    get_cache().invalidar(config.cuit, service, produccion)
