"""
Fixtures compartidas:
- Cliente HTTP de prueba y headers con bearer token
- Certificados X.509 autofirmados generados al vuelo
- Directorio temporal para la caché de tickets de acceso
"""
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient

from gestion_comercial.config import settings
from gestion_comercial.main import app
from gestion_comercial.models import ConfiguracionAfip
from gestion_comercial.seguridad import create_access_token

USUARIO_ID = "usuario-test"
CUIT_EMISOR = "20123456789"


@pytest.fixture
def client():
    """Cliente HTTP sin lifespan: la BD se reemplaza en cada test."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    token = create_access_token(USUARIO_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def generar_certificado():
    """
    Devuelve una función que genera (cert_pem, key_pem) autofirmados.
    `emisor` es el CN del emisor; `desde`/`hasta` son días relativos a hoy.
    """
    def _generar(emisor="AFIP Testing CA", desde=-1, hasta=30, key=None):
        key = key or rsa.generate_private_key(public_exponent=65537, key_size=2048)
        ahora = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([
                x509.NameAttribute(NameOID.COMMON_NAME, "facturacion"),
                x509.NameAttribute(NameOID.SERIAL_NUMBER, f"CUIT {CUIT_EMISOR}"),
            ]))
            .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, emisor)]))
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(ahora + timedelta(days=desde))
            .not_valid_after(ahora + timedelta(days=hasta))
            .sign(key, hashes.SHA256())
        )
        cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
        key_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        ).decode()
        return cert_pem, key_pem

    return _generar


@pytest.fixture
def config_afip(generar_certificado):
    cert_pem, key_pem = generar_certificado()
    return ConfiguracionAfip(cuit=CUIT_EMISOR, cert=cert_pem, key=key_pem, produccion=False)


@pytest.fixture(autouse=True)
def directorios_temporales(tmp_path, monkeypatch):
    """TA y PDFs siempre en un directorio temporal."""
    monkeypatch.setattr(settings, "TA_PATH", str(tmp_path / "ta"))
    monkeypatch.setattr(settings, "COMPROBANTES_DIR", str(tmp_path / "comprobantes"))
    return tmp_path


def login_ticket_response(token="TOKEN", sign="SIGN", horas=12):
    """loginTicketResponse como lo devuelve WSAA."""
    ahora = datetime.now(timezone.utc).replace(microsecond=0)
    return f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<loginTicketResponse version="1.0">
    <header>
        <source>CN=wsaahomo, O=AFIP, C=AR, SERIALNUMBER=CUIT 33693450239</source>
        <destination>SERIALNUMBER=CUIT {CUIT_EMISOR}, CN=facturacion</destination>
        <uniqueId>1234567890</uniqueId>
        <generationTime>{ahora.isoformat()}</generationTime>
        <expirationTime>{(ahora + timedelta(hours=horas)).isoformat()}</expirationTime>
    </header>
    <credentials>
        <token>{token}</token>
        <sign>{sign}</sign>
    </credentials>
</loginTicketResponse>"""
