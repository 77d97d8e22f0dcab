import base64
import json
from datetime import date

from gestion_comercial import factura_pdf
from gestion_comercial.models import FacturaRequest

from .conftest import CUIT_EMISOR


def _payload_qr(url: str) -> dict:
    assert url.startswith(factura_pdf.URL_QR_AFIP)
    return json.loads(base64.b64decode(url[len(factura_pdf.URL_QR_AFIP):]))


def test_url_qr():
    url = factura_pdf.construir_url_qr(
        fecha=date(2025, 3, 14),
        cuit_emisor=CUIT_EMISOR,
        tipo_cbte=1,
        pto_vta=3,
        nro_cbte=42,
        importe=1210.5,
        cae="75123456789012",
        doc_tipo=80,
        doc_nro="30712345678",
    )

    assert _payload_qr(url) == {
        "ver": 1,
        "fecha": "2025-03-14",
        "cuit": 20123456789,
        "ptoVta": 3,
        "tipoCmp": 1,
        "nroCmp": 42,
        "importe": 1210.5,
        "moneda": "PES",
        "ctz": 1,
        "tipoDocRec": 80,
        "nroDocRec": 30712345678,
        "tipoCodAut": "E",
        "codAut": 75123456789012,
    }


def test_url_qr_consumidor_final_sin_documento():
    url = factura_pdf.construir_url_qr(date(2025, 3, 14), CUIT_EMISOR, 6, 1, 1, 100, "1", 99, "")
    assert _payload_qr(url)["nroDocRec"] == 0


def test_generar_qr_devuelve_png():
    assert factura_pdf.generar_qr("https://www.afip.gob.ar/fe/qr/?p=e30=").startswith(b"\x89PNG\r\n\x1a\n")


def test_generar_pdf(directorios_temporales):
    data = FacturaRequest(
        ptoVta=2, cbteTipo=11, importeTotal=500, importeNeto=500,
        fecha_emision=date(2025, 3, 14),
    )
    resultado = {"numero_comprobante": 9, "cae": "75123456789012", "cae_vencimiento": date(2025, 3, 24)}
    qr = factura_pdf.generar_qr("https://www.afip.gob.ar/fe/qr/?p=e30=")

    ruta = factura_pdf.generar_pdf(data, resultado, CUIT_EMISOR, qr)

    esperado = directorios_temporales / "comprobantes" / CUIT_EMISOR / "factura_11_0002_9.pdf"
    assert ruta == str(esperado)
    assert esperado.read_bytes().startswith(b"%PDF")
