from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from io import BytesIO
import qrcode
import base64
import json
import datetime
import os

from .config import settings

URL_QR_AFIP = "https://www.afip.gob.ar/fe/qr/?p="


def construir_url_qr(
    fecha: datetime.date,
    cuit_emisor: str,
    tipo_cbte: int,
    pto_vta: int,
    nro_cbte: int,
    importe: float,
    cae: str,
    doc_tipo: int,
    doc_nro: str
) -> str:
    """URL del QR fiscal (RG 4892): JSON en base64 sobre la URL de AFIP."""
    payload = {
        "ver": 1,
        "fecha": fecha.strftime("%Y-%m-%d"),
        "cuit": int(cuit_emisor),
        "ptoVta": pto_vta,
        "tipoCmp": tipo_cbte,
        "nroCmp": nro_cbte,
        "importe": float(f"{importe:.2f}"),
        "moneda": "PES",
        "ctz": 1,
        "tipoDocRec": doc_tipo,
        "nroDocRec": int(doc_nro or 0),
        "tipoCodAut": "E",
        "codAut": int(cae)
    }
    return URL_QR_AFIP + base64.b64encode(json.dumps(payload).encode()).decode()


def generar_qr(url: str) -> bytes:
    """PNG del QR."""
    img = qrcode.make(url, error_correction=qrcode.constants.ERROR_CORRECT_M)
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def ruta_pdf(cuit_emisor: str, tipo: int, pto_vta: int, nro: int) -> str:
    return os.path.join(
        settings.COMPROBANTES_DIR,
        str(cuit_emisor),
        f"factura_{tipo}_{pto_vta:04d}_{nro}.pdf"
    )


def generar_pdf(data, resultado: dict, cuit_emisor: str, qr_bytes: bytes) -> str:
    """
    Genera un PDF con los datos de la factura y el QR, lo guarda
    en comprobantes/{cuit_emisor}/factura_{tipo}_{pto}_{nro}.pdf
    y devuelve la ruta al archivo.
    """
    nro_cbte = resultado["numero_comprobante"]
    cae      = resultado["cae"]
    cae_vto  = resultado["cae_vencimiento"]

    pdf_path = ruta_pdf(cuit_emisor, data.tipo_comprobante, data.punto_venta, nro_cbte)
    os.makedirs(os.path.dirname(pdf_path), exist_ok=True)

    c = canvas.Canvas(pdf_path, pagesize=A4)
    c.setFont("Helvetica", 12)

    # Datos básicos
    c.drawString(50, 800, f"Comprobante Tipo {data.tipo_comprobante} - Punto de Venta: {data.punto_venta:04d}")
    c.drawString(50, 780, f"CUIT Emisor: {cuit_emisor}")
    c.drawString(50, 760, f"Fecha de Emisión: {data.fecha_emision.strftime('%d/%m/%Y')}")
    c.drawString(50, 740, f"Número: {nro_cbte}")
    c.drawString(50, 720, f"Importe Neto: ${data.neto:.2f}")
    c.drawString(50, 700, f"IVA: ${data.iva:.2f}")
    c.drawString(50, 680, f"Importe Total: ${data.total:.2f}")
    c.drawString(50, 660, f"CAE N°: {cae}")
    if cae_vto:
        c.drawString(50, 640, f"Fecha de Vto. de CAE: {cae_vto.strftime('%d/%m/%Y')}")

    # Insertar QR
    c.drawImage(ImageReader(BytesIO(qr_bytes)), 50, 520, width=100, height=100)
    c.drawString(160, 580, "Comprobante Autorizado")
    c.save()

    return pdf_path
