import os
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from . import db, factura_pdf, gemini, padron, wsaa, wsfe
from .config import settings
from .errores import ConfiguracionAfipFaltante, GestionError, RegistroNoEncontrado
from .models import (
    ConfiguracionAfip,
    ConfiguracionAfipGuardada,
    ConfiguracionAfipIn,
    Contribuyente,
    EstadoServidor,
    FacturaRequest,
    FacturaResponse,
    GeminiRequest,
    GeminiResponse,
    Proveedor,
    ProveedorIn,
    Vendedor,
    VendedorActivoIn,
    VendedorIn,
)
from .proveedores import filtrar_proveedores, seleccionar_vendedor
from .seguridad import get_usuario_id

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Se ejecuta al iniciar la aplicación
    logger.info("Iniciando aplicación y conectando a la base de datos...")
    db.connect_to_db()
    db.crear_tablas()
    yield
    # Se ejecuta al apagar la aplicación
    logger.info("Cerrando conexiones a la base de datos...")
    db.close_db_connection()


app = FastAPI(
    title="API Gestión Comercial",
    version="1.0",
    description="Proveedores, vendedores y facturación electrónica AFIP",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(','),
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def _http_error(e: GestionError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.mensaje)


def _config_afip(usuario_id: str, sucursal_id: Optional[str]) -> ConfiguracionAfip:
    config = db.obtener_config_afip(usuario_id, sucursal_id)
    if not config:
        raise ConfiguracionAfipFaltante("Falta configurar AFIP: CUIT, Certificado o Clave.")
    return config


@app.get("/", summary="Estado del servicio")
def root():
    return {"mensaje": "API Gestión Comercial funcionando correctamente"}


@app.get("/health", summary="Estado de salud del servicio")
def health_check():
    """Endpoint para verificar que la API está viva."""
    return {"status": "ok"}


# ————————————————————————————————————————————————
# Proveedores
# ————————————————————————————————————————————————
@app.get("/proveedores", response_model=List[Proveedor], tags=["Proveedores"])
def listar_proveedores(
    search: str = "",
    zona: str = "",
    rubro: str = "",
    marca: str = "",
    sucursal_id: Optional[str] = None,
    usuario_id: str = Depends(get_usuario_id),
):
    """Lista de proveedores con el buscador (nombre, CUIT, teléfono) y los filtros avanzados."""
    proveedores = db.listar_proveedores(usuario_id, sucursal_id)
    return filtrar_proveedores(proveedores, search, zona, rubro, marca)


@app.post("/proveedores", response_model=Proveedor, status_code=201, tags=["Proveedores"])
def crear_proveedor(data: ProveedorIn, usuario_id: str = Depends(get_usuario_id)):
    proveedor = db.crear_proveedor(usuario_id, data)
    logger.info("Proveedor agregado: %s", proveedor.nombre)
    return proveedor


@app.put("/proveedores/{proveedor_id}", response_model=Proveedor, tags=["Proveedores"])
def actualizar_proveedor(proveedor_id: int, data: ProveedorIn, usuario_id: str = Depends(get_usuario_id)):
    proveedor = db.actualizar_proveedor(usuario_id, proveedor_id, data)
    if not proveedor:
        raise _http_error(RegistroNoEncontrado("Proveedor no encontrado."))
    return proveedor


@app.delete("/proveedores/{proveedor_id}", status_code=204, tags=["Proveedores"])
def eliminar_proveedor(proveedor_id: int, usuario_id: str = Depends(get_usuario_id)):
    if not db.eliminar_proveedor(usuario_id, proveedor_id):
        raise _http_error(RegistroNoEncontrado("Proveedor no encontrado."))


# ————————————————————————————————————————————————
# Vendedores
# ————————————————————————————————————————————————
@app.get("/vendedores", response_model=List[Vendedor], tags=["Vendedores"])
def listar_vendedores(sucursal_id: Optional[str] = None, usuario_id: str = Depends(get_usuario_id)):
    return db.listar_vendedores(usuario_id, sucursal_id)


@app.post("/vendedores", response_model=Vendedor, status_code=201, tags=["Vendedores"])
def crear_vendedor(data: VendedorIn, usuario_id: str = Depends(get_usuario_id)):
    return db.crear_vendedor(usuario_id, data)


@app.get("/vendedores/activo", response_model=Optional[Vendedor], tags=["Vendedores"])
def obtener_vendedor_activo(sucursal_id: str = "", usuario_id: str = Depends(get_usuario_id)):
    """Vendedor seleccionado en la sucursal, o null si no hay ninguno."""
    vendedor_id = db.obtener_vendedor_activo(usuario_id, sucursal_id)
    if vendedor_id is None:
        return None
    vendedores = db.listar_vendedores(usuario_id)
    return next((v for v in vendedores if v.id == vendedor_id), None)


@app.put("/vendedores/activo", response_model=Vendedor, tags=["Vendedores"])
def seleccionar_vendedor_activo(data: VendedorActivoIn, usuario_id: str = Depends(get_usuario_id)):
    try:
        vendedores = db.listar_vendedores(usuario_id, data.sucursal_id or None)
        vendedor = seleccionar_vendedor(vendedores, data.vendedor_id)
    except GestionError as e:
        raise _http_error(e)
    db.guardar_vendedor_activo(usuario_id, data.sucursal_id, vendedor.id)
    return vendedor


@app.put("/vendedores/{vendedor_id}", response_model=Vendedor, tags=["Vendedores"])
def actualizar_vendedor(vendedor_id: int, data: VendedorIn, usuario_id: str = Depends(get_usuario_id)):
    vendedor = db.actualizar_vendedor(usuario_id, vendedor_id, data)
    if not vendedor:
        raise _http_error(RegistroNoEncontrado("Vendedor no encontrado."))
    return vendedor


@app.delete("/vendedores/{vendedor_id}", status_code=204, tags=["Vendedores"])
def eliminar_vendedor(vendedor_id: int, usuario_id: str = Depends(get_usuario_id)):
    if not db.eliminar_vendedor(usuario_id, vendedor_id):
        raise _http_error(RegistroNoEncontrado("Vendedor no encontrado."))


# ————————————————————————————————————————————————
# AFIP
# ————————————————————————————————————————————————
@app.put(
    "/afip/configuracion",
    response_model=ConfiguracionAfipGuardada,
    summary="Guarda CUIT, certificado y clave (del negocio o de una sucursal)",
    tags=["Factura Electrónica"],
)
def guardar_configuracion_afip(data: ConfiguracionAfipIn, usuario_id: str = Depends(get_usuario_id)):
    """Valida el par certificado/clave antes de guardarlo."""
    try:
        cert, _, produccion = wsaa.preparar_credenciales(data)
    except GestionError as e:
        raise _http_error(e)

    config = ConfiguracionAfip(cuit=data.cuit, cert=data.cert, key=data.key, produccion=data.produccion)
    db.guardar_config_afip(usuario_id, data.sucursal_id, config)
    logger.info("[AFIP] Configuración guardada para CUIT %s (sucursal '%s')", data.cuit, data.sucursal_id)

    return ConfiguracionAfipGuardada(
        cuit=data.cuit,
        sucursal_id=data.sucursal_id,
        entorno="Producción" if produccion else "Homologación",
        vencimiento_certificado=cert.not_valid_after_utc,
    )


@app.post(
    "/afip/facturas",
    response_model=FacturaResponse,
    summary="Emite un comprobante, genera el PDF y lo guarda en BD",
    tags=["Factura Electrónica"],
)
def emitir_factura(data: FacturaRequest, usuario_id: str = Depends(get_usuario_id)):
    resultado_afip = None
    try:
        config = _config_afip(usuario_id, data.sucursal_id)

        # 1) Emitimos el comprobante en AFIP
        resultado_afip = wsfe.emitir_comprobante(data, config)

        # 2) Generamos el QR una sola vez
        url_qr = factura_pdf.construir_url_qr(
            fecha=data.fecha_emision,
            cuit_emisor=config.cuit,
            tipo_cbte=data.tipo_comprobante,
            pto_vta=data.punto_venta,
            nro_cbte=resultado_afip["numero_comprobante"],
            importe=data.total,
            cae=resultado_afip["cae"],
            doc_tipo=data.doc_tipo,
            doc_nro=data.doc_nro
        )
        qr_bytes = factura_pdf.generar_qr(url_qr)

        # 3) Generamos el PDF, pasándole el QR ya generado
        pdf_path = factura_pdf.generar_pdf(data, resultado_afip, config.cuit, qr_bytes)

        # 4) Guardamos en la base de datos
        db.guardar_comprobante(
            usuario_id=usuario_id,
            cuit_emisor=config.cuit,
            data=data,
            resultado=resultado_afip,
            pdf_path=pdf_path,
            qr_bytes=qr_bytes,
        )

        return FacturaResponse(
            cae=resultado_afip["cae"],
            cae_vencimiento=resultado_afip["cae_vencimiento"],
            numero_comprobante=resultado_afip["numero_comprobante"],
            tipo_comprobante=data.tipo_comprobante,
            punto_venta=data.punto_venta,
            resultado=resultado_afip["resultado"],
            pdf=pdf_path
        )
    except Exception as e:
        # Si la emisión fue exitosa pero algo más falló, lo registramos
        # para no perder el CAE.
        if resultado_afip:
            logger.critical(
                "¡FALLO CRÍTICO! Se emitió el CAE pero no se pudo guardar en BD o generar el PDF. "
                f"Datos: {data.model_dump_json()}, Resultado AFIP: {resultado_afip}. Error: {e}"
            )
        else:
            logger.error("[AFIP CAE] Error: %s", e)
        if isinstance(e, GestionError):
            raise _http_error(e)
        raise HTTPException(status_code=500, detail=str(e) or "Error al generar factura")


@app.get(
    "/afip/contribuyentes/{cuit}",
    response_model=Contribuyente,
    summary="Consulta un CUIT en el padrón A13",
    tags=["Factura Electrónica"],
)
def obtener_contribuyente(cuit: str, sucursal_id: Optional[str] = None, usuario_id: str = Depends(get_usuario_id)):
    try:
        config = _config_afip(usuario_id, sucursal_id)
        return padron.consultar_contribuyente(config, cuit)
    except GestionError as e:
        logger.error("[AFIP] Error al obtener contribuyente: %s", e)
        raise _http_error(e)


@app.get(
    "/afip/estado",
    response_model=EstadoServidor,
    summary="Estado de los servidores de AFIP (FEDummy)",
    tags=["Factura Electrónica"],
)
def estado_afip(sucursal_id: Optional[str] = None, usuario_id: str = Depends(get_usuario_id)):
    try:
        config = _config_afip(usuario_id, sucursal_id)
        return wsfe.estado_servidor(config)
    except GestionError as e:
        logger.error("[AFIP Health Check] Error: %s", e)
        raise _http_error(e)


@app.get(
    "/comprobantes/{cuit}/{tipo}/{pto}/{nro}",
    summary="Descarga el PDF de un comprobante existente",
    tags=["Factura Electrónica"],
)
def descargar_pdf(cuit: int, tipo: int, pto: int, nro: int, usuario_id: str = Depends(get_usuario_id)):
    """
    Sirve desde disco:
      comprobantes/{cuit}/factura_{tipo}_{pto:04d}_{nro}.pdf

    Solo si el comprobante fue emitido por el usuario autenticado. Se
    implementa una validación de seguridad para prevenir Path Traversal.
    """
    pdf_path = db.obtener_pdf_comprobante(usuario_id, str(cuit), tipo, pto, nro)
    if not pdf_path:
        raise HTTPException(status_code=404, detail="PDF no encontrado")

    base_dir = os.path.abspath(settings.COMPROBANTES_DIR)
    user_path = os.path.abspath(pdf_path)

    if not user_path.startswith(base_dir + os.sep):
        raise HTTPException(status_code=400, detail="Ruta de archivo inválida.")

    if not os.path.isfile(user_path):
        raise HTTPException(status_code=404, detail="PDF no encontrado")
    return FileResponse(user_path, media_type="application/pdf", filename=os.path.basename(user_path))


# ————————————————————————————————————————————————
# Gemini
# ————————————————————————————————————————————————
@app.post("/gemini", response_model=GeminiResponse, summary="Consulta al asistente", tags=["Asistente"])
def preguntar_gemini(data: GeminiRequest, usuario_id: str = Depends(get_usuario_id)):
    try:
        return GeminiResponse(respuesta=gemini.consultar_gemini(data.prompt))
    except GestionError as e:
        raise _http_error(e)
