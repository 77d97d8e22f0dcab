import datetime
import logging

from zeep.exceptions import Fault
from zeep.helpers import serialize_object

from . import wsaa
from .config import settings
from .errores import AfipError, AfipFault, ComprobanteRechazado, TicketVencido
from .models import ConfiguracionAfip, FacturaRequest, TicketAcceso

logger = logging.getLogger(__name__)

# Nombre del servicio AFIP (no cambia)
SERVICE = "wsfe"

# Error 600: ValidacionDeToken (token/sign vencido o no válido)
CODIGO_TOKEN_INVALIDO = 600

# Aviso informativo que AFIP adjunta a Errors y tapa el motivo real
AVISO_INFORMATIVO = "El dia 6 de abril"

# Notas de crédito/débito -> factura de la misma letra
FACTURA_DE_NOTA = {
    2: 1, 3: 1,     # A
    7: 6, 8: 6,     # B
    12: 11, 13: 11, # C
}


def _cliente(produccion: bool):
    wsdl = settings.WSFE_WSDL_PROD if produccion else settings.WSFE_WSDL_HOMO
    return wsaa.crear_cliente(wsdl, produccion)


def _auth(ticket: TicketAcceso, cuit: str) -> dict:
    return {"Token": ticket.token, "Sign": ticket.sign, "Cuit": cuit}


def _mensajes(bloque, clave: str) -> list:
    """Lista de dicts {Code, Msg} de Errors/Err, Observaciones/Obs o Events/Evt."""
    if not bloque:
        return []
    items = bloque.get(clave) or []
    if isinstance(items, dict):
        items = [items]
    return items


def _verificar_token(respuesta: dict) -> None:
    for err in _mensajes(respuesta.get("Errors"), "Err"):
        if err.get("Code") == CODIGO_TOKEN_INVALIDO:
            raise TicketVencido(err.get("Msg") or "Token o firma no válidos.")


def _loguear_eventos(respuesta: dict) -> None:
    for evt in _mensajes(respuesta.get("Events"), "Evt"):
        logger.warning("[AFIP] Evento %s: %s", evt.get("Code"), evt.get("Msg"))


# ------------------------------------------------------------
def condicion_iva_receptor(doc_tipo: int) -> int | None:
    """Condición IVA del receptor (RG 5616) deducida del tipo de documento."""
    if doc_tipo == 80:
        return 1    # Responsable Inscripto
    if doc_tipo in (99, 96):
        return 5    # Consumidor Final
    return None


def armar_detalle(data: FacturaRequest, numero: int, fecha: datetime.date) -> dict:
    """Arma el FECAEDetRequest para un único comprobante."""
    neto = round(data.neto, 2)
    iva = round(data.iva, 2)
    fecha_cbte = fecha.strftime("%Y%m%d")

    detalle = {
        "Concepto":   data.concepto,
        "DocTipo":    data.doc_tipo,
        "DocNro":     data.doc_nro,
        "CbteDesde":  numero,
        "CbteHasta":  numero,
        "CbteFch":    fecha_cbte,
        "ImpTotal":   round(data.total, 2),
        "ImpTotConc": 0.00,
        "ImpNeto":    neto,
        "ImpOpEx":    round(data.exento, 2),
        "ImpTrib":    0.00,
        "ImpIVA":     iva,
        "MonId":      "PES",
        "MonCotiz":   1,
    }

    # Las fechas de servicio solo aplican a concepto 2 y 3
    if data.fecha_servicio_desde:
        detalle["FchServDesde"] = data.fecha_servicio_desde
    if data.fecha_servicio_hasta:
        detalle["FchServHasta"] = data.fecha_servicio_hasta
    if data.fecha_vencimiento_pago:
        detalle["FchVtoPago"] = data.fecha_vencimiento_pago

    condicion = condicion_iva_receptor(data.doc_tipo)
    if condicion is not None:
        detalle["CondicionIVAReceptorId"] = condicion

    if iva > 0:
        detalle["Iva"] = {
            "AlicIva": [
                {"Id": 5, "BaseImp": neto, "Importe": iva}
            ]
        }

    # Notas de crédito/débito deben referenciar un comprobante o un período (error 10197)
    factura_asociada = FACTURA_DE_NOTA.get(data.tipo_comprobante)
    if factura_asociada is not None:
        if data.cbte_asoc_nro and data.cbte_asoc_nro > 0:
            detalle["CbtesAsoc"] = {
                "CbteAsoc": [{
                    "Tipo":   factura_asociada,
                    "PtoVta": data.punto_venta,
                    "Nro":    data.cbte_asoc_nro,
                }]
            }
        else:
            detalle["PeriodoAsoc"] = {"FchDesde": fecha_cbte, "FchHasta": fecha_cbte}

    return detalle


def procesar_respuesta_cae(respuesta: dict) -> dict:
    """
    Interpreta la respuesta de FECAESolicitar ya serializada a dict.
    Devuelve cae, cae_vencimiento y resultado, o lanza ComprobanteRechazado.
    """
    _verificar_token(respuesta)
    _loguear_eventos(respuesta)

    errores = [e.get("Msg") or "" for e in _mensajes(respuesta.get("Errors"), "Err")]
    if errores:
        reales = [m for m in errores if AVISO_INFORMATIVO not in m]
        if not reales:
            raise ComprobanteRechazado(f"AFIP: {errores[0] or 'Error desconocido'}")
        raise ComprobanteRechazado(f"Rechazo AFIP: {' | '.join(reales)}")

    detalles = ((respuesta.get("FeDetResp") or {}).get("FECAEDetResponse")) or []
    if isinstance(detalles, dict):
        detalles = [detalles]
    det = detalles[0] if detalles else {}

    cae = det.get("CAE")
    resultado = det.get("Resultado") or "A"
    if not cae or resultado == "R":
        obs = [o.get("Msg") or "" for o in _mensajes(det.get("Observaciones"), "Obs")]
        motivo = " | ".join(m for m in obs if m) or "sin motivo informado"
        raise ComprobanteRechazado(f"Factura rechazada: {motivo}")

    vencimiento = det.get("CAEFchVto")
    return {
        "cae": str(cae),
        "cae_vencimiento": datetime.datetime.strptime(vencimiento, "%Y%m%d").date() if vencimiento else None,
        "resultado": resultado,
    }


# ------------------------------------------------------------
def ultimo_comprobante(client, ticket: TicketAcceso, cuit: str, punto_venta: int, tipo_comprobante: int) -> int:
    """FECompUltimoAutorizado: último número autorizado o 0 si no hay ninguno."""
    try:
        respuesta = serialize_object(
            client.service.FECompUltimoAutorizado(
                Auth=_auth(ticket, cuit),
                PtoVta=punto_venta,
                CbteTipo=tipo_comprobante,
            ),
            dict,
        )
    except Fault as e:
        raise AfipFault(f"AFIP Fault: {e.message}") from e

    _verificar_token(respuesta)
    numero = respuesta.get("CbteNro")
    if numero is None:
        errores = [e.get("Msg") for e in _mensajes(respuesta.get("Errors"), "Err")]
        if errores:
            raise AfipError("Error al consultar último comprobante: " + " | ".join(map(str, errores)))
        return 0
    return int(numero)


def _emitir_con_ticket(data: FacturaRequest, config: ConfiguracionAfip, ticket: TicketAcceso) -> dict:
    client = _cliente(ticket.produccion)

    ultimo = ultimo_comprobante(client, ticket, config.cuit, data.punto_venta, data.tipo_comprobante)
    prox_nro = ultimo + 1

    detalle = armar_detalle(data, prox_nro, data.fecha_emision)

    try:
        respuesta = client.service.FECAESolicitar(
            Auth=_auth(ticket, config.cuit),
            FeCAEReq={
                "FeCabReq": {
                    "CantReg":  1,
                    "PtoVta":   data.punto_venta,
                    "CbteTipo": data.tipo_comprobante,
                },
                "FeDetReq": {"FECAEDetRequest": [detalle]},
            }
        )
    except Fault as e:
        raise AfipFault(f"AFIP Fault: {e.message}") from e

    resultado = procesar_respuesta_cae(serialize_object(respuesta, dict))
    resultado["numero_comprobante"] = prox_nro
    return resultado


def emitir_comprobante(data: FacturaRequest, config: ConfiguracionAfip) -> dict:
    """
    Emite un comprobante AFIP WSFEv1:
    1) Obtiene el TA (caché o WSAA)
    2) Consulta último comprobante y calcula el siguiente
    3) Lanza FECAESolicitar y devuelve cae, cae_vencimiento (date),
       resultado y numero_comprobante
    Si AFIP rechaza el token se descarta el TA y se reintenta una vez.
    """
    logger.info(
        "[AFIP CAE] Facturando: PtoVta %s, Tipo %s, Doc %s",
        data.punto_venta, data.tipo_comprobante, data.doc_nro,
    )
    ticket = wsaa.obtener_ticket(config, SERVICE)
    try:
        return _emitir_con_ticket(data, config, ticket)
    except TicketVencido as e:
        logger.warning("[AFIP CAE] Token rechazado (%s), se renueva el TA y se reintenta", e)
        wsaa.invalidar_ticket(config, SERVICE, ticket.produccion)
        ticket = wsaa.obtener_ticket(config, SERVICE)
        return _emitir_con_ticket(data, config, ticket)


def estado_servidor(config: ConfiguracionAfip) -> dict:
    """
    FEDummy. Antes obtiene un TA para validar que el certificado esté
    vigente y sea par con la clave.
    """
    ticket = wsaa.obtener_ticket(config, SERVICE)
    client = _cliente(ticket.produccion)
    try:
        respuesta = serialize_object(client.service.FEDummy(), dict) or {}
    except Fault as e:
        raise AfipFault(f"AFIP Fault: {e.message}") from e

    return {
        "app_server": respuesta.get("AppServer") or "Unknown",
        "db_server": respuesta.get("DbServer") or "Unknown",
        "auth_server": respuesta.get("AuthServer") or "Unknown",
        "entorno": "Producción" if ticket.produccion else "Homologación",
    }
