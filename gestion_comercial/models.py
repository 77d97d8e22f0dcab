from datetime import date, datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Argentina no aplica horario de verano
ZONA_AR = timezone(timedelta(hours=-3))


def hoy_ar() -> date:
    return datetime.now(ZONA_AR).date()


# ————————————————————————————————————————————————
# Proveedores
# ————————————————————————————————————————————————
class ProveedorIn(BaseModel):
    nombre: str
    telefono: str = ""
    email: str = ""
    direccion: str = ""
    cuit: str = ""
    notas: str = ""
    zona: str = ""
    rubro: str = ""
    marcas: str = ""    # separadas por coma
    sucursal_id: Optional[str] = None

    @field_validator("nombre")
    @classmethod
    def nombre_obligatorio(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("El nombre del proveedor es obligatorio.")
        return v

    @field_validator("telefono", "email", "direccion", "cuit", "notas", "zona", "rubro", "marcas", mode="before")
    @classmethod
    def vacio_si_nulo(cls, v):
        return "" if v is None else v


class Proveedor(ProveedorIn):
    id: int


# ————————————————————————————————————————————————
# Vendedores
# ————————————————————————————————————————————————
class VendedorIn(BaseModel):
    nombre: str
    sucursal_id: Optional[str] = None

    @field_validator("nombre")
    @classmethod
    def nombre_obligatorio(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("El nombre del vendedor es obligatorio.")
        return v


class Vendedor(VendedorIn):
    id: int


class VendedorActivoIn(BaseModel):
    sucursal_id: str = ""
    vendedor_id: int


# ————————————————————————————————————————————————
# AFIP
# ————————————————————————————————————————————————
class ConfiguracionAfip(BaseModel):
    cuit: str
    cert: str
    key: str
    produccion: bool = False

    @field_validator("cuit", mode="before")
    @classmethod
    def solo_digitos(cls, v) -> str:
        return "".join(c for c in str(v or "") if c.isdigit())


class ConfiguracionAfipIn(ConfiguracionAfip):
    sucursal_id: str = ""   # vacío = configuración general del negocio


class ConfiguracionAfipGuardada(BaseModel):
    cuit: str
    sucursal_id: str
    entorno: str
    vencimiento_certificado: datetime


class TicketAcceso(BaseModel):
    token: str
    sign: str
    expiracion: datetime
    produccion: bool


class FacturaRequest(BaseModel):
    """
    Payload plano de AFIP. Acepta los nombres camelCase que enviaba el
    frontend (ptoVta, cbteTipo, ...) o los nombres de campo.
    """
    model_config = ConfigDict(populate_by_name=True)

    sucursal_id: Optional[str] = Field(None, alias="sucursalId")
    punto_venta: int = Field(alias="ptoVta")
    tipo_comprobante: int = Field(alias="cbteTipo")   # 1=A, 6=B, 11=C
    concepto: int = 1                                 # 1=Productos, 2=Servicios, 3=Ambos
    doc_tipo: int = Field(99, alias="docTipo")        # 80=CUIT, 96=DNI, 99=Consumidor Final
    doc_nro: str = Field("0", alias="docNro")
    total: float = Field(alias="importeTotal")
    neto: float = Field(alias="importeNeto")
    iva: float = Field(0.0, alias="importeIva")
    exento: float = Field(0.0, alias="importeExento")
    fecha_servicio_desde: Optional[str] = Field(None, alias="fechaServicioDesde")
    fecha_servicio_hasta: Optional[str] = Field(None, alias="fechaServicioHasta")
    fecha_vencimiento_pago: Optional[str] = Field(None, alias="fechaVencimientoPago")
    cbte_asoc_nro: Optional[int] = Field(None, alias="cbteAsocNro")
    fecha_emision: date = Field(default_factory=hoy_ar)

    @field_validator("doc_nro", mode="before")
    @classmethod
    def doc_nro_texto(cls, v) -> str:
        return str(v or "0")

    @field_validator("iva", "exento", mode="before")
    @classmethod
    def importe_opcional(cls, v):
        return 0.0 if v in (None, "") else v

    @field_validator("fecha_servicio_desde", "fecha_servicio_hasta", "fecha_vencimiento_pago", mode="before")
    @classmethod
    def fecha_opcional(cls, v):
        return v or None

    @field_validator("cbte_asoc_nro", mode="before")
    @classmethod
    def asociado_opcional(cls, v):
        return None if v in (None, "") else v


class FacturaResponse(BaseModel):
    cae: str
    cae_vencimiento: Optional[date]
    numero_comprobante: int
    tipo_comprobante: int
    punto_venta: int
    resultado: str
    pdf: Optional[str] = None  # Ruta al PDF generado, relativa al servidor


class Contribuyente(BaseModel):
    nombre: str
    domicilio: str
    tipo: str
    cuit: str


class EstadoServidor(BaseModel):
    app_server: str
    db_server: str
    auth_server: str
    entorno: str


# ————————————————————————————————————————————————
# Gemini
# ————————————————————————————————————————————————
class GeminiRequest(BaseModel):
    prompt: str = Field(min_length=1)


class GeminiResponse(BaseModel):
    respuesta: str
