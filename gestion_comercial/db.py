import base64
import logging
from contextlib import contextmanager
from typing import List, Optional

import psycopg2
from psycopg2 import sql, pool, Error
from psycopg2.extras import RealDictCursor

from .config import settings
from .models import (
    ConfiguracionAfip,
    FacturaRequest,
    Proveedor,
    ProveedorIn,
    Vendedor,
    VendedorIn,
)

logger = logging.getLogger(__name__)

db_pool = None

CAMPOS_PROVEEDOR = (
    "nombre", "telefono", "email", "direccion", "cuit",
    "notas", "zona", "rubro", "marcas", "sucursal_id",
)

ESQUEMA = """
CREATE TABLE IF NOT EXISTS proveedores (
    id          SERIAL PRIMARY KEY,
    usuario_id  TEXT NOT NULL,
    sucursal_id TEXT,
    nombre      TEXT NOT NULL,
    telefono    TEXT NOT NULL DEFAULT '',
    email       TEXT NOT NULL DEFAULT '',
    direccion   TEXT NOT NULL DEFAULT '',
    cuit        TEXT NOT NULL DEFAULT '',
    notas       TEXT NOT NULL DEFAULT '',
    zona        TEXT NOT NULL DEFAULT '',
    rubro       TEXT NOT NULL DEFAULT '',
    marcas      TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS vendedores (
    id          SERIAL PRIMARY KEY,
    usuario_id  TEXT NOT NULL,
    sucursal_id TEXT,
    nombre      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS vendedores_activos (
    usuario_id  TEXT NOT NULL,
    sucursal_id TEXT NOT NULL DEFAULT '',
    vendedor_id INTEGER NOT NULL REFERENCES vendedores(id) ON DELETE CASCADE,
    PRIMARY KEY (usuario_id, sucursal_id)
);

-- sucursal_id '' = configuración general del negocio
CREATE TABLE IF NOT EXISTS configuracion_afip (
    usuario_id  TEXT NOT NULL,
    sucursal_id TEXT NOT NULL DEFAULT '',
    cuit        TEXT NOT NULL,
    cert        TEXT NOT NULL,
    key         TEXT NOT NULL,
    produccion  BOOLEAN NOT NULL DEFAULT FALSE,
    PRIMARY KEY (usuario_id, sucursal_id)
);

CREATE TABLE IF NOT EXISTS comprobantes (
    id                 SERIAL PRIMARY KEY,
    usuario_id         TEXT NOT NULL,
    sucursal_id        TEXT,
    fecha_emision      DATE NOT NULL,
    cuit_emisor        TEXT NOT NULL,
    punto_venta        INTEGER NOT NULL,
    tipo_comprobante   INTEGER NOT NULL,
    numero_comprobante INTEGER NOT NULL,
    doc_tipo           INTEGER NOT NULL,
    doc_nro            TEXT NOT NULL,
    concepto           INTEGER NOT NULL,
    imp_neto           NUMERIC(15, 2) NOT NULL,
    imp_iva            NUMERIC(15, 2) NOT NULL,
    imp_exento         NUMERIC(15, 2) NOT NULL,
    imp_total          NUMERIC(15, 2) NOT NULL,
    cae                TEXT NOT NULL,
    cae_vencimiento    DATE,
    resultado          TEXT NOT NULL,
    qr_base64          TEXT,
    pdf_path           TEXT
);
"""


# ————————————————————————————————————————————————
# Pool de conexiones
# ————————————————————————————————————————————————
def connect_to_db():
    global db_pool

    faltantes = [nombre for nombre in ("DB_HOST", "DB_USER", "DB_PASS", "DB_NAME")
                 if not getattr(settings, nombre)]
    if faltantes:
        raise RuntimeError(f"Faltan variables de entorno de BD: {', '.join(faltantes)}")

    try:
        db_pool = psycopg2.pool.SimpleConnectionPool(
            minconn=1,
            maxconn=10, # Ajusta según la carga esperada
            host=settings.DB_HOST,
            user=settings.DB_USER,
            password=settings.DB_PASS,
            dbname=settings.DB_NAME,
            port=settings.DB_PORT,
            sslmode=settings.DB_SSLMODE
        )
    except psycopg2.OperationalError as e:
        raise RuntimeError(f"Error creando el pool de conexiones a la BD: {e}")


def close_db_connection():
    global db_pool
    if db_pool:
        db_pool.closeall()
        db_pool = None


@contextmanager
def _cursor():
    """
    Cursor sobre una conexión del pool. El bloque 'with conn' hace
    commit/rollback y la conexión siempre vuelve al pool.
    """
    if not db_pool:
        raise RuntimeError("El pool de conexiones a la BD no está inicializado.")
    conn = db_pool.getconn()
    try:
        with conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
    except Error as e:
        raise RuntimeError(f"Error de base de datos: {e}")
    finally:
        db_pool.putconn(conn)


def crear_tablas():
    with _cursor() as cur:
        cur.execute(ESQUEMA)


# ————————————————————————————————————————————————
# Proveedores
# ————————————————————————————————————————————————
def listar_proveedores(usuario_id: str, sucursal_id: Optional[str] = None) -> List[Proveedor]:
    consulta = "SELECT * FROM proveedores WHERE usuario_id = %(usuario_id)s"
    if sucursal_id:
        consulta += " AND sucursal_id = %(sucursal_id)s"
    consulta += " ORDER BY nombre"
    with _cursor() as cur:
        cur.execute(consulta, {"usuario_id": usuario_id, "sucursal_id": sucursal_id})
        return [Proveedor(**fila) for fila in cur.fetchall()]


def crear_proveedor(usuario_id: str, data: ProveedorIn) -> Proveedor:
    valores = data.model_dump(include=set(CAMPOS_PROVEEDOR))
    insert_sql = sql.SQL(
        "INSERT INTO proveedores (usuario_id, {campos}) VALUES (%(usuario_id)s, {valores}) RETURNING *"
    ).format(
        campos=sql.SQL(", ").join(map(sql.Identifier, CAMPOS_PROVEEDOR)),
        valores=sql.SQL(", ").join(sql.Placeholder(c) for c in CAMPOS_PROVEEDOR),
    )
    with _cursor() as cur:
        cur.execute(insert_sql, {"usuario_id": usuario_id, **valores})
        return Proveedor(**cur.fetchone())


def actualizar_proveedor(usuario_id: str, proveedor_id: int, data: ProveedorIn) -> Optional[Proveedor]:
    valores = data.model_dump(include=set(CAMPOS_PROVEEDOR))
    update_sql = sql.SQL(
        "UPDATE proveedores SET {asignaciones} "
        "WHERE id = %(id)s AND usuario_id = %(usuario_id)s RETURNING *"
    ).format(
        asignaciones=sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder(c))
            for c in CAMPOS_PROVEEDOR
        )
    )
    with _cursor() as cur:
        cur.execute(update_sql, {"id": proveedor_id, "usuario_id": usuario_id, **valores})
        fila = cur.fetchone()
        return Proveedor(**fila) if fila else None


def eliminar_proveedor(usuario_id: str, proveedor_id: int) -> bool:
    with _cursor() as cur:
        cur.execute(
            "DELETE FROM proveedores WHERE id = %s AND usuario_id = %s",
            (proveedor_id, usuario_id),
        )
        return cur.rowcount > 0


# ————————————————————————————————————————————————
# Vendedores
# ————————————————————————————————————————————————
def listar_vendedores(usuario_id: str, sucursal_id: Optional[str] = None) -> List[Vendedor]:
    consulta = "SELECT id, nombre, sucursal_id FROM vendedores WHERE usuario_id = %(usuario_id)s"
    if sucursal_id:
        consulta += " AND sucursal_id = %(sucursal_id)s"
    consulta += " ORDER BY nombre"
    with _cursor() as cur:
        cur.execute(consulta, {"usuario_id": usuario_id, "sucursal_id": sucursal_id})
        return [Vendedor(**fila) for fila in cur.fetchall()]


def crear_vendedor(usuario_id: str, data: VendedorIn) -> Vendedor:
    with _cursor() as cur:
        cur.execute(
            "INSERT INTO vendedores (usuario_id, sucursal_id, nombre) VALUES (%s, %s, %s) "
            "RETURNING id, nombre, sucursal_id",
            (usuario_id, data.sucursal_id, data.nombre),
        )
        return Vendedor(**cur.fetchone())


def actualizar_vendedor(usuario_id: str, vendedor_id: int, data: VendedorIn) -> Optional[Vendedor]:
    with _cursor() as cur:
        cur.execute(
            "UPDATE vendedores SET nombre = %s, sucursal_id = %s "
            "WHERE id = %s AND usuario_id = %s RETURNING id, nombre, sucursal_id",
            (data.nombre, data.sucursal_id, vendedor_id, usuario_id),
        )
        fila = cur.fetchone()
        return Vendedor(**fila) if fila else None


def eliminar_vendedor(usuario_id: str, vendedor_id: int) -> bool:
    with _cursor() as cur:
        cur.execute(
            "DELETE FROM vendedores WHERE id = %s AND usuario_id = %s",
            (vendedor_id, usuario_id),
        )
        return cur.rowcount > 0


def guardar_vendedor_activo(usuario_id: str, sucursal_id: str, vendedor_id: int):
    with _cursor() as cur:
        cur.execute(
            """
            INSERT INTO vendedores_activos (usuario_id, sucursal_id, vendedor_id)
            VALUES (%s, %s, %s)
            ON CONFLICT (usuario_id, sucursal_id) DO UPDATE SET vendedor_id = EXCLUDED.vendedor_id
            """,
            (usuario_id, sucursal_id or "", vendedor_id),
        )


def obtener_vendedor_activo(usuario_id: str, sucursal_id: str) -> Optional[int]:
    with _cursor() as cur:
        cur.execute(
            "SELECT vendedor_id FROM vendedores_activos WHERE usuario_id = %s AND sucursal_id = %s",
            (usuario_id, sucursal_id or ""),
        )
        fila = cur.fetchone()
        return fila["vendedor_id"] if fila else None


# ————————————————————————————————————————————————
# Configuración AFIP
# ————————————————————————————————————————————————
def obtener_config_afip(usuario_id: str, sucursal_id: Optional[str] = None) -> Optional[ConfiguracionAfip]:
    """
    Primero la configuración propia de la sucursal; si no tiene
    certificado y clave, la general del negocio.
    """
    with _cursor() as cur:
        cur.execute(
            """
            SELECT sucursal_id, cuit, cert, key, produccion
              FROM configuracion_afip
             WHERE usuario_id = %s AND sucursal_id IN (%s, '')
            """,
            (usuario_id, sucursal_id or ""),
        )
        filas = cur.fetchall()

    completas = {f["sucursal_id"]: f for f in filas if f["cuit"] and f["cert"] and f["key"]}
    fila = completas.get(sucursal_id or "") or completas.get("")
    if not fila:
        return None
    return ConfiguracionAfip(cuit=fila["cuit"], cert=fila["cert"], key=fila["key"], produccion=fila["produccion"])


def guardar_config_afip(usuario_id: str, sucursal_id: Optional[str], config: ConfiguracionAfip):
    with _cursor() as cur:
        cur.execute(
            """
            INSERT INTO configuracion_afip (usuario_id, sucursal_id, cuit, cert, key, produccion)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (usuario_id, sucursal_id) DO UPDATE
               SET cuit = EXCLUDED.cuit,
                   cert = EXCLUDED.cert,
                   key = EXCLUDED.key,
                   produccion = EXCLUDED.produccion
            """,
            (usuario_id, sucursal_id or "", config.cuit, config.cert, config.key, config.produccion),
        )


# ————————————————————————————————————————————————
# Comprobantes
# ————————————————————————————————————————————————
def guardar_comprobante(
    usuario_id: str,
    cuit_emisor: str,
    data: FacturaRequest,
    resultado: dict,
    pdf_path: str,
    qr_bytes: bytes,
):
    """
    Inserta en la tabla 'comprobantes' todos los datos de la factura,
    el CAE, el QR en base64 y la ruta del PDF generado.
    """
    insert_sql = sql.SQL("""
        INSERT INTO comprobantes (
            usuario_id, sucursal_id, fecha_emision, cuit_emisor,
            punto_venta, tipo_comprobante, numero_comprobante,
            doc_tipo, doc_nro, concepto,
            imp_neto, imp_iva, imp_exento, imp_total,
            cae, cae_vencimiento, resultado, qr_base64, pdf_path
        ) VALUES (
            %(usuario_id)s, %(sucursal_id)s, %(fecha_emision)s, %(cuit_emisor)s,
            %(pto_vta)s, %(tipo_cmp)s, %(nro_cmp)s,
            %(doc_tipo)s, %(doc_nro)s, %(concepto)s,
            %(imp_neto)s, %(imp_iva)s, %(imp_exento)s, %(imp_total)s,
            %(cae)s, %(cae_vto)s, %(resultado)s, %(qr)s, %(pdf_path)s
        );
    """)

    params = {
        "usuario_id":    usuario_id,
        "sucursal_id":   data.sucursal_id,
        "fecha_emision": data.fecha_emision,
        "cuit_emisor":   cuit_emisor,
        "pto_vta":       data.punto_venta,
        "tipo_cmp":      data.tipo_comprobante,
        "nro_cmp":       resultado["numero_comprobante"],
        "doc_tipo":      data.doc_tipo,
        "doc_nro":       data.doc_nro,
        "concepto":      data.concepto,
        "imp_neto":      data.neto,
        "imp_iva":       data.iva,
        "imp_exento":    data.exento,
        "imp_total":     data.total,
        "cae":           resultado["cae"],
        "cae_vto":       resultado["cae_vencimiento"],
        "resultado":     resultado["resultado"],
        "qr":            base64.b64encode(qr_bytes).decode(),
        "pdf_path":      pdf_path,
    }

    with _cursor() as cur:
        cur.execute(insert_sql, params)


def obtener_pdf_comprobante(usuario_id: str, cuit_emisor: str, tipo: int, pto_vta: int, nro: int) -> Optional[str]:
    """Ruta del PDF de un comprobante del usuario, o None si no le pertenece."""
    with _cursor() as cur:
        cur.execute(
            """
            SELECT pdf_path FROM comprobantes
             WHERE usuario_id = %s AND cuit_emisor = %s
               AND tipo_comprobante = %s AND punto_venta = %s AND numero_comprobante = %s
             ORDER BY id DESC
             LIMIT 1
            """,
            (usuario_id, cuit_emisor, tipo, pto_vta, nro),
        )
        fila = cur.fetchone()
    return fila["pdf_path"] if fila else None
