from typing import Iterable, List

from .errores import VendedorNoValido
from .models import Proveedor, Vendedor


def _contiene(valor, filtro: str) -> bool:
    return filtro in (valor or "").lower()


def filtrar_proveedores(
    proveedores: Iterable[Proveedor],
    search: str = "",
    zona: str = "",
    rubro: str = "",
    marca: str = "",
) -> List[Proveedor]:
    """
    Filtro de la tabla de proveedores. El buscador principal busca en
    nombre, CUIT o teléfono; zona, rubro y marca solo filtran si no están
    vacíos. Todas las comparaciones son por subcadena sin distinguir
    mayúsculas.
    """
    search = (search or "").lower()
    zona = (zona or "").lower()
    rubro = (rubro or "").lower()
    marca = (marca or "").lower()

    resultado = []
    for p in proveedores or []:
        coincide_busqueda = (
            _contiene(p.nombre, search)
            or _contiene(p.cuit, search)
            or _contiene(p.telefono, search)
        )
        if not coincide_busqueda:
            continue
        if zona and not _contiene(p.zona, zona):
            continue
        if rubro and not _contiene(p.rubro, rubro):
            continue
        if marca and not _contiene(p.marcas, marca):
            continue
        resultado.append(p)
    return resultado


def seleccionar_vendedor(vendedores: Iterable[Vendedor], vendedor_id) -> Vendedor:
    if vendedor_id in (None, ""):
        raise VendedorNoValido("Debe seleccionar un vendedor.")
    for v in vendedores:
        if str(v.id) == str(vendedor_id):
            return v
    raise VendedorNoValido("El vendedor seleccionado no es válido.")
