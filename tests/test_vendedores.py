import pytest

from gestion_comercial import db
from gestion_comercial.errores import VendedorNoValido
from gestion_comercial.models import Vendedor
from gestion_comercial.proveedores import seleccionar_vendedor

from .conftest import USUARIO_ID

VENDEDORES = [Vendedor(id=1, nombre="Ana"), Vendedor(id=2, nombre="Bruno")]


def test_seleccionar_vendedor_existente():
    assert seleccionar_vendedor(VENDEDORES, 2).nombre == "Bruno"
    assert seleccionar_vendedor(VENDEDORES, "1").nombre == "Ana"


@pytest.mark.parametrize("vendedor_id", [None, "", 3])
def test_seleccionar_vendedor_invalido(vendedor_id):
    with pytest.raises(VendedorNoValido):
        seleccionar_vendedor(VENDEDORES, vendedor_id)


def test_crear_vendedor_sin_nombre(client, auth_headers):
    response = client.post("/vendedores", json={"nombre": "  "}, headers=auth_headers)
    assert response.status_code == 422


def test_fijar_vendedor_activo(client, auth_headers, monkeypatch):
    guardados = []
    monkeypatch.setattr(db, "listar_vendedores", lambda usuario_id, sucursal_id=None: VENDEDORES)
    monkeypatch.setattr(
        db, "guardar_vendedor_activo",
        lambda usuario_id, sucursal_id, vendedor_id: guardados.append((usuario_id, sucursal_id, vendedor_id)),
    )

    response = client.put(
        "/vendedores/activo",
        json={"sucursal_id": "suc-1", "vendedor_id": 2},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["nombre"] == "Bruno"
    assert guardados == [(USUARIO_ID, "suc-1", 2)]


def test_fijar_vendedor_inexistente(client, auth_headers, monkeypatch):
    monkeypatch.setattr(db, "listar_vendedores", lambda usuario_id, sucursal_id=None: VENDEDORES)
    monkeypatch.setattr(db, "guardar_vendedor_activo", lambda *a: pytest.fail("no debe guardar"))

    response = client.put("/vendedores/activo", json={"vendedor_id": 9}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "El vendedor seleccionado no es válido."


def test_fijar_vendedor_de_otra_sucursal(client, auth_headers, monkeypatch):
    por_sucursal = [
        Vendedor(id=1, nombre="Ana", sucursal_id="suc-1"),
        Vendedor(id=3, nombre="Carla", sucursal_id="suc-2"),
    ]
    pedidos = []

    def listar(usuario_id, sucursal_id=None):
        pedidos.append((usuario_id, sucursal_id))
        return [v for v in por_sucursal if sucursal_id is None or v.sucursal_id == sucursal_id]

    monkeypatch.setattr(db, "listar_vendedores", listar)
    monkeypatch.setattr(db, "guardar_vendedor_activo", lambda *a: pytest.fail("no debe guardar"))

    response = client.put(
        "/vendedores/activo",
        json={"sucursal_id": "suc-1", "vendedor_id": 3},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "El vendedor seleccionado no es válido."
    assert pedidos == [(USUARIO_ID, "suc-1")]


def test_obtener_vendedor_activo(client, auth_headers, monkeypatch):
    monkeypatch.setattr(db, "listar_vendedores", lambda usuario_id, sucursal_id=None: VENDEDORES)
    monkeypatch.setattr(db, "obtener_vendedor_activo", lambda usuario_id, sucursal_id: 1)

    response = client.get("/vendedores/activo", params={"sucursal_id": "suc-1"}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"id": 1, "nombre": "Ana", "sucursal_id": None}


def test_sin_vendedor_activo(client, auth_headers, monkeypatch):
    monkeypatch.setattr(db, "obtener_vendedor_activo", lambda usuario_id, sucursal_id: None)

    response = client.get("/vendedores/activo", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() is None
