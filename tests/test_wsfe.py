from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from gestion_comercial import wsaa, wsfe
from gestion_comercial.errores import AfipError, ComprobanteRechazado, TicketVencido
from gestion_comercial.models import FacturaRequest, TicketAcceso

FECHA = date(2025, 3, 14)

AVISO = ("El dia 6 de abril de 2025 entra en vigencia la obligatoriedad de informar "
         "la condicion frente al IVA del receptor")


def _factura(**campos):
    datos = {
        "ptoVta": 1,
        "cbteTipo": 6,
        "concepto": 1,
        "docTipo": 99,
        "docNro": 0,
        "importeTotal": 121.0,
        "importeNeto": 100.0,
        "importeIva": 21.0,
        "importeExento": 0,
    }
    datos.update(campos)
    return FacturaRequest(**datos)


def _respuesta_ok(cae="75123456789012", vto="20250324"):
    return {
        "FeCabResp": {"Resultado": "A"},
        "FeDetResp": {"FECAEDetResponse": [{"Resultado": "A", "CAE": cae, "CAEFchVto": vto, "Observaciones": None}]},
        "Errors": None,
        "Events": None,
    }


def _respuesta_errores(*errores):
    return {
        "FeDetResp": None,
        "Errors": {"Err": [{"Code": code, "Msg": msg} for code, msg in errores]},
    }


class TestFacturaRequest:

    def test_acepta_nombres_del_frontend_y_convierte_tipos(self):
        data = _factura(ptoVta="3", cbteTipo="11", docNro=None, importeIva=None)

        assert data.punto_venta == 3
        assert data.tipo_comprobante == 11
        assert data.doc_nro == "0"
        assert data.iva == 0.0

    def test_punto_de_venta_invalido(self):
        with pytest.raises(ValueError):
            _factura(ptoVta="abc")


class TestDetalle:

    @pytest.mark.parametrize("doc_tipo, esperado", [(80, 1), (99, 5), (96, 5), (86, None)])
    def test_condicion_iva_receptor(self, doc_tipo, esperado):
        assert wsfe.condicion_iva_receptor(doc_tipo) == esperado

    def test_factura_b_consumidor_final(self):
        detalle = wsfe.armar_detalle(_factura(), 8, FECHA)

        assert detalle["CbteDesde"] == detalle["CbteHasta"] == 8
        assert detalle["CbteFch"] == "20250314"
        assert detalle["DocNro"] == "0"
        assert detalle["ImpTotal"] == 121.0
        assert detalle["ImpTotConc"] == 0
        assert detalle["ImpTrib"] == 0
        assert detalle["MonId"] == "PES"
        assert detalle["CondicionIVAReceptorId"] == 5
        assert detalle["Iva"] == {"AlicIva": [{"Id": 5, "BaseImp": 100.0, "Importe": 21.0}]}
        assert "CbtesAsoc" not in detalle
        assert "PeriodoAsoc" not in detalle
        assert "FchServDesde" not in detalle

    def test_sin_iva_no_informa_alicuotas(self):
        detalle = wsfe.armar_detalle(_factura(cbteTipo=11, importeIva=0, importeNeto=121.0), 1, FECHA)
        assert "Iva" not in detalle

    def test_importes_redondeados(self):
        detalle = wsfe.armar_detalle(_factura(importeTotal=121.004, importeNeto=100.001, importeIva=21.003), 1, FECHA)

        assert detalle["ImpTotal"] == 121.0
        assert detalle["ImpNeto"] == 100.0
        assert detalle["ImpIVA"] == 21.0

    def test_servicios_informan_fechas(self):
        detalle = wsfe.armar_detalle(
            _factura(concepto=2, fechaServicioDesde="20250301", fechaServicioHasta="20250331",
                     fechaVencimientoPago="20250410"),
            1, FECHA,
        )
        assert detalle["FchServDesde"] == "20250301"
        assert detalle["FchServHasta"] == "20250331"
        assert detalle["FchVtoPago"] == "20250410"

    def test_nota_de_credito_con_comprobante_asociado(self):
        detalle = wsfe.armar_detalle(_factura(cbteTipo=13, ptoVta=2, cbteAsocNro="45", importeIva=0), 5, FECHA)

        assert detalle["CbtesAsoc"] == {"CbteAsoc": [{"Tipo": 11, "PtoVta": 2, "Nro": 45}]}
        assert "PeriodoAsoc" not in detalle

    def test_nota_de_credito_b_asocia_factura_b(self):
        detalle = wsfe.armar_detalle(_factura(cbteTipo=8, cbteAsocNro=7), 5, FECHA)
        assert detalle["CbtesAsoc"]["CbteAsoc"][0]["Tipo"] == 6

    def test_nota_sin_comprobante_usa_periodo(self):
        detalle = wsfe.armar_detalle(_factura(cbteTipo=12, cbteAsocNro=""), 5, FECHA)

        assert detalle["PeriodoAsoc"] == {"FchDesde": "20250314", "FchHasta": "20250314"}
        assert "CbtesAsoc" not in detalle


class TestRespuestaCAE:

    def test_aprobada(self):
        resultado = wsfe.procesar_respuesta_cae(_respuesta_ok())

        assert resultado == {
            "cae": "75123456789012",
            "cae_vencimiento": date(2025, 3, 24),
            "resultado": "A",
        }

    def test_junta_todos_los_errores_sin_el_aviso(self):
        respuesta = _respuesta_errores((10016, AVISO), (10015, "DocNro invalido"), (10048, "ImpTotal no coincide"))

        with pytest.raises(ComprobanteRechazado) as exc:
            wsfe.procesar_respuesta_cae(respuesta)

        assert str(exc.value) == "Rechazo AFIP: DocNro invalido | ImpTotal no coincide"
        assert exc.value.status_code == 400

    def test_solo_el_aviso(self):
        with pytest.raises(ComprobanteRechazado, match="^AFIP: El dia 6 de abril"):
            wsfe.procesar_respuesta_cae(_respuesta_errores((10016, AVISO)))

    def test_rechazada_con_observaciones(self):
        respuesta = {
            "FeDetResp": {"FECAEDetResponse": [{
                "Resultado": "R",
                "CAE": None,
                "Observaciones": {"Obs": [{"Code": 10013, "Msg": "Doc invalido"}]},
            }]},
            "Errors": None,
        }
        with pytest.raises(ComprobanteRechazado, match="Doc invalido"):
            wsfe.procesar_respuesta_cae(respuesta)

    def test_token_vencido(self):
        with pytest.raises(TicketVencido):
            wsfe.procesar_respuesta_cae(_respuesta_errores((600, "ValidacionDeToken: No validaron las firmas")))


def _ticket(token="T1"):
    return TicketAcceso(
        token=token, sign="S", produccion=False,
        expiracion=datetime.now(timezone.utc) + timedelta(hours=12),
    )


class FakeWsfe:
    """Cliente zeep de mentira: devuelve las respuestas en orden."""

    def __init__(self, respuestas_cae, ultimo=7):
        self.respuestas_cae = list(respuestas_cae)
        self.ultimo = ultimo
        self.solicitudes = []
        self.service = SimpleNamespace(
            FECompUltimoAutorizado=self._ultimo,
            FECAESolicitar=self._solicitar,
            FEDummy=lambda: {"AppServer": "OK", "DbServer": "OK", "AuthServer": "OK"},
        )

    def _ultimo(self, Auth, PtoVta, CbteTipo):
        return {"PtoVta": PtoVta, "CbteTipo": CbteTipo, "CbteNro": self.ultimo, "Errors": None}

    def _solicitar(self, Auth, FeCAEReq):
        self.solicitudes.append((Auth, FeCAEReq))
        return self.respuestas_cae.pop(0)


class TestEmitir:

    @pytest.fixture
    def tickets(self, monkeypatch):
        emitidos = []
        invalidados = []

        def obtener_ticket(config, service):
            emitidos.append(service)
            return _ticket(f"T{len(emitidos)}")

        monkeypatch.setattr(wsaa, "obtener_ticket", obtener_ticket)
        monkeypatch.setattr(wsaa, "invalidar_ticket", lambda config, service, produccion: invalidados.append(service))
        return emitidos, invalidados

    def test_emite_con_el_numero_siguiente(self, config_afip, tickets, monkeypatch):
        cliente = FakeWsfe([_respuesta_ok()], ultimo=7)
        monkeypatch.setattr(wsfe, "_cliente", lambda produccion: cliente)

        resultado = wsfe.emitir_comprobante(_factura(), config_afip)

        assert resultado["numero_comprobante"] == 8
        assert resultado["cae"] == "75123456789012"
        auth, req = cliente.solicitudes[0]
        assert auth == {"Token": "T1", "Sign": "S", "Cuit": config_afip.cuit}
        assert req["FeCabReq"] == {"CantReg": 1, "PtoVta": 1, "CbteTipo": 6}
        assert req["FeDetReq"]["FECAEDetRequest"][0]["CbteDesde"] == 8

    def test_reintenta_una_vez_si_el_token_vencio(self, config_afip, tickets, monkeypatch):
        emitidos, invalidados = tickets
        cliente = FakeWsfe([_respuesta_errores((600, "Token vencido")), _respuesta_ok()])
        monkeypatch.setattr(wsfe, "_cliente", lambda produccion: cliente)

        resultado = wsfe.emitir_comprobante(_factura(), config_afip)

        assert resultado["cae"] == "75123456789012"
        assert emitidos == ["wsfe", "wsfe"]
        assert invalidados == ["wsfe"]
        assert [auth["Token"] for auth, _ in cliente.solicitudes] == ["T1", "T2"]

    def test_no_reintenta_rechazos(self, config_afip, tickets, monkeypatch):
        emitidos, invalidados = tickets
        cliente = FakeWsfe([_respuesta_errores((10015, "DocNro invalido"))])
        monkeypatch.setattr(wsfe, "_cliente", lambda produccion: cliente)

        with pytest.raises(ComprobanteRechazado):
            wsfe.emitir_comprobante(_factura(), config_afip)

        assert emitidos == ["wsfe"]
        assert invalidados == []

    def test_ultimo_comprobante_sin_numero(self):
        cliente = SimpleNamespace(service=SimpleNamespace(
            FECompUltimoAutorizado=lambda **kw: {"CbteNro": None, "Errors": None}
        ))
        assert wsfe.ultimo_comprobante(cliente, _ticket(), "20123456789", 1, 6) == 0

    def test_ultimo_comprobante_con_error(self):
        cliente = SimpleNamespace(service=SimpleNamespace(
            FECompUltimoAutorizado=lambda **kw: {"CbteNro": None, "Errors": {"Err": [{"Code": 601, "Msg": "CUIT no autorizado"}]}}
        ))
        with pytest.raises(AfipError, match="CUIT no autorizado"):
            wsfe.ultimo_comprobante(cliente, _ticket(), "20123456789", 1, 6)

    def test_estado_servidor(self, config_afip, tickets, monkeypatch):
        monkeypatch.setattr(wsfe, "_cliente", lambda produccion: FakeWsfe([]))

        estado = wsfe.estado_servidor(config_afip)

        assert estado == {
            "app_server": "OK",
            "db_server": "OK",
            "auth_server": "OK",
            "entorno": "Homologación",
        }
