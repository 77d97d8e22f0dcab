"""
Errores de dominio. Cada uno lleva el status HTTP con el que se informa
al cliente.
"""


class GestionError(Exception):
    status_code = 500

    def __init__(self, mensaje: str):
        super().__init__(mensaje)
        self.mensaje = mensaje


# ——— Proveedores / vendedores ———
class RegistroNoEncontrado(GestionError):
    status_code = 404


class VendedorNoValido(GestionError):
    status_code = 400


# ——— AFIP ———
class AfipError(GestionError):
    status_code = 502


class ConfiguracionAfipFaltante(AfipError):
    status_code = 412


class CertificadoInvalido(AfipError):
    status_code = 412


class WsaaError(AfipError):
    pass


class TicketVencido(AfipError):
    """AFIP rechazó el token/sign (código 600)."""


class ComprobanteRechazado(AfipError):
    status_code = 400


class AfipFault(AfipError):
    status_code = 409


class ContribuyenteNoEncontrado(AfipError):
    status_code = 404


# ——— Gemini ———
class GeminiError(GestionError):
    status_code = 502


class GeminiNoConfigurado(GeminiError):
    status_code = 412
