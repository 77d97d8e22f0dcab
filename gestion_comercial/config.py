import os


class Settings:
    def __init__(self):
        # ————————————————————————————————————————————————
        # Base de datos
        # ————————————————————————————————————————————————
        self.DB_HOST    = os.getenv("DB_HOST", "")
        self.DB_USER    = os.getenv("DB_USER", "")
        self.DB_PASS    = os.getenv("DB_PASS", "")
        self.DB_NAME    = os.getenv("DB_NAME", "")
        self.DB_PORT    = os.getenv("DB_PORT", "5432")
        self.DB_SSLMODE = os.getenv("DB_SSLMODE", "disable")

        # ————————————————————————————————————————————————
        # Autenticación de la API (bearer JWT)
        # ————————————————————————————————————————————————
        self.SECRET_KEY = os.getenv("SECRET_KEY", "cambiar-en-produccion")
        self.ALGORITHM  = os.getenv("ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

        self.CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
        self.LOG_LEVEL    = os.getenv("LOG_LEVEL", "INFO").upper()

        # ————————————————————————————————————————————————
        # AFIP / ARCA: WSDL por entorno
        # ————————————————————————————————————————————————
        self.WSAA_WSDL_HOMO   = os.getenv("WSAA_WSDL_HOMO", "https://wsaahomo.afip.gov.ar/ws/services/LoginCms?wsdl")
        self.WSAA_WSDL_PROD   = os.getenv("WSAA_WSDL_PROD", "https://wsaa.afip.gov.ar/ws/services/LoginCms?wsdl")
        self.WSFE_WSDL_HOMO   = os.getenv("WSFE_WSDL_HOMO", "https://wswhomo.afip.gov.ar/wsfev1/service.asmx?WSDL")
        self.WSFE_WSDL_PROD   = os.getenv("WSFE_WSDL_PROD", "https://servicios1.afip.gov.ar/wsfev1/service.asmx?WSDL")
        self.PADRON_WSDL_HOMO = os.getenv(
            "PADRON_WSDL_HOMO", "https://awshomo.afip.gov.ar/sr-padron/webservices/personaServiceA13?WSDL"
        )
        self.PADRON_WSDL_PROD = os.getenv(
            "PADRON_WSDL_PROD", "https://aws.afip.gov.ar/sr-padron/webservices/personaServiceA13?WSDL"
        )

        self.AFIP_TIMEOUT = int(os.getenv("AFIP_TIMEOUT", "30"))

        # Tickets de acceso (TA) cacheados en disco
        self.TA_PATH           = os.getenv("TA_PATH", "ta")
        self.TA_MARGEN_MINUTOS = int(os.getenv("TA_MARGEN_MINUTOS", "5"))
        self.TRA_TTL_MINUTOS   = int(os.getenv("TRA_TTL_MINUTOS", "10"))

        # PDFs generados
        self.COMPROBANTES_DIR = os.getenv("COMPROBANTES_DIR", "comprobantes")

        # ————————————————————————————————————————————————
        # Gemini
        # ————————————————————————————————————————————————
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL   = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.GEMINI_URL     = os.getenv("GEMINI_URL", "https://generativelanguage.googleapis.com/v1beta/models")


settings = Settings()
