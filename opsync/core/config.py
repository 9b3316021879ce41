"""
Configuracion central del motor de sincronizacion.
Gestiona variables de entorno de las tres fuentes (work tracker,
time tracker y store persistente) y los parametros del loop de sync.
"""
import json
from typing import List

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings

from opsync.shared.exceptions.sync import ConfigurationError


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    - Credenciales e IDs externos vacios no fallan al importar:
      se validan con `require()` justo antes de cada pasada.
    - DATABASE_URL se puede especificar completa o por componentes.
    """

    APP_NAME: str = Field(default="opsync")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Work tracker (bases de datos tipo Notion)
    WORK_TRACKER_API_KEY: str = Field(default="")
    WORK_TRACKER_API_URL: str = Field(default="https://api.notion.com/v1")
    WORK_TRACKER_API_VERSION: str = Field(default="2022-06-28")
    WORK_TRACKER_TIMEOUT_S: float = Field(default=30.0)
    PROJECTS_DB_ID: str = Field(default="")
    TEAM_MEMBERS_DB_ID: str = Field(default="")
    CLIENTS_DB_ID: str = Field(default="")
    QI_TIME_TRACKER_DB_ID: str = Field(default="")

    # Time tracker
    TIME_TRACKER_API_TOKEN: str = Field(default="")
    TIME_TRACKER_COMPANY_ID: str = Field(default="")
    TIME_TRACKER_API_URL: str = Field(default="https://api2.timedoctor.com/api/1.0")
    TIME_TRACKER_TIMEOUT_S: float = Field(default=60.0)
    TIME_TRACKER_UTC_OFFSET_HOURS: int = Field(default=-5)
    TIME_TRACKER_LOOKBACK_DAYS: int = Field(default=30)
    WORKLOG_PRIMARY_WINDOW_DAYS: int = Field(default=7)
    WORKLOG_FALLBACK_WINDOW_DAYS: int = Field(default=3)
    WORKLOG_WINDOW_DELAY_S: float = Field(default=0.5)
    MONTHLY_WORK_HOURS: float = Field(default=160.0)

    # Base de datos - Componentes separados
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="opsync")
    DATABASE_PASSWORD: str = Field(default="opsync")
    DATABASE_NAME: str = Field(default="opsync")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # Loop de sync
    SYNC_BATCH_SIZE: int = Field(default=50)
    SYNC_BATCH_DELAY_S: float = Field(default=2.0)
    SYNC_ITEM_DELAY_S: float = Field(default=0.1)
    PAGE_REQUEST_DELAY_S: float = Field(default=0.4)
    TASK_FETCH_DELAY_S: float = Field(default=0.1)

    # Reglas de negocio
    # Lista JSON o separada por comas, en orden de prioridad
    COMPLETION_DATE_PRIORITY: str = Field(
        default="ready_for_client_date,done_date,deployment_date"
    )
    DESIGN_PROJECT_TYPES: str = Field(default="Design,CRO")
    INTERNAL_PROJECT_KEYWORDS: str = Field(default="ecomexperts,internal")
    PROJECT_NAME_MATCH_MIN_LENGTH: int = Field(default=3)
    ARCHIVED_STATUS_LABEL: str = Field(default="♻️ Archive")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/opsync.log")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @property
    def completion_date_priority(self) -> List[str]:
        return parse_list_setting(self.COMPLETION_DATE_PRIORITY)

    @property
    def design_project_types(self) -> List[str]:
        return parse_list_setting(self.DESIGN_PROJECT_TYPES)

    @property
    def internal_project_keywords(self) -> List[str]:
        return [k.lower() for k in parse_list_setting(self.INTERNAL_PROJECT_KEYWORDS)]

    def require(self, *names: str) -> None:
        """
        Verifica que las variables indicadas tengan valor.

        Raises:
            ConfigurationError: Si falta alguna (se reportan todas juntas).
        """
        missing = [name for name in names if not getattr(self, name, None)]
        if missing:
            raise ConfigurationError(
                f"Faltan variables de entorno obligatorias: {', '.join(missing)}",
                missing=missing,
            )

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


def parse_list_setting(raw: str) -> List[str]:
    """
    Parsea una lista de configuracion.
    Acepta una lista JSON o valores separados por comas.
    """
    raw = (raw or "").strip()
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]
    except json.JSONDecodeError:
        pass
    return [part.strip() for part in raw.split(",") if part.strip()]


# Instancia global de configuracion
settings = Settings()
