"""
Constantes del motor de sincronizacion.
"""
from enum import Enum


class EntityType(str, Enum):
    """Tipos de entidad sincronizables."""
    CLIENTS = "clients"
    TEAM_MEMBERS = "team_members"
    PROJECTS = "projects"
    QI_TIME_TRACKER = "qi_time_tracker"
    TIME_TRACKER_USERS = "time_tracker_users"
    TIME_TRACKER_PROJECTS = "time_tracker_projects"
    TIME_ENTRIES = "time_entries"


class SyncStatus(str, Enum):
    """Estado terminal de una pasada."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncStage(str, Enum):
    """Etapas de una pasada. FAILED es absorbente."""
    START = "start"
    FETCHING = "fetching"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class MetricType(str, Enum):
    """Metricas periodicas calculadas sobre cards."""
    QI_PUSHBACKS = "qi_pushbacks"
    CLIENT_PUSHBACKS = "client_pushbacks"
    AVG_DAYS_LATE = "avg_days_late"


class PeriodType(str, Enum):
    """Periodos calendario para metricas."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Limites de la API del work tracker
WORK_TRACKER_MAX_PAGE_SIZE = 100

# Tipos de propiedad que nunca van al overflow map
EXCLUDED_PROPERTY_TYPES = frozenset({
    "button",
    "unique_id",
    "created_by",
    "last_edited_by",
    "created_time",
    "last_edited_time",
})

STATUS_SOURCE_WORK_TRACKER = "work_tracker"
STATUS_SOURCE_WEBHOOK = "webhook"
