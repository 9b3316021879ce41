"""
Entidades de dominio sincronizadas.

Cada entidad tiene un identificador externo inmutable (clave de upsert),
campos bien conocidos tipados y un overflow map `clave normalizada ->
PropertyValue` con el resto de propiedades de la pagina.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from opsync.domain.entities.properties import OverflowMap
from opsync.shared.utils.datetime_utils import parse_datetime


@dataclass(frozen=True)
class ExternalPage:
    """
    Pagina del work tracker tal como llega de la API. Transitoria.
    """

    id: str
    properties: Dict[str, Any]
    parent_id: Optional[str] = None
    archived: bool = False
    created_time: Optional[datetime] = None
    last_edited_time: Optional[datetime] = None
    created_by_id: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ExternalPage":
        """
        Construye la pagina desde el JSON crudo de la API.

        Raises:
            KeyError: Si falta el id de la pagina.
        """
        parent = raw.get("parent") or {}
        created_by = raw.get("created_by") or {}
        return cls(
            id=raw["id"],
            properties=raw.get("properties") or {},
            parent_id=parent.get("database_id") or parent.get("page_id"),
            archived=bool(raw.get("archived") or raw.get("in_trash")),
            created_time=parse_datetime(raw.get("created_time")),
            last_edited_time=parse_datetime(raw.get("last_edited_time")),
            created_by_id=created_by.get("id"),
            url=raw.get("url"),
        )


@dataclass
class ProjectCard:
    """Card de proyecto (base de datos de proyectos del work tracker)."""

    external_id: str
    name: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    url: Optional[str] = None
    archived: bool = False

    client_id: Optional[str] = None
    client_name: Optional[str] = None
    developer_ids: List[str] = field(default_factory=list)
    lead_developer_ids: List[str] = field(default_factory=list)
    quality_inspector_ids: List[str] = field(default_factory=list)
    designer_ids: List[str] = field(default_factory=list)
    account_manager_ids: List[str] = field(default_factory=list)
    task_ids: List[str] = field(default_factory=list)
    qi_entry_ids: List[str] = field(default_factory=list)

    source_created_at: Optional[datetime] = None
    source_updated_at: Optional[datetime] = None
    dev_due_date: Optional[datetime] = None
    original_due_start: Optional[datetime] = None
    original_due_end: Optional[datetime] = None
    qi_start_date: Optional[datetime] = None
    qi_end_date: Optional[datetime] = None
    status_set_to_qi_date: Optional[datetime] = None
    done_date: Optional[datetime] = None
    ready_for_client_date: Optional[datetime] = None
    deployment_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    deadline: Optional[datetime] = None

    pushback_count: Optional[float] = None
    client_pushback_count: Optional[float] = None
    quantifiable_client_pushback: Optional[float] = None

    projected_dev_hours: Optional[float] = None
    actual_dev_hours: Optional[float] = None
    total_project_hours: Optional[float] = None
    projected_qi_hours: Optional[float] = None
    total_qi_hours: Optional[float] = None
    buffer_hours: Optional[float] = None
    projected_design_hours: Optional[float] = None

    days_late: Optional[float] = None
    late_label: Optional[str] = None
    is_late: bool = False

    time_tracker_project_id: Optional[str] = None
    time_tracker_client_project_id: Optional[str] = None

    overflow: OverflowMap = field(default_factory=dict)
    property_key_map: Dict[str, str] = field(default_factory=dict)
    last_synced_at: Optional[datetime] = None

    @property
    def primary_developer_id(self) -> Optional[str]:
        return self.developer_ids[0] if self.developer_ids else None


@dataclass
class TeamMember:
    """Miembro del equipo."""

    external_id: str
    name: Optional[str] = None
    work_tracker_user_id: Optional[str] = None
    email: Optional[str] = None
    company_email: Optional[str] = None
    personal_email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    departments: List[str] = field(default_factory=list)
    level: Optional[str] = None
    country: Optional[str] = None
    tech_stack: List[str] = field(default_factory=list)
    lead_ids: List[str] = field(default_factory=list)
    employment_status: Optional[str] = None
    is_active: bool = False
    hire_date: Optional[datetime] = None
    salary: Optional[float] = None

    overflow: OverflowMap = field(default_factory=dict)
    property_key_map: Dict[str, str] = field(default_factory=dict)
    last_synced_at: Optional[datetime] = None

    def hourly_rate(self, monthly_hours: float) -> Optional[float]:
        if self.salary is None or monthly_hours <= 0:
            return None
        return self.salary / monthly_hours


@dataclass
class Client:
    """Cliente."""

    external_id: str
    name: Optional[str] = None
    type: Optional[str] = None
    is_retired: bool = False
    source_created_at: Optional[datetime] = None

    overflow: OverflowMap = field(default_factory=dict)
    property_key_map: Dict[str, str] = field(default_factory=dict)
    last_synced_at: Optional[datetime] = None


@dataclass
class QITimeTrackerEntry:
    """Horas de quality inspection registradas como pagina en el work tracker."""

    external_id: str
    project_name: Optional[str] = None
    project_id: Optional[str] = None
    project_link: Optional[str] = None
    client_name: Optional[str] = None
    quality_inspector: Optional[str] = None
    entry_date: Optional[datetime] = None
    time_label: Optional[str] = None
    hours: Optional[float] = None

    overflow: OverflowMap = field(default_factory=dict)
    property_key_map: Dict[str, str] = field(default_factory=dict)
    last_synced_at: Optional[datetime] = None


@dataclass
class TimeTrackerUser:
    """Usuario del time tracker con su team member local resuelto."""

    external_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    team_member_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None


@dataclass
class TimeTrackerProject:
    """Proyecto del time tracker con card/cliente local resueltos."""

    external_id: str
    name: Optional[str] = None
    is_internal: bool = False
    card_id: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    match_strategy: Optional[str] = None
    last_synced_at: Optional[datetime] = None


@dataclass
class TimeEntry:
    """
    Worklog del time tracker.

    Clave de deduplicacion: (usuario externo, proyecto externo, fecha local,
    inicio del periodo en origen).
    """

    external_user_id: str
    external_project_id: str
    work_date: date
    period_start: Optional[datetime]
    seconds: float
    hours: float = 0.0
    cost: Optional[float] = None
    team_member_id: Optional[str] = None
    card_id: Optional[str] = None
    client_id: Optional[str] = None
    project_name: Optional[str] = None
    task_name: Optional[str] = None
    mode: Optional[str] = None
    last_synced_at: Optional[datetime] = None

    @property
    def entry_key(self) -> str:
        start = self.period_start.isoformat() if self.period_start else ""
        return (
            f"{self.external_user_id}:{self.external_project_id}:"
            f"{self.work_date.isoformat()}:{start}"
        )


@dataclass(frozen=True)
class StatusHistoryRecord:
    """Registro inmutable de un cambio de status."""

    entity_id: str
    status: str
    changed_at: datetime
    detected_at: datetime
    source: str
    id: Optional[int] = None


@dataclass
class SyncRun:
    """
    Resumen de una pasada de sync.

    Los contadores solo crecen y quedan congelados al finalizar.
    """

    run_id: str
    entity_type: str
    started_at: datetime
    scope: Optional[str] = None
    processed: int = 0
    failed: int = 0
    status: Optional[str] = None
    completed_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    _frozen: bool = field(default=False, repr=False, compare=False)

    @property
    def is_final(self) -> bool:
        return self._frozen

    def record_success(self) -> None:
        self._ensure_open()
        self.processed += 1

    def record_failure(self, error: str) -> None:
        self._ensure_open()
        self.failed += 1
        self.errors.append(error)

    def finalize(self, status: str, completed_at: datetime) -> None:
        self._ensure_open()
        self.status = status
        self.completed_at = completed_at
        self._frozen = True

    def _ensure_open(self) -> None:
        if self._frozen:
            raise RuntimeError(f"SyncRun {self.run_id} ya fue finalizado")


@dataclass
class MetricSample:
    """Valor de una metrica para (tipo, periodo, inicio, assignee)."""

    metric_type: str
    period_type: str
    period_start: datetime
    period_end: datetime
    value: float
    assignee_id: Optional[str] = None
    sample_size: int = 0
    calculated_at: Optional[datetime] = None
