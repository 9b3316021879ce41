"""
Modelos de base de datos (ORM).

Las columnas de cada modelo sincronizado se llaman igual que los campos de
la entidad de dominio correspondiente; los repositorios mapean por nombre.
"""
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from opsync.infrastructure.database.session import Base


class CardModel(Base):
    """Cards de proyecto del work tracker."""

    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(500), nullable=True)
    status = Column(String(100), nullable=True, index=True)
    type = Column(String(100), nullable=True)
    url = Column(String(500), nullable=True)
    archived = Column(Boolean, default=False, nullable=False)

    client_id = Column(String(64), nullable=True, index=True)
    client_name = Column(String(255), nullable=True)
    developer_ids = Column(JSON, nullable=False, default=list)
    lead_developer_ids = Column(JSON, nullable=False, default=list)
    quality_inspector_ids = Column(JSON, nullable=False, default=list)
    designer_ids = Column(JSON, nullable=False, default=list)
    account_manager_ids = Column(JSON, nullable=False, default=list)
    task_ids = Column(JSON, nullable=False, default=list)
    qi_entry_ids = Column(JSON, nullable=False, default=list)

    source_created_at = Column(DateTime(timezone=True), nullable=True, index=True)
    source_updated_at = Column(DateTime(timezone=True), nullable=True)
    dev_due_date = Column(DateTime(timezone=True), nullable=True)
    original_due_start = Column(DateTime(timezone=True), nullable=True)
    original_due_end = Column(DateTime(timezone=True), nullable=True)
    qi_start_date = Column(DateTime(timezone=True), nullable=True)
    qi_end_date = Column(DateTime(timezone=True), nullable=True)
    status_set_to_qi_date = Column(DateTime(timezone=True), nullable=True)
    done_date = Column(DateTime(timezone=True), nullable=True)
    ready_for_client_date = Column(DateTime(timezone=True), nullable=True)
    deployment_date = Column(DateTime(timezone=True), nullable=True)
    completion_date = Column(DateTime(timezone=True), nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)

    pushback_count = Column(Float, nullable=True)
    client_pushback_count = Column(Float, nullable=True)
    quantifiable_client_pushback = Column(Float, nullable=True)

    projected_dev_hours = Column(Float, nullable=True)
    actual_dev_hours = Column(Float, nullable=True)
    total_project_hours = Column(Float, nullable=True)
    projected_qi_hours = Column(Float, nullable=True)
    total_qi_hours = Column(Float, nullable=True)
    buffer_hours = Column(Float, nullable=True)
    projected_design_hours = Column(Float, nullable=True)

    days_late = Column(Float, nullable=True)
    late_label = Column(String(100), nullable=True)
    is_late = Column(Boolean, default=False, nullable=False)

    time_tracker_project_id = Column(String(100), nullable=True, index=True)
    time_tracker_client_project_id = Column(String(100), nullable=True, index=True)

    overflow = Column(JSON, nullable=False, default=dict)
    property_key_map = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Card(external_id={self.external_id}, name={self.name}, status={self.status})>"


class TeamMemberModel(Base):
    """Miembros del equipo."""

    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    work_tracker_user_id = Column(String(64), nullable=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    company_email = Column(String(255), nullable=True)
    personal_email = Column(String(255), nullable=True)
    phone = Column(String(100), nullable=True)
    position = Column(String(255), nullable=True)
    departments = Column(JSON, nullable=False, default=list)
    level = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    tech_stack = Column(JSON, nullable=False, default=list)
    lead_ids = Column(JSON, nullable=False, default=list)
    employment_status = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=False, nullable=False)
    hire_date = Column(DateTime(timezone=True), nullable=True)
    salary = Column(Float, nullable=True)

    overflow = Column(JSON, nullable=False, default=dict)
    property_key_map = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<TeamMember(external_id={self.external_id}, name={self.name})>"


class ClientModel(Base):
    """Clientes."""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True, index=True)
    type = Column(String(100), nullable=True)
    is_retired = Column(Boolean, default=False, nullable=False)
    source_created_at = Column(DateTime(timezone=True), nullable=True)

    overflow = Column(JSON, nullable=False, default=dict)
    property_key_map = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Client(external_id={self.external_id}, name={self.name})>"


class QITimeTrackerEntryModel(Base):
    """Horas de QI registradas en el work tracker."""

    __tablename__ = "qi_time_tracker_entries"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    project_name = Column(String(500), nullable=True)
    project_id = Column(String(64), nullable=True, index=True)
    project_link = Column(String(500), nullable=True)
    client_name = Column(String(255), nullable=True)
    quality_inspector = Column(String(255), nullable=True)
    entry_date = Column(DateTime(timezone=True), nullable=True)
    time_label = Column(String(100), nullable=True)
    hours = Column(Float, nullable=True)

    overflow = Column(JSON, nullable=False, default=dict)
    property_key_map = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class TimeTrackerUserModel(Base):
    """Usuarios del time tracker."""

    __tablename__ = "time_tracker_users"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    role = Column(String(100), nullable=True)
    team_member_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class TimeTrackerProjectModel(Base):
    """Proyectos del time tracker."""

    __tablename__ = "time_tracker_projects"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(500), nullable=True)
    is_internal = Column(Boolean, default=False, nullable=False)
    card_id = Column(String(64), nullable=True, index=True)
    client_id = Column(String(64), nullable=True, index=True)
    client_name = Column(String(255), nullable=True)
    match_strategy = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class TimeEntryModel(Base):
    """Worklogs del time tracker, deduplicados por clave compuesta."""

    __tablename__ = "time_entries"
    __table_args__ = (
        UniqueConstraint(
            "external_user_id", "external_project_id", "work_date", "period_start",
            name="uq_time_entries_dedup"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    entry_key = Column(String(300), nullable=False, unique=True, index=True)
    external_user_id = Column(String(64), nullable=False, index=True)
    external_project_id = Column(String(64), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)
    period_start = Column(DateTime(timezone=True), nullable=True)
    seconds = Column(Float, nullable=False, default=0)
    hours = Column(Float, nullable=False, default=0)
    cost = Column(Float, nullable=True)
    team_member_id = Column(String(64), nullable=True, index=True)
    card_id = Column(String(64), nullable=True, index=True)
    client_id = Column(String(64), nullable=True, index=True)
    project_name = Column(String(500), nullable=True)
    task_name = Column(String(500), nullable=True)
    mode = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class SyncRunModel(Base):
    """Log append-only de pasadas de sync."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(String(36), nullable=False, unique=True, index=True)
    entity_type = Column(String(50), nullable=False, index=True)
    scope = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)
    processed = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    errors = Column(JSON, nullable=False, default=list)
    diagnostics = Column(JSON, nullable=False, default=dict)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<SyncRun(run_id={self.run_id}, entity_type={self.entity_type}, status={self.status})>"


class CardStatusHistoryModel(Base):
    """Historial append-only de cambios de status."""

    __tablename__ = "card_status_history"

    id = Column(Integer, primary_key=True, index=True)
    entity_id = Column(String(64), nullable=False, index=True)
    status = Column(String(100), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False)
    detected_at = Column(DateTime(timezone=True), nullable=False)
    source = Column(String(50), nullable=False)


class MetricSampleModel(Base):
    """Metricas periodicas recalculadas de forma idempotente."""

    __tablename__ = "metric_samples"
    __table_args__ = (
        UniqueConstraint(
            "metric_type", "period_type", "period_start", "assignee_key",
            name="uq_metric_samples_key"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    metric_type = Column(String(50), nullable=False, index=True)
    period_type = Column(String(20), nullable=False)
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False)
    # "" representa la metrica global (sin assignee)
    assignee_key = Column(String(64), nullable=False, default="")
    value = Column(Float, nullable=False)
    sample_size = Column(Integer, nullable=False, default=0)
    calculated_at = Column(DateTime(timezone=True), nullable=False)
