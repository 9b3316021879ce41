"""
Transformacion de paginas del work tracker a entidades de dominio.

Para cada tipo de entidad:
1. Extrae las propiedades bien conocidas del catalogo (id primero, nombre
   como fallback) y registra el mapeo `nombre -> clave` usado.
2. Extrae el resto de propiedades de forma generica al overflow map con su
   nombre normalizado, saltando tipos excluidos, claves reservadas por los
   campos bien conocidos y claves duplicadas (gana la primera).
3. Calcula los campos derivados (fecha de completado, deadline, atraso,
   horas de diseno, cliente).
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from opsync.core.config import settings
from opsync.domain.entities.properties import OverflowMap, PropertyKind, PropertyValue
from opsync.domain.entities.records import (
    Client,
    ExternalPage,
    ProjectCard,
    QITimeTrackerEntry,
    TeamMember,
)
from opsync.infrastructure.external.work_tracker.property_catalog import (
    CLIENT_PROPERTIES,
    PROJECT_PROPERTIES,
    QI_TIME_TRACKER_PROPERTIES,
    TASK_DURATION,
    TEAM_MEMBER_PROPERTIES,
    WORK_TRACKER_USER_CANDIDATES,
    WORK_TRACKER_USER_NAME,
    PropertySpec,
)
from opsync.infrastructure.external.work_tracker.property_extractor import (
    extract_property,
    lookup_property,
    normalize_property_name,
)
from opsync.shared.constants.sync_constants import EXCLUDED_PROPERTY_TYPES
from opsync.shared.exceptions.base import AppException
from opsync.shared.exceptions.sync import ValidationError
from opsync.shared.utils.datetime_utils import parse_datetime

Sleep = Callable[[float], Awaitable[None]]

COMPLETION_FIELDS = ("ready_for_client_date", "done_date", "deployment_date")


class PageSource(Protocol):
    async def retrieve_page(self, page_id: str) -> Dict[str, Any]:
        ...


class ClientNameStore(Protocol):
    async def get_name(self, client_id: str) -> Optional[str]:
        ...


def parse_page(raw: Dict[str, Any]) -> ExternalPage:
    """
    Valida y construye una ExternalPage.

    Raises:
        ValidationError: si el payload no es una pagina con id.
    """
    if not isinstance(raw, dict) or not raw.get("id"):
        raise ValidationError("Pagina sin identificador", field="id")
    return ExternalPage.from_api(raw)


@dataclass
class WellKnownValues:
    """Resultado de extraer un catalogo sobre una pagina."""

    values: Dict[str, PropertyValue] = field(default_factory=dict)
    present: Set[str] = field(default_factory=set)
    key_map: Dict[str, str] = field(default_factory=dict)

    def text(self, name: str) -> Optional[str]:
        value = self.values.get(name)
        return value.as_text() if value is not None else None

    def number(self, name: str) -> Optional[float]:
        value = self.values.get(name)
        return value.as_number() if value is not None else None

    def ids(self, name: str) -> List[str]:
        value = self.values.get(name)
        return list(value.as_ids()) if value is not None else []

    def date_bounds(self, name: str) -> Tuple[Optional[datetime], Optional[datetime]]:
        """
        (start, end) de una propiedad fecha.

        Raises:
            ValidationError: si la fecha viene pero no se puede parsear.
        """
        value = self.values.get(name)
        if value is None or value.kind != PropertyKind.DATE:
            return None, None
        return _parse_bound(name, value.value.start), _parse_bound(name, value.value.end)

    def date(self, name: str) -> Optional[datetime]:
        return self.date_bounds(name)[0]


def _parse_bound(name: str, raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    parsed = parse_datetime(raw)
    if parsed is None:
        raise ValidationError(f"Fecha invalida en '{name}': {raw!r}", field=name)
    return parsed


def extract_well_known(properties: Dict[str, Any], catalog: Sequence[PropertySpec]) -> WellKnownValues:
    result = WellKnownValues()
    for spec in catalog:
        if lookup_property(properties, spec.identifier, spec.name) is None:
            continue
        result.present.add(spec.field)
        result.key_map[spec.name] = spec.field
        value = extract_property(properties, spec.identifier, spec.kind, spec.name)
        if value is not None:
            result.values[spec.field] = value
    return result


def build_overflow(
    properties: Dict[str, Any],
    catalog: Sequence[PropertySpec],
    reserved_keys: Iterable[str],
    key_map: Dict[str, str],
    extra_known: Iterable[str] = (),
) -> OverflowMap:
    """
    Extrae de forma generica las propiedades no catalogadas.

    Nunca pisa un campo bien conocido: las claves reservadas y las
    propiedades del catalogo (por id o nombre) se saltan.
    """
    known = {spec.identifier for spec in catalog} | {spec.name for spec in catalog} | set(extra_known)
    reserved = set(reserved_keys) | {normalize_property_name(spec.name) for spec in catalog}
    overflow: OverflowMap = {}

    for key, prop in properties.items():
        if not isinstance(prop, dict):
            continue
        prop_type = prop.get("type")
        if not prop_type or prop_type in EXCLUDED_PROPERTY_TYPES:
            continue
        if key in known or prop.get("id") in known:
            continue

        name = prop.get("name") or key
        normalized = normalize_property_name(name)
        if not normalized or normalized in reserved:
            continue
        if normalized in overflow:
            logger.debug(f"Clave duplicada '{normalized}' ({name}); se conserva la primera")
            continue

        value = extract_property(properties, key, prop_type, name)
        if value is None:
            continue
        overflow[normalized] = value
        key_map[name] = normalized

    return overflow


def _reserved_for(entity_cls: type) -> Set[str]:
    return {f.name for f in dataclasses.fields(entity_cls)}


def resolve_completion_date(card: ProjectCard, priority: Sequence[str]) -> Optional[datetime]:
    """Primera fecha presente segun la prioridad configurada."""
    for name in priority:
        value = getattr(card, name, None)
        if value is not None:
            return value
    return None


def resolve_is_late(late_value: Optional[PropertyValue], days_late: Optional[float]) -> bool:
    """
    Combina las representaciones historicas de "Late?".

    - booleano true
    - texto "true" / "yes" (sin distinguir mayusculas) o que contiene "LATE"
    - sin etiqueta: days_late > 0
    """
    if late_value is not None and late_value.value is not None:
        if late_value.kind == PropertyKind.BOOLEAN:
            return bool(late_value.value)
        label = late_value.as_text() or ""
        if label.strip().lower() in ("true", "yes"):
            return True
        return "LATE" in label
    return bool(days_late and days_late > 0)


class ClientNameResolver:
    """
    Resuelve el nombre de un cliente: store de clientes primero, fetch en
    vivo solo si no esta. Cachea por pasada (incluye los misses).
    """

    def __init__(
        self,
        store: Optional[ClientNameStore] = None,
        source: Optional[PageSource] = None,
    ) -> None:
        self._store = store
        self._source = source
        self._cache: Dict[str, Optional[str]] = {}
        self.store_hits = 0
        self.live_fetches = 0

    async def resolve(self, client_id: str) -> Optional[str]:
        if client_id in self._cache:
            return self._cache[client_id]

        name: Optional[str] = None
        if self._store is not None:
            try:
                name = await self._store.get_name(client_id)
            except SQLAlchemyError as e:
                logger.warning(f"Error buscando cliente {client_id} en el store: {e}")
            if name is not None:
                self.store_hits += 1

        if name is None and self._source is not None:
            logger.warning(f"Cliente {client_id} no esta en el store; consultando work tracker")
            self.live_fetches += 1
            try:
                raw = await self._source.retrieve_page(client_id)
                value = extract_property(raw.get("properties") or {}, "title", "title", "Name")
                name = value.as_text() if value is not None else None
            except AppException as e:
                logger.warning(f"No se pudo obtener el nombre del cliente {client_id}: {e.message}")

        self._cache[client_id] = name
        return name


class PageTransformer:
    """
    Construye entidades de dominio desde paginas del work tracker.

    Args:
        source: cliente del work tracker para lookups en vivo (tareas)
        client_names: resolvedor de nombres de cliente
        completion_priority: campos de fecha en orden de prioridad
        design_project_types: tipos de proyecto cuyas horas de diseno se suman de las tareas
    """

    def __init__(
        self,
        *,
        source: Optional[PageSource] = None,
        client_names: Optional[ClientNameResolver] = None,
        completion_priority: Optional[Sequence[str]] = None,
        design_project_types: Optional[Sequence[str]] = None,
        task_delay_s: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._source = source
        self._client_names = client_names or ClientNameResolver(source=source)
        priority = completion_priority or settings.completion_date_priority
        unknown = [name for name in priority if name not in COMPLETION_FIELDS]
        if unknown:
            logger.warning(f"Campos de completado desconocidos ignorados: {unknown}")
        self._completion_priority = [name for name in priority if name in COMPLETION_FIELDS]
        self._design_types = set(design_project_types or settings.design_project_types)
        self._task_delay_s = settings.TASK_FETCH_DELAY_S if task_delay_s is None else task_delay_s
        self._sleep = sleep

    @property
    def client_names(self) -> ClientNameResolver:
        return self._client_names

    async def to_project_card(self, page: ExternalPage) -> ProjectCard:
        """
        Transforma una pagina de proyecto a ProjectCard.

        Raises:
            ValidationError: si una fecha bien conocida es invalida.
        """
        props = page.properties
        known = extract_well_known(props, PROJECT_PROPERTIES)
        original_due_start, original_due_end = known.date_bounds("original_due_date")

        card = ProjectCard(
            external_id=page.id,
            name=known.text("name") or "Untitled",
            status=known.text("status"),
            type=known.text("type"),
            url=page.url,
            archived=page.archived,
            developer_ids=known.ids("developer_ids"),
            lead_developer_ids=known.ids("lead_developer_ids"),
            quality_inspector_ids=known.ids("quality_inspector_ids"),
            designer_ids=known.ids("designer_ids"),
            account_manager_ids=known.ids("account_manager_ids"),
            task_ids=known.ids("task_ids"),
            qi_entry_ids=known.ids("qi_entry_ids"),
            source_created_at=known.date("source_created_at") or page.created_time,
            source_updated_at=known.date("source_updated_at") or page.last_edited_time,
            dev_due_date=known.date("dev_due_date"),
            original_due_start=original_due_start,
            original_due_end=original_due_end,
            qi_start_date=known.date("qi_start_date"),
            qi_end_date=known.date("qi_end_date"),
            status_set_to_qi_date=known.date("status_set_to_qi_date"),
            done_date=known.date("done_date"),
            ready_for_client_date=known.date("ready_for_client_date"),
            deployment_date=known.date("deployment_date"),
            pushback_count=known.number("pushback_count"),
            client_pushback_count=known.number("client_pushback_count"),
            quantifiable_client_pushback=known.number("quantifiable_client_pushback"),
            projected_dev_hours=known.number("projected_dev_hours"),
            actual_dev_hours=known.number("actual_dev_hours"),
            total_project_hours=known.number("total_project_hours"),
            projected_qi_hours=known.number("projected_qi_hours"),
            total_qi_hours=known.number("total_qi_hours"),
            buffer_hours=known.number("buffer_hours"),
            time_tracker_project_id=known.text("time_tracker_project_id") or None,
            time_tracker_client_project_id=known.text("time_tracker_client_project_id") or None,
        )

        card.completion_date = resolve_completion_date(card, self._completion_priority)
        card.deadline = original_due_start or original_due_end

        # Propiedad presente pero formula en null -> 0
        if "days_late" in known.present:
            days_late = known.number("days_late")
            card.days_late = days_late if days_late is not None else 0
        late_value = known.values.get("late_label")
        if late_value is not None and late_value.kind == PropertyKind.TEXT:
            card.late_label = late_value.value
        card.is_late = resolve_is_late(late_value, card.days_late)

        client_ids = known.ids("client_ids")
        if client_ids:
            card.client_id = client_ids[0]
            card.client_name = await self._client_names.resolve(client_ids[0])

        if card.type in self._design_types and card.task_ids:
            card.projected_design_hours = await self._sum_task_durations(page.id, card.task_ids)

        card.property_key_map = dict(known.key_map)
        card.overflow = build_overflow(
            props, PROJECT_PROPERTIES, _reserved_for(ProjectCard), card.property_key_map
        )
        return card

    async def _sum_task_durations(self, page_id: str, task_ids: List[str]) -> Optional[float]:
        if self._source is None:
            return None
        total = 0.0
        found = False
        for index, task_id in enumerate(task_ids):
            if index > 0:
                await self._sleep(self._task_delay_s)
            try:
                raw = await self._source.retrieve_page(task_id)
            except AppException as e:
                logger.warning(f"No se pudo leer la tarea {task_id} de {page_id}: {e.message}")
                continue
            duration = task_duration(raw.get("properties") or {})
            if duration is not None:
                total += duration
                found = True
        return total if found else None

    def to_team_member(self, page: ExternalPage) -> TeamMember:
        props = page.properties
        known = extract_well_known(props, TEAM_MEMBER_PROPERTIES)

        user_id = None
        for candidate in WORK_TRACKER_USER_CANDIDATES:
            value = extract_property(props, candidate, "people", WORK_TRACKER_USER_NAME)
            if value is not None and value.as_ids():
                user_id = value.as_ids()[0]
                known.key_map[WORK_TRACKER_USER_NAME] = "work_tracker_user_id"
                break
        if user_id is None:
            user_id = page.created_by_id
        name = known.text("name") or "Unknown"
        if user_id is None:
            logger.warning(f"Sin usuario del work tracker para {name} (pagina {page.id})")

        company_email = known.text("company_email")
        personal_email = known.text("personal_email")
        employment_status = known.text("employment_status")
        member = TeamMember(
            external_id=page.id,
            name=name,
            work_tracker_user_id=user_id,
            email=company_email or personal_email,
            company_email=company_email,
            personal_email=personal_email,
            phone=known.text("phone"),
            position=known.text("position") or None,
            departments=known.ids("departments"),
            level=known.text("level"),
            country=known.text("country"),
            tech_stack=known.ids("tech_stack"),
            lead_ids=known.ids("lead_ids"),
            employment_status=employment_status,
            is_active=employment_status == "Active",
            hire_date=known.date("hire_date"),
            salary=known.number("salary"),
        )
        member.property_key_map = dict(known.key_map)
        member.overflow = build_overflow(
            props,
            TEAM_MEMBER_PROPERTIES,
            _reserved_for(TeamMember),
            member.property_key_map,
            extra_known=WORK_TRACKER_USER_CANDIDATES,
        )
        return member

    def to_client(self, page: ExternalPage) -> Client:
        props = page.properties
        known = extract_well_known(props, CLIENT_PROPERTIES)
        client_type = known.text("type")
        client = Client(
            external_id=page.id,
            name=known.text("name") or "Unknown Client",
            type=client_type,
            is_retired=bool(client_type and "retired" in client_type.lower()),
            source_created_at=known.date("source_created_at") or page.created_time,
        )
        client.property_key_map = dict(known.key_map)
        client.overflow = build_overflow(
            props, CLIENT_PROPERTIES, _reserved_for(Client), client.property_key_map
        )
        return client

    def to_qi_entry(self, page: ExternalPage) -> QITimeTrackerEntry:
        props = page.properties
        known = extract_well_known(props, QI_TIME_TRACKER_PROPERTIES)
        entry = QITimeTrackerEntry(
            external_id=page.id,
            project_name=known.text("project_name") or "Unknown Project",
            project_id=known.text("project_id") or None,
            project_link=known.text("project_link"),
            client_name=known.text("client_name") or None,
            quality_inspector=known.text("quality_inspector") or None,
            entry_date=known.date("entry_date"),
            time_label=known.text("time_label") or None,
            hours=known.number("hours") or 0,
        )
        entry.property_key_map = dict(known.key_map)
        entry.overflow = build_overflow(
            props, QI_TIME_TRACKER_PROPERTIES, _reserved_for(QITimeTrackerEntry), entry.property_key_map
        )
        return entry


def task_duration(properties: Dict[str, Any]) -> Optional[float]:
    """
    Duracion de una tarea: propiedad Duration por id/nombre; si no esta,
    la primera number/formula cuyo nombre mencione duration u hours.
    """
    value = extract_property(properties, TASK_DURATION.identifier, TASK_DURATION.kind, TASK_DURATION.name)
    duration = value.as_number() if value is not None else None
    if duration:
        return duration

    for key, prop in properties.items():
        if not isinstance(prop, dict) or prop.get("type") not in ("number", "formula"):
            continue
        name = (prop.get("name") or key).lower()
        if "duration" in name or "hours" in name:
            candidate = extract_property(properties, key, prop["type"], name)
            number = candidate.as_number() if candidate is not None else None
            if number and number > 0:
                return number
    return duration
