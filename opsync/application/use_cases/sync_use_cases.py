"""
Casos de uso de sincronizacion: work tracker + time tracker -> store.

Cada entrada publica ejecuta una pasada completa y retorna su SyncRun:
1. valida configuracion (ConfigurationError antes de cualquier fetch)
2. fetch completo (un fallo aqui deja la pasada en `failed`)
3. procesa en lotes: transformar -> upsert -> commit por item; un item
   fallido hace rollback, suma al contador y la pasada continua
4. finaliza el SyncRun (success / partial / failed) y lo persiste
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsync.application.dto.sync_dto import CompositeSyncReport
from opsync.application.services.entity_matcher import (
    CardIndex,
    is_internal_project,
    match_project,
    match_users,
    resolve_entry_target,
)
from opsync.application.services.metrics_aggregator import MetricsAggregator
from opsync.application.services.page_transformer import (
    ClientNameResolver,
    PageTransformer,
    parse_page,
)
from opsync.application.services.status_history import StatusHistoryRecorder
from opsync.application.use_cases.sync_run import (
    SyncStageTracker,
    new_sync_run,
    resolve_run_status,
)
from opsync.core.config import Settings, settings
from opsync.domain.entities.records import SyncRun, TimeEntry, TimeTrackerProject, TimeTrackerUser
from opsync.infrastructure.external.time_tracker.chunked_fetcher import ChunkedRangeFetcher
from opsync.infrastructure.external.time_tracker.client import TimeTrackerClient
from opsync.infrastructure.external.time_tracker.payload import map_worklog_item
from opsync.infrastructure.external.work_tracker.client import WorkTrackerClient
from opsync.infrastructure.external.work_tracker.paginated_fetcher import PaginatedFetcher
from opsync.infrastructure.external.work_tracker.property_catalog import (
    CLIENT_RELATION,
    client_relation_filter,
)
from opsync.infrastructure.external.work_tracker.property_extractor import extract_property
from opsync.infrastructure.repositories.card_repository import CardRepository
from opsync.infrastructure.repositories.client_repository import ClientRepository
from opsync.infrastructure.repositories.metric_sample_repository import MetricSampleRepository
from opsync.infrastructure.repositories.qi_time_tracker_repository import QITimeTrackerRepository
from opsync.infrastructure.repositories.status_history_repository import StatusHistoryRepository
from opsync.infrastructure.repositories.sync_run_repository import SyncRunRepository
from opsync.infrastructure.repositories.team_member_repository import TeamMemberRepository
from opsync.infrastructure.repositories.time_tracker_repository import (
    TimeEntryRepository,
    TimeTrackerProjectRepository,
    TimeTrackerUserRepository,
)
from opsync.shared.constants.sync_constants import EntityType, PeriodType, SyncStage, SyncStatus
from opsync.shared.exceptions.base import AppException
from opsync.shared.exceptions.sync import (
    ConfigurationError,
    PersistenceError,
    TimeTrackerApiError,
    TransientFetchError,
    ValidationError,
    WorkTrackerApiError,
)
from opsync.shared.utils.datetime_utils import parse_datetime, to_local_date, utc_now

Sleep = Callable[[float], Awaitable[None]]
FetchStep = Callable[[SyncRun], Awaitable[List[Any]]]
ProcessStep = Callable[[Any, datetime], Awaitable[None]]

_FETCH_ERRORS = (TransientFetchError, WorkTrackerApiError, TimeTrackerApiError, SQLAlchemyError)

WORK_TRACKER_CREDENTIALS = ("WORK_TRACKER_API_KEY",)
TIME_TRACKER_CREDENTIALS = ("TIME_TRACKER_API_TOKEN", "TIME_TRACKER_COMPANY_ID")


def _batches(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _item_label(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("id") or item.get("userId") or item.get("user_id") or "?")
    return str(item)


class SyncUseCases:
    """
    Orquestador de las pasadas de sync.

    Args:
        db: sesion async del store
        work_tracker: cliente del work tracker (por defecto desde settings)
        time_tracker: cliente del time tracker (por defecto desde settings)
        config: configuracion (por defecto la instancia global)
        sleep: corrutina de espera; se inyecta en los tests
    """

    def __init__(
        self,
        db: AsyncSession,
        work_tracker: Optional[WorkTrackerClient] = None,
        time_tracker: Optional[TimeTrackerClient] = None,
        *,
        config: Optional[Settings] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.db = db
        self.config = config or settings
        self.work_tracker = work_tracker or WorkTrackerClient()
        self.time_tracker = time_tracker or TimeTrackerClient()
        self._sleep = sleep

        self.cards = CardRepository(db)
        self.clients = ClientRepository(db)
        self.team_members = TeamMemberRepository(db)
        self.qi_entries = QITimeTrackerRepository(db)
        self.tt_users = TimeTrackerUserRepository(db)
        self.tt_projects = TimeTrackerProjectRepository(db)
        self.time_entries = TimeEntryRepository(db)
        self.sync_runs = SyncRunRepository(db)
        self.history = StatusHistoryRecorder(StatusHistoryRepository(db))

    # =========================================================================
    # Loop generico
    # =========================================================================

    def _paginated_fetcher(self) -> PaginatedFetcher:
        return PaginatedFetcher(
            self.work_tracker, delay_s=self.config.PAGE_REQUEST_DELAY_S, sleep=self._sleep
        )

    def _page_transformer(self) -> PageTransformer:
        return PageTransformer(
            source=self.work_tracker,
            client_names=ClientNameResolver(store=self.clients, source=self.work_tracker),
            completion_priority=self.config.completion_date_priority,
            design_project_types=self.config.design_project_types,
            task_delay_s=self.config.TASK_FETCH_DELAY_S,
            sleep=self._sleep,
        )

    async def _run_pass(
        self,
        entity_type: EntityType,
        fetch: FetchStep,
        process: ProcessStep,
        scope: Optional[str] = None,
        label: Callable[[Any], str] = _item_label,
        before_finalize: Optional[Callable[[SyncRun], None]] = None,
    ) -> SyncRun:
        run = new_sync_run(entity_type.value, scope)
        tracker = SyncStageTracker(run)
        log = tracker.log
        log.info(f"Iniciando sync de {entity_type.value}" + (f" (scope {scope})" if scope else ""))

        tracker.advance(SyncStage.FETCHING)
        try:
            items = await fetch(run)
        except _FETCH_ERRORS as e:
            message = e.message if isinstance(e, AppException) else str(e)
            return await self._fail_fetch(run, tracker, message)
        except Exception as e:
            log.exception(f"Error inesperado en fetch de {entity_type.value}: {e}")
            return await self._fail_fetch(run, tracker, f"{type(e).__name__}: {e}")

        run.diagnostics.setdefault("fetched", len(items))
        tracker.advance(SyncStage.PROCESSING)
        synced_at = run.started_at
        persistence_failures = 0

        for batch_index, batch in enumerate(_batches(items, self.config.SYNC_BATCH_SIZE)):
            if batch_index > 0:
                await self._sleep(self.config.SYNC_BATCH_DELAY_S)
            log.debug(f"Lote {batch_index + 1}: {len(batch)} items")

            for position, item in enumerate(batch):
                if position > 0:
                    await self._sleep(self.config.SYNC_ITEM_DELAY_S)
                try:
                    await process(item, synced_at)
                    await self._commit()
                    run.record_success()
                except AppException as e:
                    await self._rollback()
                    if isinstance(e, PersistenceError):
                        persistence_failures += 1
                    log.warning(f"Item {label(item)} fallido: {e.message}")
                    run.record_failure(f"{label(item)}: {e.message}")
                except Exception as e:
                    await self._rollback()
                    log.exception(f"Error inesperado procesando {label(item)}: {e}")
                    run.record_failure(f"{label(item)}: {e}")

        tracker.advance(SyncStage.FINALIZING)
        if before_finalize is not None:
            before_finalize(run)
        status = resolve_run_status(run, all_persistence_failures=persistence_failures == run.failed)
        run.finalize(status.value, utc_now())
        await self._save_run(run)
        tracker.advance(SyncStage.DONE)

        log.info(
            f"Sync de {entity_type.value} {run.status}: {run.processed} ok, {run.failed} fallidos"
        )
        return run

    async def _fail_fetch(self, run: SyncRun, tracker: SyncStageTracker, message: str) -> SyncRun:
        tracker.fail(message)
        await self._rollback()
        run.errors.append(f"Fetch fallido: {message}")
        run.finalize(SyncStatus.FAILED.value, utc_now())
        await self._save_run(run)
        return run

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Error en commit: {e}") from e

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Error en rollback: {e}")

    async def _save_run(self, run: SyncRun) -> None:
        """Persiste el SyncRun; un fallo aqui se loguea y no tapa el resultado."""
        try:
            await self.sync_runs.add(run)
            await self.db.commit()
        except Exception as e:
            logger.exception(f"No se pudo guardar el SyncRun {run.run_id}: {e}")
            await self._rollback()

    # =========================================================================
    # Work tracker
    # =========================================================================

    async def sync_clients(self) -> SyncRun:
        self.config.require(*WORK_TRACKER_CREDENTIALS, "CLIENTS_DB_ID")
        transformer = self._page_transformer()

        async def fetch(run: SyncRun) -> List[Dict[str, Any]]:
            return await self._paginated_fetcher().fetch_all(self.config.CLIENTS_DB_ID)

        async def process(raw: Dict[str, Any], synced_at: datetime) -> None:
            client = transformer.to_client(parse_page(raw))
            await self.clients.upsert(client, synced_at)

        return await self._run_pass(EntityType.CLIENTS, fetch, process)

    async def sync_team_members(self) -> SyncRun:
        self.config.require(*WORK_TRACKER_CREDENTIALS, "TEAM_MEMBERS_DB_ID")
        transformer = self._page_transformer()

        async def fetch(run: SyncRun) -> List[Dict[str, Any]]:
            return await self._paginated_fetcher().fetch_all(self.config.TEAM_MEMBERS_DB_ID)

        async def process(raw: Dict[str, Any], synced_at: datetime) -> None:
            member = transformer.to_team_member(parse_page(raw))
            await self.team_members.upsert(member, synced_at)

        return await self._run_pass(EntityType.TEAM_MEMBERS, fetch, process)

    async def sync_projects(self, client_id: Optional[str] = None, limit: Optional[int] = None) -> SyncRun:
        """
        Sincroniza las cards de proyecto.

        Con `client_id` el filtro va en la query; sin el, se descartan despues
        del fetch las cards de clientes retirados.
        """
        self.config.require(*WORK_TRACKER_CREDENTIALS, "PROJECTS_DB_ID")
        transformer = self._page_transformer()

        async def fetch(run: SyncRun) -> List[Dict[str, Any]]:
            query_filter = client_relation_filter(client_id) if client_id else None
            pages = await self._paginated_fetcher().fetch_all(
                self.config.PROJECTS_DB_ID, filter=query_filter, limit=limit
            )
            run.diagnostics["fetched"] = len(pages)
            if client_id:
                return pages

            retired = await self._retired_client_ids()
            kept = [page for page in pages if _first_client_id(page) not in retired]
            run.diagnostics["filtered_retired"] = len(pages) - len(kept)
            if len(kept) < len(pages):
                logger.info(f"Descartadas {len(pages) - len(kept)} cards de clientes retirados")
            return kept

        async def process(raw: Dict[str, Any], synced_at: datetime) -> None:
            card = await transformer.to_project_card(parse_page(raw))
            await self.cards.upsert(card, synced_at)
            await self.history.record(card.external_id, card.status, changed_at=card.source_updated_at)

        def summarize(run: SyncRun) -> None:
            run.diagnostics["client_store_hits"] = transformer.client_names.store_hits
            run.diagnostics["client_live_fetches"] = transformer.client_names.live_fetches

        return await self._run_pass(
            EntityType.PROJECTS, fetch, process, scope=client_id, before_finalize=summarize
        )

    async def _retired_client_ids(self) -> Set[str]:
        """IDs de clientes retirados: store primero, fetch en vivo si el store esta vacio."""
        if await self.clients.count() > 0:
            return await self.clients.get_retired_ids()

        if not self.config.CLIENTS_DB_ID:
            logger.warning("Store de clientes vacio y sin CLIENTS_DB_ID; no se filtran retirados")
            return set()

        logger.warning("Store de clientes vacio; consultando clientes en el work tracker")
        transformer = PageTransformer(source=self.work_tracker, sleep=self._sleep)
        retired: Set[str] = set()
        for raw in await self._paginated_fetcher().fetch_all(self.config.CLIENTS_DB_ID):
            try:
                client = transformer.to_client(parse_page(raw))
            except ValidationError as e:
                logger.warning(f"Cliente invalido ignorado: {e.message}")
                continue
            if client.is_retired:
                retired.add(client.external_id)
        return retired

    async def sync_qi_time_tracker_entries(self) -> SyncRun:
        self.config.require(*WORK_TRACKER_CREDENTIALS, "QI_TIME_TRACKER_DB_ID")
        transformer = self._page_transformer()

        async def fetch(run: SyncRun) -> List[Dict[str, Any]]:
            return await self._paginated_fetcher().fetch_all(self.config.QI_TIME_TRACKER_DB_ID)

        async def process(raw: Dict[str, Any], synced_at: datetime) -> None:
            entry = transformer.to_qi_entry(parse_page(raw))
            await self.qi_entries.upsert(entry, synced_at)

        return await self._run_pass(EntityType.QI_TIME_TRACKER, fetch, process)

    # =========================================================================
    # Time tracker
    # =========================================================================

    async def sync_time_tracker_users(self) -> SyncRun:
        self.config.require(*TIME_TRACKER_CREDENTIALS)
        matches: Dict[str, str] = {}

        async def fetch(run: SyncRun) -> List[Dict[str, Any]]:
            raw_users = await self.time_tracker.fetch_users()
            users = [u for u in (_user_from_raw(raw) for raw in raw_users) if u.external_id]
            members = await self.team_members.list_all()
            matches.update(match_users(users, members))
            run.diagnostics["matched"] = len(matches)
            run.diagnostics["unmatched"] = len(users) - len(matches)
            if len(matches) < len(users):
                logger.warning(f"{len(users) - len(matches)} usuarios del time tracker sin team member")
            return raw_users

        async def process(raw: Dict[str, Any], synced_at: datetime) -> None:
            user = _user_from_raw(raw)
            if not user.external_id:
                raise ValidationError("Usuario del time tracker sin id", field="id")
            user.team_member_id = matches.get(user.external_id)
            await self.tt_users.upsert(user, synced_at)

        return await self._run_pass(EntityType.TIME_TRACKER_USERS, fetch, process)

    async def sync_time_tracker_projects(self) -> SyncRun:
        self.config.require(*TIME_TRACKER_CREDENTIALS)
        context: Dict[str, Any] = {}
        strategies: Dict[str, int] = {}

        async def fetch(run: SyncRun) -> List[Dict[str, Any]]:
            raw_projects = await self.time_tracker.fetch_projects()
            context["index"] = CardIndex(await self.cards.list_with_time_tracker_ids())
            context["client_names"] = await self.clients.get_names()
            return raw_projects

        async def process(raw: Dict[str, Any], synced_at: datetime) -> None:
            project_id = raw.get("id")
            if not project_id:
                raise ValidationError("Proyecto del time tracker sin id", field="id")
            keywords = self.config.internal_project_keywords
            project = TimeTrackerProject(
                external_id=str(project_id),
                name=raw.get("name"),
                is_internal=is_internal_project(raw.get("name"), keywords),
            )
            match = match_project(
                project,
                context["index"],
                context["client_names"],
                min_name_length=self.config.PROJECT_NAME_MATCH_MIN_LENGTH,
                internal_keywords=keywords,
            )
            if match is not None:
                project.card_id = match.card_id
                project.client_id = match.client_id
                project.client_name = match.client_name
                project.match_strategy = match.strategy
                strategies[match.strategy] = strategies.get(match.strategy, 0) + 1
            await self.tt_projects.upsert(project, synced_at)

        def summarize(run: SyncRun) -> None:
            run.diagnostics["match_strategies"] = dict(strategies)

        return await self._run_pass(
            EntityType.TIME_TRACKER_PROJECTS, fetch, process, before_finalize=summarize
        )

    async def sync_time_entries(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SyncRun:
        """
        Sincroniza worklogs de [start, end) por ventanas.

        Por defecto cubre los ultimos TIME_TRACKER_LOOKBACK_DAYS dias.
        Las ventanas saltadas cuentan como fallos de la pasada.
        """
        self.config.require(*TIME_TRACKER_CREDENTIALS)
        end = end or utc_now()
        start = start or end - timedelta(days=self.config.TIME_TRACKER_LOOKBACK_DAYS)
        offset = self.config.TIME_TRACKER_UTC_OFFSET_HOURS
        context: Dict[str, Any] = {}

        async def fetch(run: SyncRun) -> List[Dict[str, Any]]:
            users = await self.tt_users.list_all()
            if not users:
                logger.warning("No hay usuarios del time tracker en el store; sincroniza usuarios primero")
                run.diagnostics["reason"] = "no_time_tracker_users"
                return []

            context["users"] = {user.external_id: user for user in users}
            context["members"] = {m.external_id: m for m in await self.team_members.list_all()}
            context["projects"] = {p.external_id: p for p in await self.tt_projects.list_all()}
            context["index"] = CardIndex(await self.cards.list_with_time_tracker_ids())
            user_ids = list(context["users"])

            async def fetch_window(window_start: datetime, window_end: datetime) -> List[Any]:
                return await self.time_tracker.fetch_worklogs(window_start, window_end, user_ids)

            fetcher = ChunkedRangeFetcher(
                fetch_window,
                window_days=(
                    self.config.WORKLOG_PRIMARY_WINDOW_DAYS,
                    self.config.WORKLOG_FALLBACK_WINDOW_DAYS,
                ),
                delay_s=self.config.WORKLOG_WINDOW_DELAY_S,
                sleep=self._sleep,
            )
            result = await fetcher.fetch(start, end)
            run.diagnostics["windows_fetched"] = result.windows_fetched
            run.diagnostics["recovered_windows"] = [w.label() for w in result.recovered_windows]
            run.diagnostics["skipped_windows"] = [w.label() for w in result.skipped_windows]
            for error in result.errors:
                run.record_failure(error)
            return result.items

        async def process(raw: Dict[str, Any], synced_at: datetime) -> None:
            entry = self._build_time_entry(raw, start, offset, context)
            await self.time_entries.upsert(entry, synced_at)

        return await self._run_pass(
            EntityType.TIME_ENTRIES,
            fetch,
            process,
            scope=f"{start.date().isoformat()}..{end.date().isoformat()}",
        )

    def _build_time_entry(
        self,
        raw: Dict[str, Any],
        range_start: datetime,
        offset: int,
        context: Dict[str, Any],
    ) -> TimeEntry:
        """
        Construye un TimeEntry desde un worklog crudo.

        Raises:
            ValidationError: sin usuario, sin proyecto o sin tiempo positivo.
        """
        item = map_worklog_item(raw)
        if not item.user_id:
            raise ValidationError("Worklog sin usuario", field="user_id")
        if not item.project_id:
            raise ValidationError("Worklog sin proyecto", field="project_id")
        if item.seconds <= 0:
            raise ValidationError(f"Worklog sin tiempo registrado: {item.seconds}", field="time")

        period_start = parse_datetime(item.start)
        if item.start and period_start is None:
            raise ValidationError(f"Inicio de worklog invalido: {item.start!r}", field="start")
        work_date = to_local_date(period_start, offset) if period_start else range_start.date()

        user = context["users"].get(item.user_id)
        team_member_id = user.team_member_id if user else None
        member = context["members"].get(team_member_id) if team_member_id else None
        rate = member.hourly_rate(self.config.MONTHLY_WORK_HOURS) if member else None
        hours = item.seconds / 3600

        stored_project = context["projects"].get(item.project_id)
        card_id, client_id = resolve_entry_target(item.project_id, stored_project, context["index"])

        return TimeEntry(
            external_user_id=item.user_id,
            external_project_id=item.project_id,
            work_date=work_date,
            period_start=period_start,
            seconds=item.seconds,
            hours=round(hours, 4),
            cost=round(hours * rate, 2) if rate is not None else None,
            team_member_id=team_member_id,
            card_id=card_id,
            client_id=client_id,
            project_name=item.project_name or (stored_project.name if stored_project else None),
            task_name=item.task_name,
            mode=item.mode,
        )

    # =========================================================================
    # Compuesto
    # =========================================================================

    async def sync_all(self, calculate_metrics: bool = True) -> CompositeSyncReport:
        """
        Ejecuta todas las pasadas en orden de dependencia y arma el reporte.

        Una ConfigurationError de un tipo de entidad deja ese tipo en `failed`
        sin detener el resto.
        """
        steps = (
            (EntityType.CLIENTS, self.sync_clients),
            (EntityType.TEAM_MEMBERS, self.sync_team_members),
            (EntityType.PROJECTS, self.sync_projects),
            (EntityType.QI_TIME_TRACKER, self.sync_qi_time_tracker_entries),
            (EntityType.TIME_TRACKER_USERS, self.sync_time_tracker_users),
            (EntityType.TIME_TRACKER_PROJECTS, self.sync_time_tracker_projects),
            (EntityType.TIME_ENTRIES, self.sync_time_entries),
        )
        runs: List[SyncRun] = []
        for entity_type, step in steps:
            try:
                runs.append(await step())
            except ConfigurationError as e:
                logger.error(f"Sync de {entity_type.value} no ejecutado: {e.message}")
                run = new_sync_run(entity_type.value)
                run.errors.append(e.message)
                run.finalize(SyncStatus.FAILED.value, utc_now())
                await self._save_run(run)
                runs.append(run)

        if calculate_metrics:
            await self.calculate_metrics()

        report = CompositeSyncReport.from_runs(runs)
        logger.info(f"Sync completo {report.status}: {report.status_by_entity()}")
        return report

    async def calculate_metrics(self) -> None:
        aggregator = MetricsAggregator(self.cards, MetricSampleRepository(self.db))
        for period_type in PeriodType:
            try:
                await aggregator.calculate_metrics(period_type.value)
                await self.db.commit()
            except SQLAlchemyError as e:
                logger.exception(f"Error calculando metricas {period_type.value}: {e}")
                await self._rollback()


def _first_client_id(raw: Dict[str, Any]) -> Optional[str]:
    value = extract_property(
        raw.get("properties") or {}, CLIENT_RELATION.identifier, CLIENT_RELATION.kind, CLIENT_RELATION.name
    )
    ids = value.as_ids() if value is not None else ()
    return ids[0] if ids else None


def _user_from_raw(raw: Dict[str, Any]) -> TimeTrackerUser:
    user_id = raw.get("id")
    return TimeTrackerUser(
        external_id=str(user_id) if user_id else "",
        name=raw.get("name"),
        email=raw.get("email"),
        role=raw.get("role"),
    )
