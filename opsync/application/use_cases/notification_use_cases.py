"""
Casos de uso para notificaciones de paginas del work tracker.

El receptor (webhook) entrega un snapshot completo (`pageData`) o solo una
referencia al id; aqui se resuelve la pagina y se aplica
transformar -> upsert -> historial condicional.
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsync.application.dto.sync_dto import PageEventResultDTO
from opsync.application.services.page_transformer import ClientNameResolver, PageTransformer, parse_page
from opsync.application.services.status_history import StatusHistoryRecorder
from opsync.core.config import Settings, settings
from opsync.domain.entities.records import ExternalPage
from opsync.infrastructure.external.work_tracker.client import WorkTrackerClient
from opsync.infrastructure.repositories.card_repository import CardRepository
from opsync.infrastructure.repositories.client_repository import ClientRepository
from opsync.infrastructure.repositories.status_history_repository import StatusHistoryRepository
from opsync.shared.constants.sync_constants import STATUS_SOURCE_WEBHOOK
from opsync.shared.exceptions.base import AppException
from opsync.shared.exceptions.sync import PageNotFoundError
from opsync.shared.utils.datetime_utils import utc_now

ARCHIVE_EVENT_TYPES = ("page.removed_from_database", "page.deleted")


def _normalize_db_id(value: Optional[str]) -> str:
    return (value or "").replace("-", "").lower()


def extract_page_id(payload: Dict[str, Any]) -> Optional[str]:
    """Id de la pagina desde cualquiera de los formatos de notificacion."""
    page_data = payload.get("pageData")
    if isinstance(page_data, dict) and page_data.get("id"):
        return page_data["id"]
    data = payload.get("data")
    if isinstance(data, dict) and data.get("id"):
        return data["id"]
    entity = payload.get("entity")
    if isinstance(entity, dict) and entity.get("id"):
        return entity["id"]
    return payload.get("object_id") or payload.get("page_id") or payload.get("id")


class NotificationUseCases:
    """
    Procesa notificaciones de cambios en cards de proyecto.
    """

    def __init__(
        self,
        db: AsyncSession,
        work_tracker: Optional[WorkTrackerClient] = None,
        *,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or settings
        self.work_tracker = work_tracker or WorkTrackerClient()
        self.cards = CardRepository(db)
        self.history = StatusHistoryRecorder(StatusHistoryRepository(db))
        self.transformer = PageTransformer(
            source=self.work_tracker,
            client_names=ClientNameResolver(store=ClientRepository(db), source=self.work_tracker),
            completion_priority=self.config.completion_date_priority,
            design_project_types=self.config.design_project_types,
            task_delay_s=self.config.TASK_FETCH_DELAY_S,
        )

    async def handle_page_event(self, payload: Dict[str, Any]) -> PageEventResultDTO:
        """
        Procesa una notificacion de pagina.

        Raises:
            ConfigurationError: si falta la configuracion del work tracker.
        """
        self.config.require("WORK_TRACKER_API_KEY", "PROJECTS_DB_ID")

        page_id = extract_page_id(payload)
        if not page_id:
            logger.warning(f"Notificacion sin id de pagina. Claves: {list(payload)[:10]}")
            return PageEventResultDTO(success=False, action="failed", message="Notificacion sin id de pagina")

        event_type = payload.get("type")
        if event_type in ARCHIVE_EVENT_TYPES:
            logger.info(f"Evento {event_type} para {page_id}")
            return await self._archive(page_id)

        snapshot = payload.get("pageData")
        if isinstance(snapshot, dict):
            if snapshot.get("object") != "page" or not snapshot.get("properties"):
                return PageEventResultDTO(
                    success=True, page_id=page_id, action="skipped", message="El objeto no es una pagina"
                )
            raw = snapshot
        else:
            try:
                raw = await self.work_tracker.retrieve_page(page_id)
            except PageNotFoundError:
                logger.warning(f"Pagina {page_id} no encontrada en el work tracker")
                return PageEventResultDTO(
                    success=True, page_id=page_id, action="not_found", message="Pagina no encontrada"
                )
            except AppException as e:
                logger.error(f"Error obteniendo pagina {page_id}: {e.message}")
                return PageEventResultDTO(success=False, page_id=page_id, action="failed", message=e.message)

        try:
            page = parse_page(raw)
        except AppException as e:
            return PageEventResultDTO(success=False, page_id=page_id, action="failed", message=e.message)

        if page.archived:
            return await self._archive(page.id)

        if page.parent_id and _normalize_db_id(page.parent_id) != _normalize_db_id(self.config.PROJECTS_DB_ID):
            logger.debug(f"Pagina {page.id} pertenece a otra base ({page.parent_id}); se ignora")
            return PageEventResultDTO(
                success=True, page_id=page.id, action="skipped", message="La pagina no es una card de proyecto"
            )

        return await self._upsert(page)

    async def _upsert(self, page: ExternalPage) -> PageEventResultDTO:
        try:
            card = await self.transformer.to_project_card(page)
            await self.cards.upsert(card, utc_now())
            record = await self.history.record(
                card.external_id, card.status, changed_at=card.source_updated_at, source=STATUS_SOURCE_WEBHOOK
            )
            await self.db.commit()
        except (AppException, SQLAlchemyError) as e:
            await self.db.rollback()
            message = e.message if isinstance(e, AppException) else str(e)
            logger.error(f"Error procesando card {page.id}: {message}")
            return PageEventResultDTO(success=False, page_id=page.id, action="failed", message=message)

        logger.info(f"Card {card.name} ({card.external_id}) actualizada por notificacion")
        return PageEventResultDTO(
            success=True, page_id=page.id, action="upserted", status_changed=record is not None
        )

    async def _archive(self, page_id: str) -> PageEventResultDTO:
        """Marca una card existente como archivada; no crea cards nuevas."""
        card = await self.cards.get(page_id)
        if card is None:
            return PageEventResultDTO(
                success=True, page_id=page_id, action="skipped", message="Card no existe en el store"
            )

        now = utc_now()
        card.status = self.config.ARCHIVED_STATUS_LABEL
        card.archived = True
        try:
            await self.cards.upsert(card, now)
            record = await self.history.record(
                page_id, card.status, changed_at=now, source=STATUS_SOURCE_WEBHOOK
            )
            await self.db.commit()
        except (AppException, SQLAlchemyError) as e:
            await self.db.rollback()
            message = e.message if isinstance(e, AppException) else str(e)
            logger.error(f"Error archivando card {page_id}: {message}")
            return PageEventResultDTO(success=False, page_id=page_id, action="failed", message=message)

        logger.info(f"Card {page_id} archivada")
        return PageEventResultDTO(
            success=True, page_id=page_id, action="archived", status_changed=record is not None
        )
