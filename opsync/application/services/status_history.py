"""
Historial append-only de cambios de status de cards.
"""

from typing import Optional

from loguru import logger

from opsync.domain.entities.records import StatusHistoryRecord
from opsync.infrastructure.repositories.status_history_repository import StatusHistoryRepository
from opsync.shared.constants.sync_constants import STATUS_SOURCE_WORK_TRACKER
from opsync.shared.utils.datetime_utils import utc_now


class StatusHistoryRecorder:
    """Agrega un registro solo cuando el status difiere del ultimo registrado."""

    def __init__(self, repository: StatusHistoryRepository):
        self.repository = repository

    async def record(
        self,
        entity_id: str,
        status: Optional[str],
        changed_at=None,
        source: str = STATUS_SOURCE_WORK_TRACKER,
    ) -> Optional[StatusHistoryRecord]:
        """
        Registra el status si cambio.

        Returns:
            El registro agregado, o None si no hubo cambio.
        """
        if not status:
            return None

        latest = await self.repository.latest_for(entity_id)
        if latest is not None and latest.status == status:
            return None

        now = utc_now()
        record = StatusHistoryRecord(
            entity_id=entity_id,
            status=status,
            changed_at=changed_at or now,
            detected_at=now,
            source=source,
        )
        stored = await self.repository.append(record)
        previous = latest.status if latest else None
        logger.info(f"Status de {entity_id}: {previous} -> {status} ({source})")
        return stored
