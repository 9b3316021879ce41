"""
Repositorio append-only del historial de status.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsync.domain.entities.records import StatusHistoryRecord
from opsync.infrastructure.database.models import CardStatusHistoryModel
from opsync.shared.exceptions.sync import PersistenceError
from opsync.shared.utils.datetime_utils import ensure_utc


class StatusHistoryRepository:
    """Solo lectura del ultimo registro y append; nunca actualiza."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_record(model: CardStatusHistoryModel) -> StatusHistoryRecord:
        return StatusHistoryRecord(
            id=model.id,
            entity_id=model.entity_id,
            status=model.status,
            changed_at=ensure_utc(model.changed_at),
            detected_at=ensure_utc(model.detected_at),
            source=model.source,
        )

    async def latest_for(self, entity_id: str) -> Optional[StatusHistoryRecord]:
        """
        Ultimo registro por orden de escritura (id), no por changed_at:
        la fuente puede reportar fechas de cambio fuera de orden.

        Raises:
            PersistenceError: Si el store falla en la lectura.
        """
        try:
            result = await self.db.execute(
                select(CardStatusHistoryModel)
                .where(CardStatusHistoryModel.entity_id == entity_id)
                .order_by(CardStatusHistoryModel.id.desc())
                .limit(1)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Error leyendo historial de '{entity_id}': {e}", entity_id=entity_id
            ) from e
        model = result.scalars().first()
        return self._to_record(model) if model is not None else None

    async def append(self, record: StatusHistoryRecord) -> StatusHistoryRecord:
        """
        Raises:
            PersistenceError: Si el store rechaza la escritura.
        """
        model = CardStatusHistoryModel(
            entity_id=record.entity_id,
            status=record.status,
            changed_at=record.changed_at,
            detected_at=record.detected_at,
            source=record.source,
        )
        try:
            self.db.add(model)
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Error guardando historial de '{record.entity_id}': {e}",
                entity_id=record.entity_id,
            ) from e
        return self._to_record(model)

    async def list_for(self, entity_id: str) -> List[StatusHistoryRecord]:
        result = await self.db.execute(
            select(CardStatusHistoryModel)
            .where(CardStatusHistoryModel.entity_id == entity_id)
            .order_by(CardStatusHistoryModel.id)
        )
        return [self._to_record(m) for m in result.scalars().all()]
