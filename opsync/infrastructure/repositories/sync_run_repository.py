"""
Repositorio append-only de SyncRuns.
"""
from typing import List, Optional

from sqlalchemy import select

from opsync.domain.entities.records import SyncRun
from opsync.infrastructure.database.models import SyncRunModel
from opsync.shared.utils.datetime_utils import ensure_utc


class SyncRunRepository:
    """Repositorio para el log de pasadas de sync."""

    def __init__(self, db):
        self.db = db

    async def add(self, run: SyncRun) -> None:
        """Persiste el resumen final de una pasada (sin commit)."""
        self.db.add(SyncRunModel(
            run_id=run.run_id,
            entity_type=run.entity_type,
            scope=run.scope,
            status=run.status,
            processed=run.processed,
            failed=run.failed,
            errors=list(run.errors),
            diagnostics=dict(run.diagnostics),
            started_at=run.started_at,
            completed_at=run.completed_at,
        ))
        await self.db.flush()

    async def latest(self, entity_type: str) -> Optional[SyncRun]:
        result = await self.db.execute(
            select(SyncRunModel)
            .where(SyncRunModel.entity_type == entity_type)
            .order_by(SyncRunModel.id.desc())
        )
        model = result.scalars().first()
        if model is None:
            return None
        return SyncRun(
            run_id=model.run_id,
            entity_type=model.entity_type,
            scope=model.scope,
            status=model.status,
            processed=model.processed,
            failed=model.failed,
            errors=list(model.errors or []),
            diagnostics=dict(model.diagnostics or {}),
            started_at=ensure_utc(model.started_at),
            completed_at=ensure_utc(model.completed_at),
        )

    async def list_for(self, entity_type: str) -> List[str]:
        """run_ids de un tipo de entidad en orden de escritura."""
        result = await self.db.execute(
            select(SyncRunModel.run_id)
            .where(SyncRunModel.entity_type == entity_type)
            .order_by(SyncRunModel.id)
        )
        return list(result.scalars().all())
