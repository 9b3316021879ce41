"""
Ciclo de vida de una pasada de sync.

START -> FETCHING -> PROCESSING -> FINALIZING -> DONE
Cualquier etapa puede pasar a FAILED, que es absorbente.
"""
import uuid
from typing import Optional

from loguru import logger

from opsync.domain.entities.records import SyncRun
from opsync.shared.constants.sync_constants import SyncStage, SyncStatus
from opsync.shared.utils.datetime_utils import utc_now

_NEXT_STAGE = {
    SyncStage.START: SyncStage.FETCHING,
    SyncStage.FETCHING: SyncStage.PROCESSING,
    SyncStage.PROCESSING: SyncStage.FINALIZING,
    SyncStage.FINALIZING: SyncStage.DONE,
}


def new_sync_run(entity_type: str, scope: Optional[str] = None) -> SyncRun:
    return SyncRun(
        run_id=uuid.uuid4().hex,
        entity_type=entity_type,
        scope=scope,
        started_at=utc_now(),
    )


def resolve_run_status(run: SyncRun, all_persistence_failures: bool = False) -> SyncStatus:
    """
    success: ningun fallo
    failed: todo fallo por persistencia (store no disponible)
    partial: cualquier otro caso con fallos
    """
    if run.failed == 0:
        return SyncStatus.SUCCESS
    if run.processed == 0 and all_persistence_failures:
        return SyncStatus.FAILED
    return SyncStatus.PARTIAL


class SyncStageTracker:
    """Maquina de estados de una pasada, con log de cada transicion."""

    def __init__(self, run: SyncRun):
        self.run = run
        self.stage = SyncStage.START
        self._log = logger.bind(sync_run=run.run_id, entity_type=run.entity_type)

    @property
    def log(self):
        return self._log

    def advance(self, stage: SyncStage) -> None:
        if self.stage == SyncStage.FAILED:
            raise RuntimeError(f"SyncRun {self.run.run_id} ya fallo; no puede pasar a {stage.value}")
        if _NEXT_STAGE.get(self.stage) != stage:
            raise RuntimeError(f"Transicion invalida {self.stage.value} -> {stage.value}")
        self._log.debug(f"Etapa {self.stage.value} -> {stage.value}")
        self.stage = stage

    def fail(self, reason: str) -> None:
        self._log.error(f"Pasada {self.run.entity_type} fallo en etapa {self.stage.value}: {reason}")
        self.stage = SyncStage.FAILED
