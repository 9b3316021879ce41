"""
DTOs de resultados de sincronizacion.

Son la forma que ven los llamadores externos (scheduler, CLI, receptor de
webhooks); los casos de uso trabajan internamente con SyncRun.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from opsync.domain.entities.records import SyncRun
from opsync.shared.constants.sync_constants import SyncStatus


class SyncRunDTO(BaseModel):
    """Resumen de una pasada de sync."""

    run_id: str = Field(..., description="Identificador de la pasada")
    entity_type: str = Field(..., description="Tipo de entidad sincronizada")
    scope: Optional[str] = Field(None, description="Filtro aplicado (p.ej. client_id)")
    status: str = Field(..., description="success, partial o failed")
    processed: int = Field(0, description="Items guardados")
    failed: int = Field(0, description="Items fallidos")
    errors: List[str] = Field(default_factory=list)
    diagnostics: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_run(cls, run: SyncRun) -> "SyncRunDTO":
        return cls.model_validate(run)


class CompositeSyncReport(BaseModel):
    """
    Resultado de `sync_all`: estado por tipo de entidad, lista agregada de
    errores sin duplicados y estado global.
    """

    status: str
    runs: Dict[str, SyncRunDTO] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_runs(cls, runs: List[SyncRun]) -> "CompositeSyncReport":
        statuses = [run.status for run in runs]
        if statuses and all(s == SyncStatus.SUCCESS.value for s in statuses):
            status = SyncStatus.SUCCESS.value
        elif statuses and all(s == SyncStatus.FAILED.value for s in statuses):
            status = SyncStatus.FAILED.value
        elif not statuses:
            status = SyncStatus.SUCCESS.value
        else:
            status = SyncStatus.PARTIAL.value

        errors: List[str] = []
        seen = set()
        for run in runs:
            for error in run.errors:
                if error not in seen:
                    seen.add(error)
                    errors.append(error)

        return cls(
            status=status,
            runs={run.entity_type: SyncRunDTO.from_run(run) for run in runs},
            errors=errors,
        )

    def status_by_entity(self) -> Dict[str, str]:
        return {entity_type: run.status for entity_type, run in self.runs.items()}


class PageEventResultDTO(BaseModel):
    """Resultado de procesar una notificacion de pagina."""

    success: bool
    page_id: Optional[str] = None
    action: str = Field(..., description="upserted, archived, skipped, not_found o failed")
    message: str = ""
    status_changed: bool = False
