"""
Tests del ciclo de vida de SyncRun y del reporte compuesto.
"""
import pytest

from opsync.application.dto.sync_dto import CompositeSyncReport, SyncRunDTO
from opsync.application.use_cases.sync_run import SyncStageTracker, new_sync_run, resolve_run_status
from opsync.shared.constants.sync_constants import SyncStage, SyncStatus
from opsync.shared.utils.datetime_utils import utc_now


def finished(entity_type, status, errors=()):
    run = new_sync_run(entity_type)
    run.errors.extend(errors)
    run.finalize(status, utc_now())
    return run


class TestSyncRun:

    def test_counters_freeze_on_finalize(self):
        run = new_sync_run("clients")
        run.record_success()
        run.record_failure("x: roto")
        run.finalize("partial", utc_now())

        assert run.is_final
        with pytest.raises(RuntimeError):
            run.record_success()
        with pytest.raises(RuntimeError):
            run.finalize("success", utc_now())
        assert (run.processed, run.failed) == (1, 1)

    def test_run_ids_are_unique(self):
        assert new_sync_run("clients").run_id != new_sync_run("clients").run_id

    def test_resolve_status(self):
        run = new_sync_run("clients")
        assert resolve_run_status(run) == SyncStatus.SUCCESS

        run.record_failure("a")
        assert resolve_run_status(run) == SyncStatus.PARTIAL
        assert resolve_run_status(run, all_persistence_failures=True) == SyncStatus.FAILED

        run.record_success()
        assert resolve_run_status(run, all_persistence_failures=True) == SyncStatus.PARTIAL


class TestSyncStageTracker:

    def test_happy_path(self):
        tracker = SyncStageTracker(new_sync_run("projects"))
        for stage in (SyncStage.FETCHING, SyncStage.PROCESSING, SyncStage.FINALIZING, SyncStage.DONE):
            tracker.advance(stage)
        assert tracker.stage == SyncStage.DONE

    def test_skipping_a_stage_is_rejected(self):
        tracker = SyncStageTracker(new_sync_run("projects"))
        with pytest.raises(RuntimeError):
            tracker.advance(SyncStage.PROCESSING)

    def test_failed_is_absorbing(self):
        tracker = SyncStageTracker(new_sync_run("projects"))
        tracker.advance(SyncStage.FETCHING)
        tracker.fail("timeout")
        with pytest.raises(RuntimeError):
            tracker.advance(SyncStage.PROCESSING)
        assert tracker.stage == SyncStage.FAILED


class TestCompositeSyncReport:

    @pytest.mark.parametrize("statuses,expected", [
        (["success", "success"], "success"),
        (["failed", "failed"], "failed"),
        (["success", "failed"], "partial"),
        (["partial", "success"], "partial"),
        ([], "success"),
    ])
    def test_overall_status(self, statuses, expected):
        runs = [finished(f"entity_{i}", s) for i, s in enumerate(statuses)]
        assert CompositeSyncReport.from_runs(runs).status == expected

    def test_errors_are_deduplicated_in_order(self):
        report = CompositeSyncReport.from_runs([
            finished("clients", "partial", ["b", "a"]),
            finished("projects", "partial", ["a", "c"]),
        ])
        assert report.errors == ["b", "a", "c"]
        assert report.status_by_entity() == {"clients": "partial", "projects": "partial"}

    def test_run_dto_from_run(self):
        run = finished("clients", "success")
        dto = SyncRunDTO.from_run(run)
        assert dto.run_id == run.run_id
        assert dto.status == "success"
        assert dto.completed_at == run.completed_at
