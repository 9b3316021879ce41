"""
Tests para StatusHistoryRecorder sobre SQLite en memoria.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from opsync.application.services.status_history import StatusHistoryRecorder
from opsync.infrastructure.repositories.status_history_repository import StatusHistoryRepository
from opsync.shared.exceptions.sync import PersistenceError


@pytest.fixture
def recorder(db_session):
    return StatusHistoryRecorder(StatusHistoryRepository(db_session))


@pytest.mark.asyncio
async def test_consecutive_duplicates_are_collapsed(recorder, db_session):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for offset, status in enumerate(["A", "A", "B", "B", "B", "A"]):
        await recorder.record("card-1", status, changed_at=base + timedelta(hours=offset))

    history = await StatusHistoryRepository(db_session).list_for("card-1")
    assert [r.status for r in history] == ["A", "B", "A"]
    assert history[1].changed_at == base + timedelta(hours=2)


@pytest.mark.asyncio
async def test_absent_status_writes_nothing(recorder, db_session):
    assert await recorder.record("card-1", None) is None
    assert await recorder.record("card-1", "") is None
    assert await StatusHistoryRepository(db_session).list_for("card-1") == []


@pytest.mark.asyncio
async def test_returns_written_record(recorder):
    record = await recorder.record("card-1", "Done", source="webhook")
    assert record.id is not None
    assert record.status == "Done"
    assert record.source == "webhook"
    assert await recorder.record("card-1", "Done") is None


@pytest.mark.asyncio
async def test_latest_is_by_write_order_not_changed_at(recorder, db_session):
    newer = datetime(2024, 5, 1, tzinfo=timezone.utc)
    older = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await recorder.record("card-1", "QA", changed_at=newer)
    await recorder.record("card-1", "Dev", changed_at=older)

    # El ultimo escrito es "Dev", aunque su changed_at sea anterior
    assert await recorder.record("card-1", "Dev") is None
    latest = await StatusHistoryRepository(db_session).latest_for("card-1")
    assert latest.status == "Dev"


@pytest.mark.asyncio
async def test_entities_are_independent(recorder, db_session):
    await recorder.record("card-1", "A")
    assert await recorder.record("card-2", "A") is not None


# ============================================================================
# Errores del store
# ============================================================================

def _store_error():
    return OperationalError("INSERT INTO card_status_history", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_append_failure_is_persistence_error():
    db = MagicMock()
    db.flush = AsyncMock(side_effect=_store_error())
    db.execute = AsyncMock(return_value=MagicMock(**{"scalars.return_value.first.return_value": None}))
    recorder = StatusHistoryRecorder(StatusHistoryRepository(db))

    with pytest.raises(PersistenceError) as exc_info:
        await recorder.record("card-1", "Done")

    assert exc_info.value.entity_id == "card-1"


@pytest.mark.asyncio
async def test_latest_read_failure_is_persistence_error():
    db = MagicMock()
    db.execute = AsyncMock(side_effect=_store_error())

    with pytest.raises(PersistenceError):
        await StatusHistoryRepository(db).latest_for("card-1")
