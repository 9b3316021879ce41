"""
Tests para MetricsAggregator.
"""
from datetime import datetime, timezone

import pytest

from opsync.application.services.metrics_aggregator import MetricsAggregator, compute_period, days_late
from opsync.domain.entities.records import ProjectCard
from opsync.infrastructure.repositories.card_repository import CardRepository
from opsync.infrastructure.repositories.metric_sample_repository import MetricSampleRepository


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestComputePeriod:

    NOW = _utc(2024, 2, 15, 13, 45)  # jueves

    def test_daily(self):
        assert compute_period("daily", self.NOW) == (_utc(2024, 2, 15), _utc(2024, 2, 16))

    def test_weekly_starts_monday(self):
        assert compute_period("weekly", self.NOW) == (_utc(2024, 2, 12), _utc(2024, 2, 19))

    def test_monthly(self):
        assert compute_period("monthly", self.NOW) == (_utc(2024, 2, 1), _utc(2024, 3, 1))

    def test_monthly_december_rolls_year(self):
        assert compute_period("monthly", _utc(2024, 12, 31, 23)) == (_utc(2024, 12, 1), _utc(2025, 1, 1))

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            compute_period("yearly", self.NOW)


class TestDaysLate:

    def test_floor_of_days_when_late(self):
        card = ProjectCard("c", deadline=_utc(2024, 1, 1), completion_date=_utc(2024, 1, 3, 20))
        assert days_late(card) == 2

    def test_on_time_is_none(self):
        card = ProjectCard("c", deadline=_utc(2024, 1, 5), completion_date=_utc(2024, 1, 5))
        assert days_late(card) is None

    def test_missing_dates_are_excluded(self):
        assert days_late(ProjectCard("c", deadline=_utc(2024, 1, 5))) is None
        assert days_late(ProjectCard("c", completion_date=_utc(2024, 1, 5))) is None


@pytest.mark.asyncio
async def test_calculate_metrics_per_developer_and_overall(db_session):
    cards = CardRepository(db_session)
    created = _utc(2024, 2, 14, 9)
    synced = _utc(2024, 2, 15)
    fixtures = [
        ProjectCard("c1", developer_ids=["dev-1"], source_created_at=created, pushback_count=1,
                    deadline=_utc(2024, 2, 1), completion_date=_utc(2024, 2, 5)),
        ProjectCard("c2", developer_ids=["dev-1"], source_created_at=created, pushback_count=0,
                    quantifiable_client_pushback=2,
                    deadline=_utc(2024, 2, 1), completion_date=_utc(2024, 2, 3)),
        ProjectCard("c3", developer_ids=["dev-2"], source_created_at=created, pushback_count=3,
                    deadline=_utc(2024, 2, 10), completion_date=_utc(2024, 2, 9)),
        # Sin developer: no cuenta
        ProjectCard("c4", source_created_at=created, pushback_count=5),
        # Fuera del periodo
        ProjectCard("c5", developer_ids=["dev-1"], source_created_at=_utc(2024, 1, 1), pushback_count=9),
    ]
    for card in fixtures:
        await cards.upsert(card, synced)
    await db_session.commit()

    aggregator = MetricsAggregator(cards, MetricSampleRepository(db_session))
    samples = await aggregator.calculate_metrics("weekly", now=_utc(2024, 2, 15, 12))
    values = {(s.metric_type, s.assignee_id): s.value for s in samples}

    assert values[("qi_pushbacks", "dev-1")] == 50.0
    assert values[("qi_pushbacks", "dev-2")] == 100.0
    assert values[("qi_pushbacks", None)] == pytest.approx(66.67)
    assert values[("client_pushbacks", "dev-1")] == 50.0
    assert values[("client_pushbacks", None)] == pytest.approx(33.33)
    assert values[("avg_days_late", "dev-1")] == 3.0
    assert ("avg_days_late", "dev-2") not in values
    assert values[("avg_days_late", None)] == 3.0


@pytest.mark.asyncio
async def test_recalculation_is_idempotent(db_session):
    cards = CardRepository(db_session)
    await cards.upsert(
        ProjectCard("c1", developer_ids=["dev-1"], source_created_at=_utc(2024, 2, 15, 8), pushback_count=1),
        _utc(2024, 2, 15),
    )
    await db_session.commit()
    metrics = MetricSampleRepository(db_session)
    aggregator = MetricsAggregator(cards, metrics)
    now = _utc(2024, 2, 15, 12)

    await aggregator.calculate_metrics("daily", now=now)
    await aggregator.calculate_metrics("daily", now=now)
    await db_session.commit()

    stored = await metrics.list_for_period("daily", _utc(2024, 2, 15))
    keys = [(s.metric_type, s.assignee_id) for s in stored]
    assert len(keys) == len(set(keys))
    assert ("avg_days_late", None) in keys
    overall = [s for s in stored if s.metric_type == "avg_days_late" and s.assignee_id is None][0]
    assert overall.value == 0.0
    assert overall.sample_size == 0
