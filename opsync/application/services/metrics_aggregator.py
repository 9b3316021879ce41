"""
Metricas periodicas sobre las cards ya sincronizadas.

- qi_pushbacks: % de cards con Push Back Count > 0
- client_pushbacks: % de cards con Quantifiable Client Push Back > 0
- avg_days_late: promedio de dias de atraso (floor) solo sobre cards
  entregadas despues del deadline

Cada metrica se calcula por developer principal y en total (assignee None).
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger

from opsync.domain.entities.records import MetricSample, ProjectCard
from opsync.infrastructure.repositories.card_repository import CardRepository
from opsync.infrastructure.repositories.metric_sample_repository import MetricSampleRepository
from opsync.shared.constants.sync_constants import MetricType, PeriodType
from opsync.shared.utils.datetime_utils import ensure_utc, floor_days_between, utc_now


def compute_period(period_type: str, now: datetime) -> Tuple[datetime, datetime]:
    """
    Limites [start, end) del periodo calendario que contiene `now` (UTC).

    - daily: medianoche a medianoche
    - weekly: lunes a lunes
    - monthly: dia 1 al dia 1 del mes siguiente
    """
    now = ensure_utc(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    period = PeriodType(period_type)

    if period == PeriodType.DAILY:
        return midnight, midnight + timedelta(days=1)
    if period == PeriodType.WEEKLY:
        start = midnight - timedelta(days=midnight.weekday())
        return start, start + timedelta(days=7)

    start = midnight.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def days_late(card: ProjectCard) -> Optional[int]:
    """Dias de atraso si la card se completo despues del deadline; None si no."""
    if card.completion_date is None or card.deadline is None:
        return None
    if ensure_utc(card.completion_date) <= ensure_utc(card.deadline):
        return None
    return floor_days_between(card.completion_date, card.deadline)


def _rate(cards: List[ProjectCard], counter: str) -> float:
    if not cards:
        return 0.0
    positive = sum(1 for card in cards if (getattr(card, counter) or 0) > 0)
    return positive / len(cards) * 100


class MetricsAggregator:
    """Calcula y persiste las metricas de un periodo."""

    def __init__(self, card_repository: CardRepository, metric_repository: MetricSampleRepository):
        self.card_repository = card_repository
        self.metric_repository = metric_repository

    async def calculate_metrics(self, period_type: str, now: Optional[datetime] = None) -> List[MetricSample]:
        start, end = compute_period(period_type, now or utc_now())
        cards = [
            card for card in await self.card_repository.list_created_between(start, end)
            if card.primary_developer_id
        ]
        logger.info(f"Calculando metricas {period_type} {start.date()} - {end.date()}: {len(cards)} cards")

        by_developer: Dict[str, List[ProjectCard]] = defaultdict(list)
        for card in cards:
            by_developer[card.primary_developer_id].append(card)

        calculated_at = utc_now()
        samples: List[MetricSample] = []

        def sample(metric_type: MetricType, value: float, assignee: Optional[str], size: int) -> None:
            samples.append(MetricSample(
                metric_type=metric_type.value,
                period_type=PeriodType(period_type).value,
                period_start=start,
                period_end=end,
                value=round(value, 2),
                assignee_id=assignee,
                sample_size=size,
                calculated_at=calculated_at,
            ))

        for metric_type, counter in (
            (MetricType.QI_PUSHBACKS, "pushback_count"),
            (MetricType.CLIENT_PUSHBACKS, "quantifiable_client_pushback"),
        ):
            for developer_id, developer_cards in by_developer.items():
                sample(metric_type, _rate(developer_cards, counter), developer_id, len(developer_cards))
            sample(metric_type, _rate(cards, counter), None, len(cards))

        all_late: List[int] = []
        for developer_id, developer_cards in by_developer.items():
            late = [d for d in (days_late(card) for card in developer_cards) if d is not None]
            if late:
                sample(MetricType.AVG_DAYS_LATE, sum(late) / len(late), developer_id, len(late))
                all_late.extend(late)
        overall = sum(all_late) / len(all_late) if all_late else 0.0
        sample(MetricType.AVG_DAYS_LATE, overall, None, len(all_late))

        for item in samples:
            await self.metric_repository.upsert(item)

        logger.info(f"Metricas {period_type} guardadas: {len(samples)} valores")
        return samples
