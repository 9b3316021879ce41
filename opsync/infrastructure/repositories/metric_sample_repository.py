"""
Repositorio de metricas periodicas.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsync.domain.entities.records import MetricSample
from opsync.infrastructure.database.models import MetricSampleModel
from opsync.shared.utils.datetime_utils import ensure_utc


class MetricSampleRepository:
    """Upsert por (metric_type, period_type, period_start, assignee)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_sample(model: MetricSampleModel) -> MetricSample:
        return MetricSample(
            metric_type=model.metric_type,
            period_type=model.period_type,
            period_start=ensure_utc(model.period_start),
            period_end=ensure_utc(model.period_end),
            value=model.value,
            assignee_id=model.assignee_key or None,
            sample_size=model.sample_size,
            calculated_at=ensure_utc(model.calculated_at),
        )

    async def upsert(self, sample: MetricSample) -> None:
        result = await self.db.execute(
            select(MetricSampleModel)
            .where(MetricSampleModel.metric_type == sample.metric_type)
            .where(MetricSampleModel.period_type == sample.period_type)
            .where(MetricSampleModel.period_start == sample.period_start)
            .where(MetricSampleModel.assignee_key == (sample.assignee_id or ""))
        )
        existing = result.scalars().first()
        if existing is None:
            self.db.add(MetricSampleModel(
                metric_type=sample.metric_type,
                period_type=sample.period_type,
                period_start=sample.period_start,
                period_end=sample.period_end,
                assignee_key=sample.assignee_id or "",
                value=sample.value,
                sample_size=sample.sample_size,
                calculated_at=sample.calculated_at,
            ))
        else:
            existing.period_end = sample.period_end
            existing.value = sample.value
            existing.sample_size = sample.sample_size
            existing.calculated_at = sample.calculated_at
        await self.db.flush()

    async def list_for_period(
        self,
        period_type: str,
        period_start: datetime,
        metric_type: Optional[str] = None,
    ) -> List[MetricSample]:
        query = (
            select(MetricSampleModel)
            .where(MetricSampleModel.period_type == period_type)
            .where(MetricSampleModel.period_start == period_start)
        )
        if metric_type:
            query = query.where(MetricSampleModel.metric_type == metric_type)
        result = await self.db.execute(query.order_by(MetricSampleModel.id))
        return [self._to_sample(m) for m in result.scalars().all()]
