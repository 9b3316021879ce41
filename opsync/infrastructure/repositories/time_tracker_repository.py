"""
Repositorios de entidades del time tracker: usuarios, proyectos y worklogs.
"""
from datetime import date
from typing import List

from sqlalchemy import select

from opsync.domain.entities.records import TimeEntry, TimeTrackerProject, TimeTrackerUser
from opsync.infrastructure.database.models import (
    TimeEntryModel,
    TimeTrackerProjectModel,
    TimeTrackerUserModel,
)
from opsync.infrastructure.repositories.base_repository import EntityRepository


class TimeTrackerUserRepository(EntityRepository[TimeTrackerUser]):
    model = TimeTrackerUserModel
    entity_cls = TimeTrackerUser


class TimeTrackerProjectRepository(EntityRepository[TimeTrackerProject]):
    model = TimeTrackerProjectModel
    entity_cls = TimeTrackerProject


class TimeEntryRepository(EntityRepository[TimeEntry]):
    """
    Worklogs deduplicados por (usuario, proyecto, fecha local, inicio de periodo).
    """

    model = TimeEntryModel
    entity_cls = TimeEntry
    key_field = "entry_key"

    async def list_between(self, start: date, end: date) -> List[TimeEntry]:
        """Worklogs con fecha local en [start, end]."""
        result = await self.db.execute(
            select(TimeEntryModel)
            .where(TimeEntryModel.work_date >= start)
            .where(TimeEntryModel.work_date <= end)
            .order_by(TimeEntryModel.work_date, TimeEntryModel.id)
        )
        return [self.to_entity(m) for m in result.scalars().all()]
