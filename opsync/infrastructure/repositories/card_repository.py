"""
Repositorio de cards de proyecto.
"""
from datetime import datetime
from typing import List

from sqlalchemy import select

from opsync.domain.entities.records import ProjectCard
from opsync.infrastructure.database.models import CardModel
from opsync.infrastructure.repositories.base_repository import EntityRepository


class CardRepository(EntityRepository[ProjectCard]):
    """Repositorio para gestionar cards en la base de datos."""

    model = CardModel
    entity_cls = ProjectCard

    async def list_created_between(self, start: datetime, end: datetime) -> List[ProjectCard]:
        """
        Obtiene las cards creadas en origen dentro de [start, end).
        """
        result = await self.db.execute(
            select(CardModel)
            .where(CardModel.source_created_at >= start)
            .where(CardModel.source_created_at < end)
            .order_by(CardModel.id)
        )
        return [self.to_entity(m) for m in result.scalars().all()]

    async def list_with_time_tracker_ids(self) -> List[ProjectCard]:
        """Cards que tienen algun id del time tracker embebido."""
        result = await self.db.execute(
            select(CardModel).where(
                (CardModel.time_tracker_project_id.is_not(None))
                | (CardModel.time_tracker_client_project_id.is_not(None))
            )
        )
        return [self.to_entity(m) for m in result.scalars().all()]
