"""
Repositorio de clientes.
"""
from typing import Dict, Optional, Set

from sqlalchemy import func, select

from opsync.domain.entities.records import Client
from opsync.infrastructure.database.models import ClientModel
from opsync.infrastructure.repositories.base_repository import EntityRepository


class ClientRepository(EntityRepository[Client]):
    """Repositorio para gestionar clientes en la base de datos."""

    model = ClientModel
    entity_cls = Client

    async def get_name(self, client_id: str) -> Optional[str]:
        result = await self.db.execute(
            select(ClientModel.name).where(ClientModel.external_id == client_id)
        )
        return result.scalars().first()

    async def get_names(self) -> Dict[str, str]:
        """Mapa external_id -> nombre de todos los clientes con nombre."""
        result = await self.db.execute(
            select(ClientModel.external_id, ClientModel.name).where(ClientModel.name.is_not(None))
        )
        return {row[0]: row[1] for row in result.all()}

    async def get_retired_ids(self) -> Set[str]:
        result = await self.db.execute(
            select(ClientModel.external_id).where(ClientModel.is_retired == True)  # noqa: E712
        )
        return set(result.scalars().all())

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(ClientModel.id)))
        return result.scalar_one()
