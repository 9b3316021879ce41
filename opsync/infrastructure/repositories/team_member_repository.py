"""
Repositorio de miembros del equipo.
"""
from opsync.domain.entities.records import TeamMember
from opsync.infrastructure.database.models import TeamMemberModel
from opsync.infrastructure.repositories.base_repository import EntityRepository


class TeamMemberRepository(EntityRepository[TeamMember]):
    """Repositorio para gestionar miembros del equipo en la base de datos."""

    model = TeamMemberModel
    entity_cls = TeamMember
