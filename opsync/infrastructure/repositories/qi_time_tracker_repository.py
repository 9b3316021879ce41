"""
Repositorio de entradas del QI Time Tracker.
"""
from opsync.domain.entities.records import QITimeTrackerEntry
from opsync.infrastructure.database.models import QITimeTrackerEntryModel
from opsync.infrastructure.repositories.base_repository import EntityRepository


class QITimeTrackerRepository(EntityRepository[QITimeTrackerEntry]):
    model = QITimeTrackerEntryModel
    entity_cls = QITimeTrackerEntry
