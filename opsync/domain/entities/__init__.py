from opsync.domain.entities.properties import (
    DateRange,
    OverflowMap,
    PropertyKind,
    PropertyValue,
)
from opsync.domain.entities.records import (
    Client,
    ExternalPage,
    MetricSample,
    ProjectCard,
    QITimeTrackerEntry,
    StatusHistoryRecord,
    SyncRun,
    TeamMember,
    TimeEntry,
    TimeTrackerProject,
    TimeTrackerUser,
)

__all__ = [
    "Client",
    "DateRange",
    "ExternalPage",
    "MetricSample",
    "OverflowMap",
    "ProjectCard",
    "PropertyKind",
    "PropertyValue",
    "QITimeTrackerEntry",
    "StatusHistoryRecord",
    "SyncRun",
    "TeamMember",
    "TimeEntry",
    "TimeTrackerProject",
    "TimeTrackerUser",
]
