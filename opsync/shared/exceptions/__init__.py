from opsync.shared.exceptions.base import AppException
from opsync.shared.exceptions.sync import (
    ConfigurationError,
    PageNotFoundError,
    PersistenceError,
    RangeTooWideError,
    SyncException,
    TimeTrackerApiError,
    TransientFetchError,
    ValidationError,
    WorkTrackerApiError,
)

__all__ = [
    "AppException",
    "ConfigurationError",
    "PageNotFoundError",
    "PersistenceError",
    "RangeTooWideError",
    "SyncException",
    "TimeTrackerApiError",
    "TransientFetchError",
    "ValidationError",
    "WorkTrackerApiError",
]
