"""
Excepciones del motor de sincronizacion.

Jerarquia:
- SyncException
  - ConfigurationError: falta config; se lanza antes de cualquier fetch.
  - TransientFetchError: fallo transitorio de una fuente (red, 5xx, 429).
    - RangeTooWideError: la fuente rechaza el rango pedido.
  - ValidationError: un item no cumple los campos obligatorios.
  - PersistenceError: el store rechazo una escritura.
- WorkTrackerApiError / TimeTrackerApiError: errores no transitorios de las APIs.
- PageNotFoundError: pagina inexistente o sin acceso.
"""
from typing import Any, Dict, List, Optional

from opsync.shared.exceptions.base import AppException


class SyncException(AppException):
    """Excepcion base para errores de sincronizacion."""

    def __init__(
        self,
        message: str,
        error_code: str = "SYNC_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details
        )


class ConfigurationError(SyncException):
    """Falta una variable de configuracion obligatoria."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"missing": missing or []}
        )
        self.missing = missing or []


class TransientFetchError(SyncException):
    """Error transitorio al leer de una fuente externa."""

    def __init__(self, message: str, source: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="TRANSIENT_FETCH_ERROR",
            details={"source": source, **(details or {})},
            status_code=503
        )
        self.source = source


class RangeTooWideError(TransientFetchError):
    """La fuente rechazo el rango de fechas por ser demasiado amplio."""

    def __init__(self, message: str, source: str = "time_tracker"):
        super().__init__(message, source=source)
        self.error_code = "RANGE_TOO_WIDE"


class ValidationError(SyncException):
    """Un item no tiene los campos requeridos para persistirse."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else None
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details,
            status_code=400
        )
        self.field = field


class PersistenceError(SyncException):
    """Error al escribir en el store persistente."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="PERSISTENCE_ERROR",
            details={"entity_id": entity_id} if entity_id else None
        )
        self.entity_id = entity_id


class WorkTrackerApiError(AppException):
    """Respuesta no exitosa del work tracker."""

    def __init__(self, message: str, status_code: int = 502, body: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="WORK_TRACKER_API_ERROR",
            details={"body": body} if body else None
        )


class TimeTrackerApiError(AppException):
    """Respuesta no exitosa o error en banda del time tracker."""

    def __init__(self, message: str, status_code: int = 502, body: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="TIME_TRACKER_API_ERROR",
            details={"body": body} if body else None
        )


class PageNotFoundError(WorkTrackerApiError):
    """La pagina no existe o la integracion no tiene acceso."""

    def __init__(self, page_id: str):
        super().__init__(
            message=f"Pagina con ID '{page_id}' no encontrada",
            status_code=404
        )
        self.error_code = "PAGE_NOT_FOUND"
        self.details = {"page_id": page_id}
        self.page_id = page_id
