"""
Utilidades para manejo de fechas y horas.

Funciones puras, sin I/O, para poder testearlas facilmente.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normaliza datetime a UTC (aware).

    SQLite devuelve datetimes naive aunque la columna sea timezone=True;
    normalizamos para comparar de forma consistente.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Convierte un string ISO 8601 (o fecha YYYY-MM-DD) a datetime UTC.

    Returns:
        Optional[datetime]: datetime aware o None si no se puede parsear
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def to_local_date(moment: datetime, utc_offset_hours: int) -> date:
    """Fecha calendario de `moment` en una zona de offset fijo."""
    return (ensure_utc(moment) + timedelta(hours=utc_offset_hours)).date()


def floor_days_between(later: datetime, earlier: datetime) -> int:
    """Dias completos entre dos instantes (floor)."""
    delta = ensure_utc(later) - ensure_utc(earlier)
    return int(delta.total_seconds() // 86400)
