"""
Normalizacion de payloads del time tracker.

La API responde con varias formas no documentadas segun endpoint y cuenta.
Este modulo es el unico lugar que las conoce; todo lo demas recibe una
lista plana de items (dicts).

Formas reconocidas:
- array directo: [...]
- {"data": "<string JSON de un array>"}
- {"data": [...]}, incluyendo ["<string JSON de un array>"] y elementos
  array-like ({"0": {...}, "1": {...}}) que se aplanan
- {"data": {"0": {...}, "1": {...}}} (objeto con claves numericas)
- {"results" | "items" | "entries": [...]}
- items que son strings JSON (se parsean uno a uno)
- {"error": "..."} en banda: RangeTooWideError si menciona el rango,
  TimeTrackerApiError en otro caso
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from opsync.shared.exceptions.sync import RangeTooWideError, TimeTrackerApiError

_LIST_KEYS = ("results", "items", "entries")
_RANGE_ERROR_MARKERS = ("range too wide", "mergerange")


def _is_array_like(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and len(value) > 0
        and all(isinstance(k, str) and k.isdigit() for k in value)
    )


def _array_like_values(value: Dict[str, Any]) -> List[Any]:
    return [value[k] for k in sorted(value, key=int)]


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("error") or error)
    return str(error)


def raise_for_in_band_error(error: Any) -> None:
    """
    Traduce un campo `error` del payload a la excepcion correspondiente.

    Raises:
        RangeTooWideError: si el mensaje indica que el rango es demasiado amplio
        TimeTrackerApiError: para cualquier otro error en banda
    """
    message = _error_message(error)
    lowered = message.lower()
    if any(marker in lowered for marker in _RANGE_ERROR_MARKERS):
        raise RangeTooWideError(f"Time tracker rechazo el rango: {message}")
    raise TimeTrackerApiError(f"Time tracker devolvio error: {message}", body=message)


def _parse_json_array(raw: str) -> List[Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"No se pudo parsear payload string del time tracker: {e}")
        return []
    if isinstance(parsed, list):
        return parsed
    if _is_array_like(parsed):
        return _array_like_values(parsed)
    return []


def _unwrap_data(data: Any) -> List[Any]:
    if isinstance(data, str):
        return _parse_json_array(data)

    if isinstance(data, list):
        if len(data) == 1 and isinstance(data[0], str) and data[0].strip().startswith("["):
            return _parse_json_array(data[0])
        if data and _is_array_like(data[0]):
            flattened: List[Any] = []
            for item in data:
                if _is_array_like(item):
                    flattened.extend(_array_like_values(item))
                else:
                    flattened.append(item)
            return flattened
        return data

    if _is_array_like(data):
        return _array_like_values(data)

    if isinstance(data, dict):
        logger.warning(f"data del time tracker no es array-like. Claves: {list(data)[:10]}")
    else:
        logger.warning(f"data del time tracker de tipo inesperado: {type(data).__name__}")
    return []


def _parse_string_items(items: List[Any]) -> List[Any]:
    parsed: List[Any] = []
    for item in items:
        if isinstance(item, str):
            try:
                item = json.loads(item)
            except json.JSONDecodeError:
                logger.warning(f"Item string invalido del time tracker: {item[:100]}")
                continue
        if item is not None:
            parsed.append(item)
    return parsed


def normalize_transport_payload(payload: Any) -> List[Any]:
    """
    Convierte cualquier forma de respuesta conocida en una lista plana.

    Args:
        payload: JSON ya decodificado de la respuesta

    Returns:
        List[Any]: items en orden de origen (vacia si la forma no se reconoce)

    Raises:
        RangeTooWideError | TimeTrackerApiError: si el payload trae `error`.
    """
    if isinstance(payload, dict) and payload.get("error"):
        raise_for_in_band_error(payload["error"])

    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, str):
        items = _parse_json_array(payload)
    elif isinstance(payload, dict) and payload.get("data") is not None:
        items = _unwrap_data(payload["data"])
    elif isinstance(payload, dict):
        items = []
        for key in _LIST_KEYS:
            if isinstance(payload.get(key), list):
                items = payload[key]
                break
        else:
            logger.warning(f"Formato de respuesta desconocido. Claves: {list(payload)[:10]}")
    else:
        items = []

    return _parse_string_items(items)


@dataclass(frozen=True)
class WorklogItem:
    """Worklog crudo ya normalizado en nombres de campo."""

    user_id: Optional[str]
    project_id: Optional[str]
    seconds: float
    start: Optional[str] = None
    project_name: Optional[str] = None
    task_name: Optional[str] = None
    mode: Optional[str] = None


def _first(entry: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return value
    return None


def _nested(entry: Dict[str, Any], key: str, attr: str) -> Any:
    value = entry.get(key)
    return value.get(attr) if isinstance(value, dict) else None


def _to_seconds(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


def map_worklog_item(entry: Dict[str, Any]) -> WorklogItem:
    """
    Mapea un worklog crudo aceptando camelCase, snake_case y objetos anidados.
    """
    user_id = _first(entry, "userId", "user_id") or _nested(entry, "user", "id")
    project_id = _first(entry, "projectId", "project_id") or _nested(entry, "project", "id")
    return WorklogItem(
        user_id=str(user_id) if user_id is not None else None,
        project_id=str(project_id) if project_id is not None else None,
        seconds=_to_seconds(_first(entry, "time", "totalSec", "total_sec", "total_time")),
        start=_first(entry, "start", "period_start", "date", "created_at", "timestamp"),
        project_name=_first(entry, "projectName", "project_name") or _nested(entry, "project", "name"),
        task_name=_first(entry, "taskName", "task_name") or _nested(entry, "task", "name"),
        mode=_first(entry, "mode", "tracking_mode"),
    )
