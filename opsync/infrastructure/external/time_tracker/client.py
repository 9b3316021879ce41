"""
Cliente HTTP del time tracker (API estilo Time Doctor) sobre httpx.

- Autenticacion: header `Authorization: JWT <token>` + query `company`
- Toda respuesta pasa por `normalize_transport_payload`
- 429 / 5xx / red: TransientFetchError; otros 4xx: TimeTrackerApiError
  (o RangeTooWideError si el body trae el error de rango)
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from opsync.core.config import settings
from opsync.infrastructure.external.time_tracker.payload import (
    normalize_transport_payload,
    raise_for_in_band_error,
)
from opsync.shared.exceptions.sync import TimeTrackerApiError, TransientFetchError
from opsync.shared.utils.datetime_utils import ensure_utc

WORKLOG_LIMIT = 10000


def format_api_datetime(dt: datetime) -> str:
    """ISO 8601 UTC con milisegundos y sufijo Z."""
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


class TimeTrackerClient:
    """Cliente del time tracker."""

    def __init__(
        self,
        api_token: Optional[str] = None,
        company_id: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_token = api_token or settings.TIME_TRACKER_API_TOKEN
        self._company_id = company_id or settings.TIME_TRACKER_COMPANY_ID
        self._base_url = (base_url or settings.TIME_TRACKER_API_URL).rstrip("/")
        self._timeout_s = timeout_s or settings.TIME_TRACKER_TIMEOUT_S
        self._transport = transport

    async def fetch_users(self) -> List[Dict[str, Any]]:
        users = await self._get("/users")
        logger.info(f"Time tracker: {len(users)} usuarios")
        return users

    async def fetch_projects(self) -> List[Dict[str, Any]]:
        projects = await self._get("/projects")
        logger.info(f"Time tracker: {len(projects)} proyectos")
        return projects

    async def fetch_worklogs(
        self,
        start: datetime,
        end: datetime,
        user_ids: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Obtiene worklogs de [start, end).

        Raises:
            RangeTooWideError: si la API rechaza el rango
        """
        params: Dict[str, Any] = {
            "from": format_api_datetime(start),
            "to": format_api_datetime(end),
            "task-project-names": "true",
            "limit": str(WORKLOG_LIMIT),
        }
        if user_ids:
            params["user"] = ",".join(user_ids)
        worklogs = await self._get("/activity/worklog", params)
        logger.debug(f"Time tracker: {len(worklogs)} worklogs entre {params['from']} y {params['to']}")
        return worklogs

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        query = {"company": self._company_id, **(params or {})}
        headers = {
            "Authorization": f"JWT {self._api_token}",
            "accept": "application/json",
            "content-type": "application/json",
        }
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport
            ) as client:
                response = await client.get(url, params=query, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Error de red consultando time tracker {path}: {e}")
            raise TransientFetchError(
                f"Error de red consultando time tracker: {e}", source="time_tracker"
            ) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFetchError(
                f"Time tracker respondio {response.status_code} en {path}",
                source="time_tracker",
                details={"status": response.status_code},
            )

        if not 200 <= response.status_code < 300:
            body = response.text
            try:
                error = response.json().get("error")
            except (json.JSONDecodeError, AttributeError):
                error = None
            if error:
                raise_for_in_band_error(error)
            raise TimeTrackerApiError(
                f"Time tracker request fallo {response.status_code} en {path}",
                status_code=response.status_code,
                body=body[:2000],
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TimeTrackerApiError(
                f"Time tracker respondio un body no JSON en {path}",
                status_code=response.status_code,
                body=response.text[:2000],
            ) from e
        items = normalize_transport_payload(payload)
        return [item for item in items if isinstance(item, dict)]
