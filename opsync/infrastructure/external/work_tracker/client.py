"""
Cliente HTTP del work tracker (API estilo Notion) sobre httpx.

Requisitos cubiertos:
- query paginado por cursor de una base de datos (collection)
- lectura de una pagina individual
- errores 429/5xx/red como TransientFetchError (sin reintento interno;
  la politica de reintento es del llamador)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from opsync.core.config import settings
from opsync.shared.constants.sync_constants import WORK_TRACKER_MAX_PAGE_SIZE
from opsync.shared.exceptions.sync import (
    PageNotFoundError,
    TransientFetchError,
    WorkTrackerApiError,
)


@dataclass(frozen=True)
class PageBatch:
    """Una pagina de resultados de un query de collection."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class WorkTrackerClient:
    """
    Cliente del work tracker.

    Args:
        api_key: Token de integracion (Bearer)
        transport: Transport httpx opcional (tests)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key or settings.WORK_TRACKER_API_KEY
        self._base_url = (base_url or settings.WORK_TRACKER_API_URL).rstrip("/")
        self._api_version = api_version or settings.WORK_TRACKER_API_VERSION
        self._timeout_s = timeout_s or settings.WORK_TRACKER_TIMEOUT_S
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Notion-Version": self._api_version,
            "Content-Type": "application/json",
        }

    async def query_collection(
        self,
        collection_id: str,
        cursor: Optional[str] = None,
        filter: Optional[Dict[str, Any]] = None,
        page_size: int = WORK_TRACKER_MAX_PAGE_SIZE,
    ) -> PageBatch:
        """
        Consulta una pagina de resultados de una base de datos.

        Args:
            collection_id: ID de la base de datos
            cursor: Cursor devuelto por la pagina anterior
            filter: Filtro en formato de la API (se envia tal cual)
            page_size: Tamano de pagina (max 100)

        Returns:
            PageBatch: items crudos, siguiente cursor y has_more
        """
        body: Dict[str, Any] = {"page_size": min(page_size, WORK_TRACKER_MAX_PAGE_SIZE)}
        if cursor:
            body["start_cursor"] = cursor
        if filter:
            body["filter"] = filter

        payload = await self._request("POST", f"/databases/{collection_id}/query", json=body)
        return PageBatch(
            items=list(payload.get("results") or []),
            next_cursor=payload.get("next_cursor"),
            has_more=bool(payload.get("has_more")),
        )

    async def retrieve_page(self, page_id: str) -> Dict[str, Any]:
        """
        Obtiene una pagina por ID.

        Raises:
            PageNotFoundError: Si la pagina no existe o no hay acceso.
        """
        try:
            return await self._request("GET", f"/pages/{page_id}")
        except WorkTrackerApiError as e:
            if e.status_code == 404:
                raise PageNotFoundError(page_id) from e
            raise

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Request HTTP sin reintentos.

        - 429 / 5xx / errores de red: TransientFetchError
        - 4xx (no 429): WorkTrackerApiError (config/auth mal)
        """
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport
            ) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Error de red consultando work tracker {path}: {e}")
            raise TransientFetchError(
                f"Error de red consultando work tracker: {e}", source="work_tracker"
            ) from e

        if 200 <= response.status_code < 300:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if not isinstance(payload, dict):
                raise WorkTrackerApiError(
                    f"Work tracker respondio un body que no es un objeto JSON en {path}",
                    status_code=response.status_code,
                    body=response.text[:2000],
                )
            return payload

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFetchError(
                f"Work tracker respondio {response.status_code} en {path}",
                source="work_tracker",
                details={"status": response.status_code},
            )

        raise WorkTrackerApiError(
            f"Work tracker request fallo {response.status_code} en {path}",
            status_code=response.status_code,
            body=response.text[:2000],
        )
