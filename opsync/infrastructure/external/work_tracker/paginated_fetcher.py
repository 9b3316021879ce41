"""
Fetch completo de una collection paginada por cursor.

- page_size = min(maximo externo, lo que falta para el limite)
- delay fijo entre requests de pagina (techo de rate de la API)
- corta a mitad de pagina al alcanzar el limite
- sin reintentos: una pagina fallida aborta el fetch completo
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from loguru import logger

from opsync.core.config import settings
from opsync.infrastructure.external.work_tracker.client import PageBatch
from opsync.shared.constants.sync_constants import WORK_TRACKER_MAX_PAGE_SIZE

Sleep = Callable[[float], Awaitable[None]]


class PagedSource(Protocol):
    async def query_collection(
        self,
        collection_id: str,
        cursor: Optional[str] = None,
        filter: Optional[Dict[str, Any]] = None,
        page_size: int = WORK_TRACKER_MAX_PAGE_SIZE,
    ) -> PageBatch:
        ...


class PaginatedFetcher:
    """Recorre todas las paginas de una collection respetando un limite opcional."""

    def __init__(
        self,
        source: PagedSource,
        *,
        delay_s: Optional[float] = None,
        max_page_size: int = WORK_TRACKER_MAX_PAGE_SIZE,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._source = source
        self._delay_s = settings.PAGE_REQUEST_DELAY_S if delay_s is None else delay_s
        self._max_page_size = max_page_size
        self._sleep = sleep

    async def fetch_all(
        self,
        collection_id: str,
        filter: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Retorna todos los items que cumplen el filtro (hasta `limit`).

        Raises:
            TransientFetchError | WorkTrackerApiError: propagado desde la fuente.
        """
        if limit is not None and limit <= 0:
            return []

        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        page_count = 0

        while True:
            remaining = None if limit is None else limit - len(items)
            page_size = self._max_page_size if remaining is None else min(self._max_page_size, remaining)

            batch = await self._source.query_collection(
                collection_id, cursor=cursor, filter=filter, page_size=page_size
            )
            page_count += 1

            if remaining is not None:
                items.extend(batch.items[:remaining])
            else:
                items.extend(batch.items)

            cursor = batch.next_cursor if batch.has_more and batch.next_cursor else None
            if cursor is None:
                break
            if limit is not None and len(items) >= limit:
                break

            await self._sleep(self._delay_s)

        logger.debug(
            f"Collection {collection_id}: {len(items)} items en {page_count} paginas"
            + (f" (limite {limit})" if limit is not None else "")
        )
        return items
