"""
Fetch de series de tiempo por ventanas con reduccion adaptativa.

La API de worklogs impone un span maximo consultable que no esta
documentado y varia por cuenta. Se pide por ventanas contiguas semiabiertas
del tamano primario (7 dias); si una ventana falla con TransientFetchError
(incluye RangeTooWideError) se re-divide en ventanas del siguiente tamano
(3 dias). Una ventana que falla en el tamano mas chico se registra en
`skipped_windows` y se salta sin abortar las demas.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from loguru import logger

from opsync.core.config import settings
from opsync.shared.exceptions.sync import TransientFetchError

FetchWindow = Callable[[datetime, datetime], Awaitable[List[Any]]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class DateWindow:
    """Ventana semiabierta [start, end)."""

    start: datetime
    end: datetime

    def label(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass
class ChunkedFetchResult:
    items: List[Any] = field(default_factory=list)
    windows_fetched: int = 0
    recovered_windows: List[DateWindow] = field(default_factory=list)
    skipped_windows: List[DateWindow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def split_windows(start: datetime, end: datetime, days: int) -> List[DateWindow]:
    """Divide [start, end) en ventanas contiguas de `days` dias (la ultima puede ser menor)."""
    if days <= 0:
        raise ValueError("El tamano de ventana debe ser positivo")
    windows: List[DateWindow] = []
    cursor = start
    step = timedelta(days=days)
    while cursor < end:
        window_end = min(cursor + step, end)
        windows.append(DateWindow(cursor, window_end))
        cursor = window_end
    return windows


class ChunkedRangeFetcher:
    """
    Args:
        fetch_window: corrutina (start, end) -> items de esa ventana
        window_days: tamanos de ventana en orden decreciente, p.ej. (7, 3)
        delay_s: pausa fija entre requests de ventana
    """

    def __init__(
        self,
        fetch_window: FetchWindow,
        *,
        window_days: Optional[Sequence[int]] = None,
        delay_s: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._fetch_window = fetch_window
        self._window_days = tuple(window_days or (
            settings.WORKLOG_PRIMARY_WINDOW_DAYS,
            settings.WORKLOG_FALLBACK_WINDOW_DAYS,
        ))
        self._delay_s = settings.WORKLOG_WINDOW_DELAY_S if delay_s is None else delay_s
        self._sleep = sleep
        self._requests = 0

    async def fetch(self, start: datetime, end: datetime) -> ChunkedFetchResult:
        """
        Obtiene todos los items de [start, end) en orden de ventana.

        Errores no transitorios (auth, config) se propagan.
        """
        result = ChunkedFetchResult()
        self._requests = 0
        for window in split_windows(start, end, self._window_days[0]):
            await self._fetch(window, 0, result)

        logger.info(
            f"Fetch por ventanas: {len(result.items)} items, {result.windows_fetched} ventanas ok, "
            f"{len(result.recovered_windows)} recuperadas, {len(result.skipped_windows)} saltadas"
        )
        return result

    async def _fetch(self, window: DateWindow, level: int, result: ChunkedFetchResult) -> bool:
        if self._requests > 0:
            await self._sleep(self._delay_s)
        self._requests += 1

        try:
            items = await self._fetch_window(window.start, window.end)
        except TransientFetchError as e:
            next_level = level + 1
            if next_level < len(self._window_days):
                logger.warning(
                    f"Ventana {window.label()} fallo ({e.message}); reintentando con ventanas "
                    f"de {self._window_days[next_level]} dias"
                )
                sub_windows = split_windows(window.start, window.end, self._window_days[next_level])
                all_ok = True
                for sub_window in sub_windows:
                    all_ok = await self._fetch(sub_window, next_level, result) and all_ok
                if all_ok:
                    result.recovered_windows.append(window)
                return all_ok

            logger.error(f"Ventana {window.label()} saltada tras agotar reintentos: {e.message}")
            result.skipped_windows.append(window)
            result.errors.append(f"Ventana {window.label()} saltada: {e.message}")
            return False

        result.items.extend(items)
        result.windows_fetched += 1
        return True
