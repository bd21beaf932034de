"""
Debug and profiling utilities for the Phoenix SDK.

Provides ``ExchangeLogger``, an async context manager that captures every
request/response exchange with timing information.

Example::

    from phoenix_sdk.debug import ExchangeLogger

    async with ExchangeLogger() as log:
        await client.prepare_and_execute(conn_id, "SELECT 1", 100, stmt.id)

    for ex in log.exchanges:
        print(f"{ex.request} {ex.connection_id} {ex.duration_ms:.1f}ms")
"""

from __future__ import annotations

import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Self


_active_logger: ContextVar[ExchangeLogger | None] = ContextVar("_active_exchange_logger", default=None)


@dataclass
class ExchangeLog:
    """A single captured exchange."""

    request: str
    connection_id: str | None
    url: str
    duration_ms: float
    error: str | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __repr__(self) -> str:
        return f"ExchangeLog({self.request!r}, {self.duration_ms:.1f}ms)"


class ExchangeLogger:
    """
    Async context manager that captures exchanges with timing.

    Uses ``contextvars`` so only exchanges awaited inside the ``async with``
    block (and tasks spawned from it) are captured.
    """

    def __init__(self) -> None:
        self.exchanges: list[ExchangeLog] = []
        self._token: Any = None

    async def __aenter__(self) -> Self:
        self._token = _active_logger.set(self)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._token is not None:
            _active_logger.reset(self._token)
            self._token = None

    @property
    def total_exchanges(self) -> int:
        return len(self.exchanges)

    @property
    def total_ms(self) -> float:
        """Total duration of all captured exchanges in milliseconds."""
        return sum(e.duration_ms for e in self.exchanges)

    def requests(self) -> list[str]:
        """Request tags in the order they were sent."""
        return [e.request for e in self.exchanges]

    def _record(self, entry: ExchangeLog) -> None:
        self.exchanges.append(entry)

    def __repr__(self) -> str:
        return f"ExchangeLogger({self.total_exchanges} exchanges, {self.total_ms:.1f}ms)"


def _log_exchange(
    request: str,
    connection_id: str | None,
    url: str,
    duration_ms: float,
    error: str | None = None,
) -> None:
    """Record an exchange on the active ExchangeLogger, if any."""
    logger = _active_logger.get(None)
    if logger is not None:
        logger._record(
            ExchangeLog(request=request, connection_id=connection_id, url=url, duration_ms=duration_ms, error=error)
        )


def _start_timer() -> float:
    return time.perf_counter()


def _elapsed_ms(start: float) -> float:
    """Return elapsed time in milliseconds since *start*."""
    return (time.perf_counter() - start) * 1000.0


__all__ = ["ExchangeLog", "ExchangeLogger"]
