"""Debounced writes for autosave.

Each call to ``trigger`` restarts the timer; only the last arguments are
delivered. A debouncer belongs to one owner (one editor session) and must
be closed with it, which flushes any pending write instead of dropping it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger()


class Debouncer:
    def __init__(self, delay: float, callback: Callable[..., Awaitable[Any]]) -> None:
        self.delay = delay
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        """Schedule a call with these arguments, replacing any pending one."""
        self._pending = (args, kwargs)
        self.cancel_timer()
        self._task = asyncio.get_running_loop().create_task(self._fire_later())

    def cancel_timer(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def cancel(self) -> None:
        """Drop the pending call without running it."""
        self.cancel_timer()
        self._pending = None

    async def _fire_later(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        await self._run()

    async def _run(self) -> None:
        if self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        try:
            await self._callback(*args, **kwargs)
        except Exception as e:
            logger.warning("debounce.callback_failed", error=str(e))

    async def flush(self) -> None:
        """Run the pending call now."""
        self.cancel_timer()
        await self._run()

    async def aclose(self) -> None:
        await self.flush()

    async def __aenter__(self) -> Debouncer:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
