"""Fire-and-forget task runner whose failures are logged, never raised."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class Detached:
    """Spawns coroutines as background tasks and isolates their failures.

    Every task is wrapped so an exception is logged with the label and
    context it was spawned with, then dropped. References are held until the
    task finishes so it cannot be garbage-collected mid-flight.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        label: str,
        **context: Any,
    ) -> asyncio.Task[Any]:
        """Schedule coro on the running loop. Must be called from async code."""
        task = asyncio.get_running_loop().create_task(
            self._guard(coro, label, context), name=label
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Coroutine[Any, Any, Any], label: str, context: dict[str, Any]) -> Any:
        try:
            return await coro
        except Exception:
            ctx = " ".join(f"{k}={v}" for k, v in context.items())
            self._log.exception("Detached %s failed (%s)", label, ctx)
            return None

    async def drain(self) -> None:
        """Wait for every outstanding task, including ones spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
