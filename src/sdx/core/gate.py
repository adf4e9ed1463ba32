"""The accelerator gate: one sd-cli invocation at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class ExecutionGate:
    """Mutual exclusion around the single shared accelerator.

    Exactly one holder at a time; waiters suspend without blocking the event
    loop.  There is no timeout, no cancellation and no ordering guarantee
    among waiters.  Prefer :meth:`hold`, which releases on every exit path.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        if self._lock.locked():
            logger.debug("Accelerator busy; waiting for gate.")
        await self._lock.acquire()

    def release(self) -> None:
        self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Hold the gate for the duration of an ``async with`` block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()
