from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional

from trendpulse.core.exceptions import PersistenceError
from trendpulse.domain.models import EntityRollup, Signal
from trendpulse.storage.repository import SignalRepository

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class PersistenceQueue:
    """
    Fire-and-forget writer in front of a ``SignalRepository``.

    ``submit_*`` never blocks the caller: when the queue is full the batch is
    dropped with a warning. A single worker task writes batches in order and
    logs repository failures instead of raising them.
    """

    def __init__(self, repository: SignalRepository, maxsize: int = 100) -> None:
        self.repository = repository
        self.maxsize = maxsize
        self._queue: asyncio.Queue[tuple[str, Job]] = asyncio.Queue(maxsize=maxsize)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task] = None
        self.dropped = 0

    def start(self) -> None:
        """Start the worker on the running loop; a queue left on another loop is replaced."""
        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            if self._loop is not None and not self._queue.empty():
                logger.warning("Discarding %s batches queued on a previous event loop", self._queue.qsize())
            self._loop = loop
            self._queue = asyncio.Queue(maxsize=self.maxsize)
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())

    def submit_signals(self, signals: Sequence[Signal]) -> bool:
        if not signals:
            return True
        batch = list(signals)
        return self._submit("save_signals", lambda: self.repository.save_signals(batch))

    def submit_rollups(self, region: str, rollups: Sequence[EntityRollup]) -> bool:
        if not rollups:
            return True
        batch = list(rollups)
        return self._submit("save_rollups", lambda: self.repository.save_rollups(region, batch))

    def _submit(self, operation: str, job: Job) -> bool:
        self.start()
        try:
            self._queue.put_nowait((operation, job))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Persistence queue full; dropped %s batch", operation,
                           extra={"error_kind": PersistenceError.kind.value})
            return False
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def _run(self) -> None:
        while True:
            operation, job = await self._queue.get()
            try:
                await job()
            except PersistenceError as exc:
                logger.error("Persistence %s failed: %s", operation, exc,
                             extra={"error_kind": PersistenceError.kind.value})
            except Exception:
                logger.exception("Unexpected error during persistence %s", operation,
                                 extra={"error_kind": PersistenceError.kind.value})
            finally:
                self._queue.task_done()

    async def drain(self, timeout: float = 5.0) -> bool:
        """Wait for queued batches to be written; False if ``timeout`` elapsed first."""
        if self._worker is None:
            return True
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Persistence drain timed out with %s batches pending", self.pending,
                           extra={"count": self.pending})
            return False
        return True

    async def stop(self, timeout: float = 5.0) -> None:
        await self.drain(timeout)
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
