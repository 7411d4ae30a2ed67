"""Bounded hand-off of completion records from subscribers to the coordinator."""

from __future__ import annotations

import asyncio
import logging

from .models import CompletionRecord

logger = logging.getLogger(__name__)


class ChannelClosedError(RuntimeError):
    """Raised when receiving from a channel that is not open."""


class CompletionChannel:
    """Single-consumer queue sized to the batch.

    Producers call :meth:`offer`, which never blocks; records offered while the
    channel is closed are dropped. Only the consumer closes the channel.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[CompletionRecord] | None = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self, capacity: int) -> None:
        """Start accepting records for a batch of ``capacity`` operations."""

        if not self._closed:
            raise RuntimeError("completion channel is already open")
        # A zero-sized asyncio.Queue is unbounded.
        self._queue = asyncio.Queue(maxsize=max(capacity, 1))
        self._closed = False

    def offer(self, record: CompletionRecord) -> bool:
        if self._closed or self._queue is None:
            logger.debug("Dropping completion for %s; channel is closed", record.name)
            return False
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            logger.warning("Dropping completion for %s; channel is full", record.name)
            return False
        return True

    async def receive(self) -> CompletionRecord:
        if self._queue is None:
            raise ChannelClosedError("completion channel was never opened")
        if self._closed and self._queue.empty():
            raise ChannelClosedError("completion channel is closed")
        return await self._queue.get()

    def close(self) -> None:
        """Stop accepting records. Closing twice is a no-op."""

        if self._closed:
            return
        self._closed = True
        if self._queue is not None and not self._queue.empty():
            logger.debug("Discarding %d unconsumed completion(s)", self._queue.qsize())


__all__ = ["ChannelClosedError", "CompletionChannel"]
