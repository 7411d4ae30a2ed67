"""Utility helpers for the cluster collaborator."""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Iterator, TypeVar

T = TypeVar("T")

_END = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


def parse_timestamp(value: Any) -> datetime:
    """Return a timezone-aware datetime from an API timestamp."""

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"unsupported timestamp {value!r}")


class ThreadedStream(Generic[T]):
    """Async iterator fed by a blocking generator running in a daemon thread."""

    def __init__(self, producer: Callable[[threading.Event], Iterator[T]], *, name: str) -> None:
        self._producer = producer
        self._name = name
        self._stop = threading.Event()
        self._queue: asyncio.Queue[Any] | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> "ThreadedStream[T]":
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queue = queue

        def post(item: Any) -> None:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, item)
            except RuntimeError:
                # loop already closed
                self._stop.set()

        def pump() -> None:
            try:
                for item in self._producer(self._stop):
                    if self._stop.is_set():
                        return
                    post(item)
            except Exception as exc:
                if not self._stop.is_set():
                    post(_Failure(exc))
                return
            post(_END)

        self._thread = threading.Thread(target=pump, name=self._name, daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()

    def __aiter__(self) -> "ThreadedStream[T]":
        return self

    async def __anext__(self) -> T:
        if self._queue is None:
            raise RuntimeError(f"stream {self._name} was not started")
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise item.error
        return item


__all__ = ["ThreadedStream", "parse_timestamp"]
