"""Watch subscriptions that feed notifications into the tracker."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable

from ..cluster import ClusterClient, ObjectEvent, ResourceChange
from .channel import CompletionChannel
from .engine import CorrelationEngine
from .models import NotificationEvent, NotificationKind
from .registry import OperationRegistry
from .stats import format_duration

logger = logging.getLogger(__name__)


class NotificationSubscriber(ABC):
    """A long-lived subscription translating raw notifications for the tracker.

    :meth:`start` establishes the subscription and must complete before any
    operation is issued; :meth:`run` then consumes it for the life of the process.
    """

    stream_kind = "notifications"

    def __init__(self, cluster: ClusterClient, namespace: str) -> None:
        self._cluster = cluster
        self._namespace = namespace
        self._stream: AsyncIterator[Any] | None = None

    @abstractmethod
    async def _open(self) -> AsyncIterator[Any]:
        """Open the underlying watch."""

    @abstractmethod
    def dispatch(self, raw: Any) -> NotificationEvent | None:
        """Handle one raw notification, returning what was forwarded if anything."""

    async def start(self) -> AsyncIterator[Any]:
        stream = self._stream
        if stream is None:
            stream = self._stream = await self._open()
            logger.debug("Subscribed to %s in namespace %s", self.stream_kind, self._namespace)
        return stream

    async def run(self) -> None:
        stream = await self.start()
        async for raw in stream:
            self.dispatch(raw)

    def reset(self) -> None:
        """Drop any state kept for the batch that just ended."""


class EventSubscriber(NotificationSubscriber):
    """Turns lifecycle events with the configured reasons into start/finish notifications."""

    stream_kind = "events"

    def __init__(
        self,
        cluster: ClusterClient,
        namespace: str,
        *,
        registry: OperationRegistry,
        engine: CorrelationEngine,
        started_reason: str,
        finished_reason: str,
    ) -> None:
        super().__init__(cluster, namespace)
        self._registry = registry
        self._engine = engine
        self._started_reason = started_reason.casefold()
        self._finished_reason = finished_reason.casefold()

    async def _open(self) -> AsyncIterator[ObjectEvent]:
        return await self._cluster.watch_events(self._namespace)

    def _classify(self, reason: str) -> NotificationKind | None:
        folded = reason.casefold()
        if folded == self._started_reason:
            return NotificationKind.STARTED
        if folded == self._finished_reason:
            return NotificationKind.FINISHED
        return None

    def dispatch(self, raw: ObjectEvent) -> NotificationEvent | None:
        if raw.change_type != "ADDED":
            return None
        kind = self._classify(raw.reason)
        if kind is None:
            return None
        if not self._registry.is_tracked(raw.involved_name):
            logger.debug(
                "Ignoring %s event for untracked object %s", raw.reason, raw.involved_name
            )
            return None

        logger.info(
            "Got %s event for %s",
            kind.value,
            raw.involved_name,
            extra={"reason": raw.reason, "event_message": raw.message},
        )
        notification = NotificationEvent(
            subject_name=raw.involved_name,
            kind=kind,
            occurred_at=raw.created_at,
            payload={"reason": raw.reason, "message": raw.message},
        )
        self._engine.handle(notification)
        return notification


class StatusSubscriber(NotificationSubscriber):
    """Completes an operation when its service first gets an external address.

    The service carries its own creation time, so the completion is built
    directly from the update without a separate start notification.
    """

    stream_kind = "services"

    def __init__(
        self,
        cluster: ClusterClient,
        namespace: str,
        *,
        registry: OperationRegistry,
        channel: CompletionChannel,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(cluster, namespace)
        self._registry = registry
        self._channel = channel
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._addresses: dict[str, str | None] = {}

    async def _open(self) -> AsyncIterator[ResourceChange]:
        return await self._cluster.watch_services(self._namespace)

    def dispatch(self, raw: ResourceChange) -> NotificationEvent | None:
        if raw.change_type == "DELETED" or not self._registry.is_tracked(raw.name):
            # Only operations still in flight need their last address.
            self._addresses.pop(raw.name, None)
            if raw.change_type == "MODIFIED" and raw.address:
                logger.debug("Ignoring address assignment for untracked service %s", raw.name)
            return None

        previous = self._addresses.get(raw.name)
        self._addresses[raw.name] = raw.address
        if raw.change_type != "MODIFIED" or previous or not raw.address:
            return None

        received = self._clock()
        notification = NotificationEvent(
            subject_name=raw.name,
            kind=NotificationKind.STATUS_CHANGED,
            occurred_at=received,
            payload={"address": raw.address, "created_at": raw.created_at},
        )
        record = self._registry.settle(raw.name, started=raw.created_at, finished=received)
        self._addresses.pop(raw.name, None)
        if record is None:
            return None
        logger.info(
            "Service %s is ready with external address %s in %s",
            raw.name,
            raw.address,
            format_duration(record.duration),
        )
        self._channel.offer(record)
        return notification

    def reset(self) -> None:
        """Forget cached addresses once a batch is over."""

        self._addresses.clear()


__all__ = ["EventSubscriber", "NotificationSubscriber", "StatusSubscriber"]
