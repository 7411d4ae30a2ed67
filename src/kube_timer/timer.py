"""Service timer: measures provision and deletion latency of services."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from .cluster import ClusterClient, ClusterError
from .document import ResourceDocument
from .options import ConfigValidationError, TimerMode, TimerOptions
from .tracking import (
    Batch,
    BatchCoordinator,
    CompletionChannel,
    CorrelationEngine,
    EventSubscriber,
    LatencyReport,
    NotificationSubscriber,
    OperationRegistry,
    StatusSubscriber,
    format_report,
    summarize,
)

logger = logging.getLogger(__name__)


class SubscriptionError(RuntimeError):
    """Raised when a watch subscription cannot be established or fails mid-run."""


class ServiceTimer:
    """Times a batch of service creations or deletions."""

    def __init__(
        self,
        cluster: ClusterClient,
        options: TimerOptions,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._cluster = cluster
        self._options = options
        self._clock = clock
        self._document: ResourceDocument | None = None
        self._validated = False
        self.registry = OperationRegistry()
        self.channel = CompletionChannel()
        self.engine = CorrelationEngine(self.registry, self.channel)

    @property
    def options(self) -> TimerOptions:
        return self._options

    @property
    def namespace(self) -> str:
        if self._document is not None and self._document.namespace:
            return self._document.namespace
        return self._options.namespace

    def validate(self) -> None:
        """Pre-flight checks; raises ConfigValidationError or DocumentDecodeError."""

        self._document = self._options.check()
        self._validated = True

    def _subscribers(self) -> list[NotificationSubscriber]:
        if self._options.uses_events:
            return [
                EventSubscriber(
                    self._cluster,
                    self.namespace,
                    registry=self.registry,
                    engine=self.engine,
                    started_reason=self._options.started_event_reason or "",
                    finished_reason=self._options.finished_event_reason or "",
                )
            ]
        return [
            StatusSubscriber(
                self._cluster,
                self.namespace,
                registry=self.registry,
                channel=self.channel,
                clock=self._clock,
            )
        ]

    async def _run_batch(self, coordinator: BatchCoordinator) -> Batch:
        mode = self._options.mode
        if mode is TimerMode.DELETE:
            return await coordinator.delete(self._options.name or "")
        if mode is TimerMode.DELETE_ALL:
            return await coordinator.delete_all()
        if self._document is None:
            raise ConfigValidationError("definition file is required")
        return await coordinator.create(
            self._document,
            self._options.count,
            fan_out=mode is TimerMode.CREATE_ASYNC,
        )

    async def start(self) -> LatencyReport:
        """Subscribe, run the batch and log the aggregate report."""

        if not self._validated:
            self.validate()

        subscribers = self._subscribers()
        for subscriber in subscribers:
            try:
                await subscriber.start()
            except ClusterError as exc:
                raise SubscriptionError(
                    f"error watching {subscriber.stream_kind}: {exc}"
                ) from exc

        coordinator = BatchCoordinator(
            self._cluster,
            self.registry,
            self.channel,
            namespace=self.namespace,
            timeout=self._options.timeout_seconds,
        )

        watchers = [
            asyncio.create_task(subscriber.run(), name=f"watch-{subscriber.stream_kind}")
            for subscriber in subscribers
        ]
        batch_task = asyncio.create_task(self._run_batch(coordinator), name="batch")
        try:
            pending: set[asyncio.Task] = {batch_task, *watchers}
            while batch_task in pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task is batch_task:
                        continue
                    error = task.exception()
                    if error is not None:
                        raise SubscriptionError(
                            f"{task.get_name()} subscription failed: {error}"
                        ) from error
                    logger.warning("Subscription %s ended unexpectedly", task.get_name())
            batch = batch_task.result()
        finally:
            tasks = [task for task in (batch_task, *watchers) if not task.done()]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            for subscriber in subscribers:
                subscriber.reset()

        report = summarize(batch.collected)
        if self._options.mode.is_create:
            logger.info(format_report(report, verb="creating", measure="provision"))
        else:
            logger.info(format_report(report, verb="deleting", measure="deletion"))
        return report


__all__ = ["ServiceTimer", "SubscriptionError"]
