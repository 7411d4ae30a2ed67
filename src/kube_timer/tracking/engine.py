"""Correlates lifecycle notifications with in-flight operations."""

from __future__ import annotations

import logging

from .channel import CompletionChannel
from .models import CompletionRecord, NotificationEvent, NotificationKind
from .registry import OperationRegistry
from .stats import format_duration

logger = logging.getLogger(__name__)


class CorrelationEngine:
    """Drives registry transitions from started/finished notifications."""

    def __init__(self, registry: OperationRegistry, channel: CompletionChannel) -> None:
        self._registry = registry
        self._channel = channel

    def handle(self, notification: NotificationEvent) -> CompletionRecord | None:
        """Apply one notification; returns the completion it produced, if any."""

        name = notification.subject_name
        if notification.kind is NotificationKind.STARTED:
            if self._registry.mark_started(name, notification.occurred_at):
                logger.debug("Operation %s started at %s", name, notification.occurred_at.isoformat())
            else:
                logger.debug("Ignoring start notification for %s", name)
            return None

        if notification.kind is NotificationKind.FINISHED:
            record = self._registry.mark_finished(name, notification.occurred_at)
            if record is None:
                return None
            logger.info("Finished in %s for service %s", format_duration(record.duration), name)
            self._channel.offer(record)
            return record

        logger.debug(
            "Ignoring %s notification for %s", notification.kind.value, name
        )
        return None


__all__ = ["CorrelationEngine"]
