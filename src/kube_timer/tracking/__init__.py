"""Correlation of in-flight operations with their watch notifications."""

from .channel import ChannelClosedError, CompletionChannel
from .coordinator import BatchCoordinator, CollectionTimeoutError, IssueError, Operation, is_load_balancer
from .engine import CorrelationEngine
from .models import (
    Batch,
    BatchMode,
    CompletionRecord,
    NotificationEvent,
    NotificationKind,
    OperationRecord,
    OperationState,
)
from .registry import OperationRegistry
from .stats import LatencyReport, format_duration, format_report, summarize
from .subscribers import EventSubscriber, NotificationSubscriber, StatusSubscriber

__all__ = [
    "Batch",
    "BatchCoordinator",
    "BatchMode",
    "ChannelClosedError",
    "CollectionTimeoutError",
    "CompletionChannel",
    "CompletionRecord",
    "CorrelationEngine",
    "EventSubscriber",
    "IssueError",
    "LatencyReport",
    "NotificationEvent",
    "NotificationKind",
    "NotificationSubscriber",
    "Operation",
    "OperationRecord",
    "OperationRegistry",
    "OperationState",
    "StatusSubscriber",
    "format_duration",
    "format_report",
    "is_load_balancer",
    "summarize",
]
