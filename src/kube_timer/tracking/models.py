"""Data models for operation tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


class OperationState(str, Enum):
    PENDING = "pending"
    STARTED = "started"
    FINISHED = "finished"


class NotificationKind(str, Enum):
    STARTED = "started"
    FINISHED = "finished"
    STATUS_CHANGED = "status_changed"


class BatchMode(str, Enum):
    SEQUENTIAL = "sequential"
    FAN_OUT = "fan_out"


@dataclass(slots=True)
class OperationRecord:
    """Timing state of one in-flight operation."""

    name: str
    state: OperationState = OperationState.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class CompletionRecord:
    """Start and finish of a completed operation."""

    name: str
    started: datetime
    finished: datetime

    @property
    def duration(self) -> timedelta:
        return self.finished - self.started


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """A watch notification translated into the tracker's uniform shape."""

    subject_name: str
    kind: NotificationKind
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Batch:
    """Operations issued and tracked together for one report."""

    expected_count: int
    mode: BatchMode
    collected: list[CompletionRecord] = field(default_factory=list)


__all__ = [
    "Batch",
    "BatchMode",
    "CompletionRecord",
    "NotificationEvent",
    "NotificationKind",
    "OperationRecord",
    "OperationState",
]
