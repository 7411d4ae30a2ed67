"""Authoritative store of per-operation timing state."""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from .models import CompletionRecord, OperationRecord, OperationState

logger = logging.getLogger(__name__)


class OperationRegistry:
    """Maps operation names to their timing state.

    State only moves forward: pending -> started -> finished. Every method takes
    the internal lock, so membership checks and inserts made while a batch is
    being issued never interleave with a transition.
    """

    def __init__(self) -> None:
        self._records: dict[str, OperationRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._records

    def register(self, name: str) -> bool:
        """Track ``name`` as pending. Returns False if it is already tracked.

        A finished name stays tracked until :meth:`release` or :meth:`clear`, so it
        cannot complete twice within one batch.
        """

        with self._lock:
            existing = self._records.get(name)
            if existing is not None:
                logger.debug("Operation %s is already registered", name, extra={"state": existing.state.value})
                return False
            self._records[name] = OperationRecord(name=name)
            return True

    def get(self, name: str) -> OperationRecord | None:
        """Return a snapshot of the record for ``name``."""

        with self._lock:
            record = self._records.get(name)
            if record is None:
                return None
            return OperationRecord(
                name=record.name,
                state=record.state,
                started_at=record.started_at,
                finished_at=record.finished_at,
            )

    def is_tracked(self, name: str) -> bool:
        """Whether ``name`` is registered and not yet finished."""

        with self._lock:
            record = self._records.get(name)
            return record is not None and record.state is not OperationState.FINISHED

    def mark_started(self, name: str, at: datetime) -> bool:
        with self._lock:
            record = self._records.get(name)
            if record is None or record.state is not OperationState.PENDING:
                return False
            record.state = OperationState.STARTED
            record.started_at = at
            return True

    def mark_finished(self, name: str, at: datetime) -> CompletionRecord | None:
        """Finish a started operation and return its completion record.

        Unknown, already finished, and never started operations are left as they
        are and ``None`` is returned.
        """

        with self._lock:
            record = self._records.get(name)
            if record is None:
                logger.debug("Dropping finish notification for untracked operation %s", name)
                return None
            if record.state is OperationState.FINISHED:
                logger.debug("Dropping duplicate finish notification for %s", name)
                return None
            if record.state is OperationState.PENDING or record.started_at is None:
                logger.warning(
                    "Dropping finish notification for %s received before its start notification",
                    name,
                )
                return None
            record.state = OperationState.FINISHED
            record.finished_at = at
            return CompletionRecord(name=name, started=record.started_at, finished=at)

    def settle(self, name: str, started: datetime, finished: datetime) -> CompletionRecord | None:
        """Finish an operation whose start time is known from the resource itself."""

        with self._lock:
            record = self._records.get(name)
            if record is None or record.state is OperationState.FINISHED:
                logger.debug("Dropping completion for untracked or finished operation %s", name)
                return None
            record.state = OperationState.FINISHED
            record.started_at = record.started_at or started
            record.finished_at = finished
            return CompletionRecord(name=name, started=started, finished=finished)

    def release(self, name: str) -> None:
        """Forget a finished operation once its completion has been consumed."""

        with self._lock:
            record = self._records.get(name)
            if record is not None and record.state is OperationState.FINISHED:
                del self._records[name]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


__all__ = ["OperationRegistry"]
