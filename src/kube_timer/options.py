"""Timer run options and pre-flight validation."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .document import DocumentDecodeError, ResourceDocument


class ConfigValidationError(RuntimeError):
    """Raised when the requested run is malformed or incomplete."""


class TimerMode(str, Enum):
    """How operations of a batch are issued and collected."""

    CREATE = "create"
    CREATE_ASYNC = "create-async"
    DELETE = "delete"
    DELETE_ALL = "delete-all"

    @property
    def is_create(self) -> bool:
        return self in (TimerMode.CREATE, TimerMode.CREATE_ASYNC)

    @property
    def is_delete(self) -> bool:
        return self in (TimerMode.DELETE, TimerMode.DELETE_ALL)


class TimerOptions(BaseModel):
    """Options for a single timer invocation."""

    mode: TimerMode = Field(default=TimerMode.CREATE)
    definition_file: Path | None = Field(default=None, description="Resource definition file.")
    name: str | None = Field(default=None, description="Name of the service to delete.")
    namespace: str = Field(default="default")
    started_event_reason: str | None = Field(default=None)
    finished_event_reason: str | None = Field(default=None)
    count: int = Field(default=1)
    timeout_seconds: float | None = Field(default=None)

    @field_validator("name", "started_event_reason", "finished_event_reason", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("namespace")
    @classmethod
    def _normalize_namespace(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("namespace must not be empty")
        return normalized

    @property
    def uses_events(self) -> bool:
        """Whether completions are correlated from lifecycle events."""

        return self.started_event_reason is not None

    def check(self) -> ResourceDocument | None:
        """Validate option combinations and return the loaded document, if any.

        Raises ``ConfigValidationError`` for bad combinations and
        ``DocumentDecodeError`` when the definition file cannot be parsed.
        """

        if self.mode.is_create and self.definition_file is None:
            raise ConfigValidationError("definition file is required")

        if self.mode is TimerMode.DELETE and not self.name:
            raise ConfigValidationError("service name is required for delete mode")

        if self.mode.is_delete and (
            self.started_event_reason is None or self.finished_event_reason is None
        ):
            raise ConfigValidationError("started and finished event reasons are required")

        if self.started_event_reason is not None and self.finished_event_reason is None:
            raise ConfigValidationError("finished event reason is required")
        if self.started_event_reason is None and self.finished_event_reason is not None:
            raise ConfigValidationError("started event reason is required")

        if self.count <= 0:
            raise ConfigValidationError(f"provided count {self.count} is invalid")

        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ConfigValidationError(f"provided timeout {self.timeout_seconds} is invalid")

        document: ResourceDocument | None = None
        if self.mode.is_create:
            document = ResourceDocument.load(self.definition_file)
            if self.count > 1 and not document.generate_name:
                raise ConfigValidationError(
                    "metadata.generateName is required for creating multiple services"
                )
            if not document.generate_name and not document.name:
                raise DocumentDecodeError(
                    "resource definition requires metadata.name or metadata.generateName"
                )
        return document


__all__ = ["ConfigValidationError", "TimerMode", "TimerOptions"]
