"""Raw shapes produced by the cluster collaborator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

LOAD_BALANCER = "LoadBalancer"


@dataclass(frozen=True, slots=True)
class CreatedResource:
    name: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ServiceSummary:
    name: str
    service_type: str | None

    @property
    def is_load_balancer(self) -> bool:
        return self.service_type == LOAD_BALANCER


@dataclass(frozen=True, slots=True)
class ObjectEvent:
    """A lifecycle event about some object, as seen on the events stream."""

    change_type: str
    involved_name: str
    reason: str
    created_at: datetime
    message: str = ""


@dataclass(frozen=True, slots=True)
class ResourceChange:
    """A service as seen on the services stream after a change."""

    change_type: str
    name: str
    created_at: datetime
    address: str | None = None


__all__ = ["CreatedResource", "LOAD_BALANCER", "ObjectEvent", "ResourceChange", "ServiceSummary"]
