"""Kubernetes collaborator used to issue operations and watch their effects."""

from .client import ClusterClient, ClusterError, FakeCluster, KubeCluster
from .models import CreatedResource, LOAD_BALANCER, ObjectEvent, ResourceChange, ServiceSummary

__all__ = [
    "ClusterClient",
    "ClusterError",
    "CreatedResource",
    "FakeCluster",
    "KubeCluster",
    "LOAD_BALANCER",
    "ObjectEvent",
    "ResourceChange",
    "ServiceSummary",
]
