"""Provision and deletion latency timer for Kubernetes services."""

__version__ = "0.1.0"

__all__ = ["__version__"]
