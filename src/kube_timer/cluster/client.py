"""Cluster collaborator: issue, list and watch Kubernetes resources."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterable, Iterator, Protocol

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes import dynamic, watch
from kubernetes.client.rest import ApiException

from ..document import ResourceDescriptor
from .models import CreatedResource, ObjectEvent, ResourceChange, ServiceSummary
from .utils import ThreadedStream, parse_timestamp

logger = logging.getLogger(__name__)

_WATCH_TIMEOUT_SECONDS = 300
_WATCHED_TYPES = {"ADDED", "MODIFIED", "DELETED"}


class ClusterError(RuntimeError):
    """Raised when a call to the Kubernetes API fails."""


class ClusterClient(Protocol):
    """Operations the timer needs from the cluster."""

    async def create(
        self, document: dict[str, Any], descriptor: ResourceDescriptor, namespace: str
    ) -> CreatedResource:
        ...

    async def delete(self, name: str, namespace: str) -> None:
        ...

    async def list_services(self, namespace: str) -> list[ServiceSummary]:
        ...

    async def watch_events(self, namespace: str) -> AsyncIterator[ObjectEvent]:
        ...

    async def watch_services(self, namespace: str) -> AsyncIterator[ResourceChange]:
        ...

    def close(self) -> None:
        ...


def _ingress_address(service: Any) -> str | None:
    status = getattr(service, "status", None)
    load_balancer = getattr(status, "load_balancer", None)
    ingress = getattr(load_balancer, "ingress", None) or []
    if not ingress:
        return None
    return ingress[0].ip or ingress[0].hostname or None


class KubeCluster:
    """ClusterClient backed by the official Kubernetes Python client."""

    def __init__(self, kubeconfig: Path, *, api_client: k8s_client.ApiClient | None = None) -> None:
        if api_client is None:
            try:
                api_client = k8s_config.new_client_from_config(config_file=str(kubeconfig))
            except (k8s_config.ConfigException, OSError) as exc:
                raise ClusterError(f"error building kube client from {kubeconfig}: {exc}") from exc
        self._api_client = api_client
        self._core = k8s_client.CoreV1Api(api_client)
        self._dynamic_client: dynamic.DynamicClient | None = None
        self._streams: list[ThreadedStream[Any]] = []

    def _dynamic(self) -> dynamic.DynamicClient:
        if self._dynamic_client is None:
            self._dynamic_client = dynamic.DynamicClient(self._api_client)
        return self._dynamic_client

    @staticmethod
    async def _call(action: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except ApiException as exc:
            raise ClusterError(f"error {action}: {exc.status} {exc.reason}") from exc
        except Exception as exc:
            raise ClusterError(f"error {action}: {exc}") from exc

    async def create(
        self, document: dict[str, Any], descriptor: ResourceDescriptor, namespace: str
    ) -> CreatedResource:
        def _create() -> Any:
            resource = self._dynamic().resources.get(
                api_version=descriptor.api_version, kind=descriptor.kind
            )
            return resource.create(body=document, namespace=namespace)

        created = await self._call(f"creating {descriptor.resource}", _create)
        metadata = created.metadata
        return CreatedResource(name=metadata.name, created_at=parse_timestamp(metadata.creationTimestamp))

    async def delete(self, name: str, namespace: str) -> None:
        await self._call(
            f"deleting service {name}",
            lambda: self._core.delete_namespaced_service(name, namespace),
        )

    async def list_services(self, namespace: str) -> list[ServiceSummary]:
        result = await self._call(
            "listing services", lambda: self._core.list_namespaced_service(namespace)
        )
        return [
            ServiceSummary(name=item.metadata.name, service_type=getattr(item.spec, "type", None))
            for item in result.items
        ]

    async def watch_events(self, namespace: str) -> AsyncIterator[ObjectEvent]:
        def translate(change_type: str, event: Any) -> ObjectEvent:
            involved = event.involved_object
            created = event.metadata.creation_timestamp or event.first_timestamp
            return ObjectEvent(
                change_type=change_type,
                involved_name=getattr(involved, "name", "") or "",
                reason=event.reason or "",
                created_at=parse_timestamp(created) if created else datetime.now(timezone.utc),
                message=event.message or "",
            )

        return await self._open_stream(
            "events", self._core.list_namespaced_event, namespace, translate
        )

    async def watch_services(self, namespace: str) -> AsyncIterator[ResourceChange]:
        def translate(change_type: str, service: Any) -> ResourceChange:
            return ResourceChange(
                change_type=change_type,
                name=service.metadata.name,
                created_at=parse_timestamp(service.metadata.creation_timestamp),
                address=_ingress_address(service),
            )

        return await self._open_stream(
            "services", self._core.list_namespaced_service, namespace, translate
        )

    async def _open_stream(
        self,
        kind: str,
        list_fn: Callable[..., Any],
        namespace: str,
        translate: Callable[[str, Any], Any],
    ) -> AsyncIterator[Any]:
        # Watch from the list's resourceVersion so objects left over from
        # earlier runs are not replayed as fresh notifications.
        initial = await self._call(f"listing {kind}", lambda: list_fn(namespace, limit=1))
        resource_version = initial.metadata.resource_version

        def produce(stop: threading.Event) -> Iterator[Any]:
            version = resource_version
            watcher = watch.Watch()
            while not stop.is_set():
                try:
                    for item in watcher.stream(
                        list_fn,
                        namespace,
                        resource_version=version,
                        timeout_seconds=_WATCH_TIMEOUT_SECONDS,
                    ):
                        if stop.is_set():
                            watcher.stop()
                            return
                        change_type = item.get("type")
                        obj = item.get("object")
                        if change_type not in _WATCHED_TYPES or obj is None:
                            continue
                        version = obj.metadata.resource_version or version
                        yield translate(change_type, obj)
                except ApiException as exc:
                    if exc.status != 410:
                        raise
                    logger.warning("Watch on %s expired; resuming from a fresh list", kind)
                    version = list_fn(namespace, limit=1).metadata.resource_version

        stream: ThreadedStream[Any] = ThreadedStream(produce, name=f"kube-timer-watch-{kind}")
        self._streams.append(stream)
        logger.debug("Watching %s in namespace %s from version %s", kind, namespace, resource_version)
        return stream.start()

    def close(self) -> None:
        for stream in self._streams:
            stream.stop()
        self._streams.clear()
        self._api_client.close()


async def _iterate(queue: asyncio.Queue[Any]) -> AsyncIterator[Any]:
    while True:
        yield await queue.get()


class FakeCluster:
    """In-memory ClusterClient used by tests."""

    def __init__(
        self,
        services: Iterable[ServiceSummary] | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.services: dict[str, ServiceSummary] = {svc.name: svc for svc in services or []}
        self.created: dict[str, CreatedResource] = {}
        self.failing: set[str] = set()
        self.fail_listing = False
        self.on_create: Callable[[CreatedResource], None] | None = None
        self.on_delete: Callable[[str], None] | None = None
        self.closed = False
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._invocations: list[tuple[str, ...]] = []
        self._event_queues: list[asyncio.Queue[ObjectEvent]] = []
        self._service_queues: list[asyncio.Queue[ResourceChange]] = []

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    async def create(
        self, document: dict[str, Any], descriptor: ResourceDescriptor, namespace: str
    ) -> CreatedResource:
        name = document["metadata"]["name"]
        self._invocations.append(("create", name, namespace))
        if name in self.failing:
            raise ClusterError(f"error creating {descriptor.resource}: simulated failure for {name}")
        created = CreatedResource(name=name, created_at=self._clock())
        self.created[name] = created
        self.services[name] = ServiceSummary(
            name=name, service_type=document.get("spec", {}).get("type")
        )
        if self.on_create is not None:
            self.on_create(created)
        return created

    async def delete(self, name: str, namespace: str) -> None:
        self._invocations.append(("delete", name, namespace))
        if name in self.failing:
            raise ClusterError(f"error deleting service {name}: simulated failure")
        self.services.pop(name, None)
        if self.on_delete is not None:
            self.on_delete(name)

    async def list_services(self, namespace: str) -> list[ServiceSummary]:
        self._invocations.append(("list", namespace))
        if self.fail_listing:
            raise ClusterError("error listing services: simulated failure")
        return list(self.services.values())

    async def watch_events(self, namespace: str) -> AsyncIterator[ObjectEvent]:
        queue: asyncio.Queue[ObjectEvent] = asyncio.Queue()
        self._event_queues.append(queue)
        return _iterate(queue)

    async def watch_services(self, namespace: str) -> AsyncIterator[ResourceChange]:
        queue: asyncio.Queue[ResourceChange] = asyncio.Queue()
        self._service_queues.append(queue)
        return _iterate(queue)

    def emit_event(self, event: ObjectEvent) -> None:
        for queue in self._event_queues:
            queue.put_nowait(event)

    def emit_service(self, change: ResourceChange) -> None:
        for queue in self._service_queues:
            queue.put_nowait(change)

    def close(self) -> None:
        self.closed = True


__all__ = ["ClusterClient", "ClusterError", "FakeCluster", "KubeCluster"]
