"""Issues a batch of operations and collects their completions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from ..cluster import ClusterClient, ClusterError, ServiceSummary
from ..document import ResourceDocument
from .channel import CompletionChannel
from .models import Batch, BatchMode, CompletionRecord
from .registry import OperationRegistry

logger = logging.getLogger(__name__)

_NAME_ATTEMPTS = 10


class IssueError(RuntimeError):
    """Raised when an operation could not be issued; the batch is aborted."""


class CollectionTimeoutError(RuntimeError):
    """Raised when completions do not arrive within the configured deadline."""


@dataclass(slots=True)
class Operation:
    name: str
    issue: Callable[[], Awaitable[Any]]
    action: str


def is_load_balancer(service: ServiceSummary) -> bool:
    return service.is_load_balancer


class BatchCoordinator:
    """Runs batches in sequential or fan-out mode.

    Operations are registered before they are issued, so a notification can never
    arrive for a name the registry does not know yet. The coordinator is the only
    party that opens and closes the completion channel.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        registry: OperationRegistry,
        channel: CompletionChannel,
        *,
        namespace: str,
        timeout: float | None = None,
    ) -> None:
        self._cluster = cluster
        self._registry = registry
        self._channel = channel
        self._namespace = namespace
        self._timeout = timeout

    async def create(self, document: ResourceDocument, count: int, *, fan_out: bool = False) -> Batch:
        namespace = document.namespace or self._namespace
        taken: set[str] = set()
        operations = [self._create_operation(document, namespace, taken) for _ in range(count)]
        logger.info("Starting %d services creation", count)
        return await self.run(operations, BatchMode.FAN_OUT if fan_out else BatchMode.SEQUENTIAL)

    async def delete(self, name: str) -> Batch:
        logger.info("Deleting service %s", name)
        return await self.run([self._delete_operation(name)], BatchMode.SEQUENTIAL)

    async def delete_all(
        self, predicate: Callable[[ServiceSummary], bool] = is_load_balancer
    ) -> Batch:
        try:
            services = await self._cluster.list_services(self._namespace)
        except ClusterError as exc:
            raise IssueError(f"error listing services: {exc}") from exc

        names = [service.name for service in services if predicate(service)]
        logger.info("Deleting %d services", len(names))
        return await self.run([self._delete_operation(name) for name in names], BatchMode.FAN_OUT)

    def _create_operation(
        self, document: ResourceDocument, namespace: str, taken: set[str]
    ) -> Operation:
        for _ in range(_NAME_ATTEMPTS):
            body = document.materialize()
            name = body["metadata"]["name"]
            if name not in taken:
                break
            logger.debug("Generated name %s is already used in this batch, regenerating", name)
        else:
            raise IssueError(f"could not generate a unique service name after {_NAME_ATTEMPTS} attempts")
        taken.add(name)

        async def issue() -> None:
            created = await self._cluster.create(body, document.descriptor, namespace)
            logger.info("Created service %s", created.name)

        return Operation(name=name, issue=issue, action="creating")

    def _delete_operation(self, name: str) -> Operation:
        async def issue() -> None:
            await self._cluster.delete(name, self._namespace)
            logger.debug("Delete of service %s accepted", name)

        return Operation(name=name, issue=issue, action="deleting")

    async def run(self, operations: Iterable[Operation], mode: BatchMode) -> Batch:
        """Issue ``operations`` and block until every one of them has completed."""

        unique: dict[str, Operation] = {}
        for operation in operations:
            if operation.name in unique:
                logger.warning("Skipping duplicate operation for %s", operation.name)
                continue
            unique[operation.name] = operation

        batch = Batch(expected_count=len(unique), mode=mode)
        self._channel.open(batch.expected_count)
        try:
            if mode is BatchMode.SEQUENTIAL:
                await self._run_sequential(batch, unique.values())
            else:
                await self._run_fan_out(batch, unique.values())
        finally:
            self._channel.close()
            self._registry.clear()
        return batch

    async def _run_sequential(self, batch: Batch, operations: Iterable[Operation]) -> None:
        for operation in operations:
            await self._issue(operation)
            record = await self._wait(self._channel.receive(), batch)
            self._consume(batch, record)

    async def _run_fan_out(self, batch: Batch, operations: Iterable[Operation]) -> None:
        drain = asyncio.create_task(self._drain(batch), name="kube-timer-drain")
        try:
            for operation in operations:
                await self._issue(operation)
            await self._wait(drain, batch)
        finally:
            if not drain.done():
                drain.cancel()
                await asyncio.gather(drain, return_exceptions=True)

    async def _drain(self, batch: Batch) -> None:
        while len(batch.collected) < batch.expected_count:
            self._consume(batch, await self._channel.receive())

    async def _issue(self, operation: Operation) -> None:
        self._registry.register(operation.name)
        try:
            await operation.issue()
        except ClusterError as exc:
            raise IssueError(f"error {operation.action} service {operation.name}: {exc}") from exc

    async def _wait(self, awaitable: Awaitable[Any], batch: Batch) -> Any:
        if self._timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except asyncio.TimeoutError as exc:
            outstanding = batch.expected_count - len(batch.collected)
            raise CollectionTimeoutError(
                f"timed out after {self._timeout}s with {outstanding} operation(s) outstanding"
            ) from exc

    def _consume(self, batch: Batch, record: CompletionRecord) -> None:
        batch.collected.append(record)
        self._registry.release(record.name)
        logger.debug(
            "Collected completion %d/%d for %s",
            len(batch.collected),
            batch.expected_count,
            record.name,
        )


__all__ = [
    "BatchCoordinator",
    "CollectionTimeoutError",
    "IssueError",
    "Operation",
    "is_load_balancer",
]
