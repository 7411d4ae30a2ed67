from __future__ import annotations

import asyncio
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator

import pytest

from kube_timer.cluster import (
    ClusterError,
    CreatedResource,
    FakeCluster,
    ObjectEvent,
    ResourceChange,
    ServiceSummary,
)
from kube_timer.options import ConfigValidationError, TimerMode, TimerOptions
from kube_timer.timer import ServiceTimer, SubscriptionError
from kube_timer.tracking import BatchCoordinator, IssueError

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def write_definition(path: Path, namespace: str | None = None) -> Path:
    namespace_line = f"\n  namespace: {namespace}" if namespace else ""
    path.write_text(
        textwrap.dedent(
            """
            apiVersion: v1
            kind: Service
            metadata:
              generateName: lb-{ns}
            spec:
              type: LoadBalancer
            """
        ).strip().replace("{ns}", namespace_line),
        encoding="utf-8",
    )
    return path


def _event(name: str, reason: str, seconds: float) -> ObjectEvent:
    return ObjectEvent(
        change_type="ADDED",
        involved_name=name,
        reason=reason,
        created_at=T0 + timedelta(seconds=seconds),
    )


def test_status_based_create(tmp_path: Path, caplog) -> None:
    cluster = FakeCluster(clock=lambda: T0)

    def on_create(created: CreatedResource) -> None:
        cluster.emit_service(ResourceChange("ADDED", created.name, created.created_at))
        cluster.emit_service(ResourceChange("MODIFIED", created.name, created.created_at, "20.0.0.1"))

    cluster.on_create = on_create
    options = TimerOptions(
        mode=TimerMode.CREATE,
        definition_file=write_definition(tmp_path / "svc.yaml"),
        count=2,
    )
    timer = ServiceTimer(cluster, options, clock=lambda: T0 + timedelta(seconds=10))

    with caplog.at_level("INFO"):
        report = asyncio.run(timer.start())

    assert report.count == 2
    assert report.total == timedelta(seconds=20)
    assert "Finished creating 2 services" in caplog.text
    assert len([call for call in cluster.invocations if call[0] == "create"]) == 2


def test_event_based_async_create_uses_document_namespace(tmp_path: Path) -> None:
    cluster = FakeCluster(clock=lambda: T0)
    created: list[str] = []

    def on_create(resource: CreatedResource) -> None:
        created.append(resource.name)
        if len(created) == 2:
            cluster.emit_event(_event("unrelated", "EnsuringLoadBalancer", 0))
            for name in reversed(created):
                cluster.emit_event(_event(name, "EnsuringLoadBalancer", 1))
            for seconds, name in enumerate(created, start=2):
                cluster.emit_event(_event(name, "EnsuredLoadBalancer", seconds))

    cluster.on_create = on_create
    options = TimerOptions(
        mode=TimerMode.CREATE_ASYNC,
        definition_file=write_definition(tmp_path / "svc.yaml", namespace="perf"),
        count=2,
        started_event_reason="EnsuringLoadBalancer",
        finished_event_reason="EnsuredLoadBalancer",
    )
    timer = ServiceTimer(cluster, options)
    timer.validate()

    report = asyncio.run(timer.start())

    assert timer.namespace == "perf"
    assert {call[2] for call in cluster.invocations} == {"perf"}
    assert report.count == 2
    assert report.min_duration == timedelta(seconds=1)
    assert report.max_duration == timedelta(seconds=2)


def test_delete_reports_deletion(caplog) -> None:
    cluster = FakeCluster([ServiceSummary("svc-a", "LoadBalancer")])

    def on_delete(name: str) -> None:
        cluster.emit_event(_event(name, "DeletedLoadBalancer", 5))
        cluster.emit_event(_event(name, "DeletingLoadBalancer", 1))
        cluster.emit_event(_event(name, "DeletedLoadBalancer", 8))

    cluster.on_delete = on_delete
    options = TimerOptions(
        mode=TimerMode.DELETE,
        name="svc-a",
        started_event_reason="DeletingLoadBalancer",
        finished_event_reason="DeletedLoadBalancer",
    )

    with caplog.at_level("INFO"):
        report = asyncio.run(ServiceTimer(cluster, options).start())

    assert report.count == 1
    assert report.max_duration == timedelta(seconds=7)
    assert "Finished deleting 1 services" in caplog.text


def test_validation_runs_before_start() -> None:
    timer = ServiceTimer(FakeCluster(), TimerOptions(mode=TimerMode.DELETE))

    with pytest.raises(ConfigValidationError):
        asyncio.run(timer.start())


def test_create_batch_without_loaded_definition_is_rejected() -> None:
    cluster = FakeCluster()
    timer = ServiceTimer(cluster, TimerOptions(mode=TimerMode.CREATE))
    coordinator = BatchCoordinator(cluster, timer.registry, timer.channel, namespace="default")

    with pytest.raises(ConfigValidationError, match="definition file is required"):
        asyncio.run(timer._run_batch(coordinator))

    assert cluster.invocations == []


def test_issue_failure_propagates(tmp_path: Path) -> None:
    cluster = FakeCluster([ServiceSummary("svc-a", "LoadBalancer")])
    cluster.failing.add("svc-a")
    options = TimerOptions(
        mode=TimerMode.DELETE_ALL,
        started_event_reason="DeletingLoadBalancer",
        finished_event_reason="DeletedLoadBalancer",
    )

    with pytest.raises(IssueError):
        asyncio.run(ServiceTimer(cluster, options).start())


class BrokenWatchCluster(FakeCluster):
    async def watch_events(self, namespace: str) -> AsyncIterator[ObjectEvent]:
        raise ClusterError("events are forbidden")


class FailingStreamCluster(FakeCluster):
    async def watch_events(self, namespace: str) -> AsyncIterator[ObjectEvent]:
        async def stream() -> AsyncIterator[ObjectEvent]:
            await asyncio.sleep(0)
            raise ClusterError("watch connection reset")
            yield  # pragma: no cover

        return stream()


def _delete_options() -> TimerOptions:
    return TimerOptions(
        mode=TimerMode.DELETE,
        name="svc-a",
        started_event_reason="DeletingLoadBalancer",
        finished_event_reason="DeletedLoadBalancer",
    )


def test_subscription_setup_failure() -> None:
    cluster = BrokenWatchCluster([ServiceSummary("svc-a", "LoadBalancer")])

    with pytest.raises(SubscriptionError, match="forbidden"):
        asyncio.run(ServiceTimer(cluster, _delete_options()).start())

    assert cluster.invocations == []


def test_subscription_failure_mid_batch_aborts() -> None:
    cluster = FailingStreamCluster([ServiceSummary("svc-a", "LoadBalancer")])

    with pytest.raises(SubscriptionError, match="connection reset"):
        asyncio.run(ServiceTimer(cluster, _delete_options()).start())
