from __future__ import annotations

import logging
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import pytest

from kube_timer import cli
from kube_timer.cluster import ClusterError, FakeCluster, ObjectEvent, ServiceSummary
from kube_timer.config import get_settings
from kube_timer.options import TimerMode

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.chdir(tmp_path)
    for name in ("KUBECONFIG", "KUBE_TIMER_LOG_LEVEL", "KUBE_TIMER_NAMESPACE", "KUBE_TIMER_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _parse(*argv: str):
    return cli.build_parser().parse_args(["svc", *argv])


class FactoryRecorder:
    def __init__(self, cluster: FakeCluster) -> None:
        self.cluster = cluster
        self.paths: list[Path] = []

    def __call__(self, kubeconfig: Path) -> FakeCluster:
        self.paths.append(kubeconfig)
        return self.cluster


@pytest.mark.parametrize(
    ("argv", "mode"),
    [
        ((), TimerMode.CREATE),
        (("--async",), TimerMode.CREATE_ASYNC),
        (("-D", "--async"), TimerMode.DELETE_ALL),
        (("-d", "-D"), TimerMode.DELETE),
    ],
)
def test_mode_precedence(argv, mode) -> None:
    options = cli.options_from_args(_parse(*argv), cli.TimerSettings())
    assert options.mode is mode


def test_namespace_and_timeout_fall_back_to_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBE_TIMER_NAMESPACE", "perf")
    monkeypatch.setenv("KUBE_TIMER_TIMEOUT", "30")

    options = cli.options_from_args(_parse(), cli.TimerSettings())
    assert options.namespace == "perf"
    assert options.timeout_seconds == 30

    options = cli.options_from_args(_parse("--namespace", "qa", "--timeout", "5"), cli.TimerSettings())
    assert options.namespace == "qa"
    assert options.timeout_seconds == 5


def test_validation_failure_exits_non_zero(caplog) -> None:
    recorder = FactoryRecorder(FakeCluster())

    with caplog.at_level(logging.ERROR):
        exit_code = cli.cmd_svc(_parse("--count", "2"), cluster_factory=recorder)

    assert exit_code == 1
    assert "definition file is required" in caplog.text
    assert recorder.cluster.closed
    assert recorder.cluster.invocations == []


def test_unpaired_reason_exits_non_zero(tmp_path: Path, caplog) -> None:
    definition = tmp_path / "svc.yaml"
    definition.write_text(
        textwrap.dedent(
            """
            apiVersion: v1
            kind: Service
            metadata:
              name: web
            """
        ).strip(),
        encoding="utf-8",
    )

    with caplog.at_level(logging.ERROR):
        exit_code = cli.cmd_svc(
            _parse("-f", str(definition), "--started-event-reason", "EnsuringLoadBalancer"),
            cluster_factory=FactoryRecorder(FakeCluster()),
        )

    assert exit_code == 1
    assert "finished event reason is required" in caplog.text


def test_client_build_failure_exits_non_zero() -> None:
    def broken_factory(_path: Path):
        raise ClusterError("no kubeconfig")

    assert cli.cmd_svc(_parse("-d", "-n", "svc-a"), cluster_factory=broken_factory) == 1


def test_successful_delete_exits_zero(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("KUBECONFIG", str(tmp_path / "kubeconfig"))
    cluster = FakeCluster([ServiceSummary("svc-a", "LoadBalancer")])

    def on_delete(name: str) -> None:
        for reason, seconds in (("DeletingLoadBalancer", 0), ("DeletedLoadBalancer", 3)):
            cluster.emit_event(
                ObjectEvent("ADDED", name, reason, T0 + timedelta(seconds=seconds))
            )

    cluster.on_delete = on_delete
    recorder = FactoryRecorder(cluster)

    exit_code = cli.cmd_svc(
        _parse(
            "-d",
            "-n",
            "svc-a",
            "--started-event-reason",
            "DeletingLoadBalancer",
            "--finished-event-reason",
            "DeletedLoadBalancer",
        ),
        cluster_factory=recorder,
    )

    assert exit_code == 0
    assert recorder.paths == [tmp_path / "kubeconfig"]
    assert cluster.closed


def test_issue_failure_exits_non_zero(caplog) -> None:
    cluster = FakeCluster([ServiceSummary("svc-a", "LoadBalancer")])
    cluster.failing.add("svc-a")

    with caplog.at_level(logging.ERROR):
        exit_code = cli.cmd_svc(
            _parse(
                "-D",
                "--started-event-reason",
                "DeletingLoadBalancer",
                "--finished-event-reason",
                "DeletedLoadBalancer",
            ),
            cluster_factory=FactoryRecorder(cluster),
        )

    assert exit_code == 1
    assert "svc-a" in caplog.text


def test_main_without_command_prints_help(capsys) -> None:
    cli.main([])
    assert "kube-timer" in capsys.readouterr().out


def test_main_raises_system_exit_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "cmd_svc", lambda args: 1)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["svc"])
    assert excinfo.value.code == 1
