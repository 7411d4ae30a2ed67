from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from pydantic import ValidationError

from kube_timer.config import TimerSettings, get_settings


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.chdir(tmp_path)
    for name in ("KUBECONFIG", "KUBE_TIMER_LOG_LEVEL", "KUBE_TIMER_NAMESPACE", "KUBE_TIMER_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_kubeconfig_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("KUBECONFIG", str(tmp_path / "config"))

    assert TimerSettings().resolve_kubeconfig() == tmp_path / "config"


def test_kubeconfig_defaults_to_user_path(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    assert TimerSettings().resolve_kubeconfig() == tmp_path / ".kube" / "config"


def test_defaults() -> None:
    settings = TimerSettings()

    assert settings.namespace == "default"
    assert settings.log_level == "INFO"
    assert settings.timeout_seconds is None


def test_log_level_is_normalized(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBE_TIMER_LOG_LEVEL", " debug ")
    assert TimerSettings().log_level == "DEBUG"


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBE_TIMER_LOG_LEVEL", "chatty")
    with pytest.raises(ValidationError):
        TimerSettings()


def test_timeout_must_be_positive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBE_TIMER_TIMEOUT", "0")
    with pytest.raises(ValidationError):
        TimerSettings()

    monkeypatch.setenv("KUBE_TIMER_TIMEOUT", "2.5")
    assert TimerSettings().timeout_seconds == 2.5


def test_settings_read_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("KUBE_TIMER_NAMESPACE=perf\n", encoding="utf-8")

    assert TimerSettings().namespace == "perf"


def test_get_settings_is_cached_and_expands_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("KUBECONFIG", "~/clusters/perf.yaml")

    settings = get_settings()

    assert settings.kubeconfig == tmp_path / "clusters" / "perf.yaml"
    assert get_settings() is settings
