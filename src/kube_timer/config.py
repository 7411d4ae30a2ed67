"""Configuration management for kube-timer."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KUBECONFIG = Path("~/.kube/config")


class TimerSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    kubeconfig: Path | None = Field(default=None, validation_alias="KUBECONFIG")
    namespace: str = Field(default="default", validation_alias="KUBE_TIMER_NAMESPACE")
    log_level: str = Field(default="INFO", validation_alias="KUBE_TIMER_LOG_LEVEL")
    timeout_seconds: float | None = Field(default=None, validation_alias="KUBE_TIMER_TIMEOUT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "KUBE_TIMER_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("kubeconfig", mode="before")
    @classmethod
    def _empty_kubeconfig(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def _parse_timeout(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @field_validator("timeout_seconds")
    @classmethod
    def _validate_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("KUBE_TIMER_TIMEOUT must be > 0")
        return value

    def resolve_kubeconfig(self) -> Path:
        """Return the kubeconfig path, falling back to the per-user default."""

        path = self.kubeconfig or DEFAULT_KUBECONFIG
        return Path(path).expanduser()


@lru_cache(maxsize=1)
def get_settings() -> TimerSettings:
    """Return cached settings instance."""

    settings = TimerSettings()
    if settings.kubeconfig is not None:
        settings.kubeconfig = settings.kubeconfig.expanduser()
    return settings


__all__ = ["DEFAULT_KUBECONFIG", "TimerSettings", "get_settings"]
