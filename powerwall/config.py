from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or validated."""


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for transport-level failures.

    Attributes:
        interval_s: Target spacing between attempts; time spent in the
            failed attempt counts toward it.
        timeout_s: Give up once this much time has passed since the first
            attempt. Zero or negative disables retries.
    """
    interval_s: float = 0.0
    timeout_s: float = 0.0

    @property
    def enabled(self) -> bool:
        return self.timeout_s > 0


class GatewayConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    address: str
    email: str = Field(default="")
    password: str = Field(default="", repr=False)
    timeout_s: float = Field(default=2, gt=0)
    retry_interval_s: float = Field(default=0, ge=0)
    retry_timeout_s: float = Field(default=0)
    tls_cert_file: Path | None = Field(default=None)
    server_name: str = Field(default="powerwall")

    @field_validator("address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("address must not be empty")
        if "://" in value or "/" in value:
            raise ValueError("address must be a bare host or host:port, without scheme or path")
        return value

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(interval_s=self.retry_interval_s, timeout_s=self.retry_timeout_s)


class ObsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    log_jsonl: bool = Field(default=True)
    log_level: str = Field(default="INFO")
    log_file: Path | None = Field(default=None)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return value


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    gateway: GatewayConfig
    obs: ObsConfig = Field(default_factory=ObsConfig)


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")

    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a mapping")

    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
