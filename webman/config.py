"""Service configuration, read from ``WEBMAN_*`` environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from webman.relay.client import DEFAULT_TIMEOUT

DEFAULT_WEBHOOK_ENDPOINT = "/webhook"
DEFAULT_WEBHOOK_ADDR = ":4000"

_ENV_FIELDS = {
    "webhook_endpoint": "WEBMAN_WEBHOOK_ENDPOINT",
    "webhook_addr": "WEBMAN_WEBHOOK_ADDR",
    "http_timeout": "WEBMAN_HTTP_TIMEOUT",
    "shutdown_grace": "WEBMAN_SHUTDOWN_GRACE",
    "log_level": "WEBMAN_LOG_LEVEL",
    "runtime": "WEBMAN_RUNTIME",
}


class ConfigurationError(Exception):
    """Raised when the service cannot start with the given settings."""


class ServiceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    webhook_endpoint: str = DEFAULT_WEBHOOK_ENDPOINT
    webhook_addr: str = DEFAULT_WEBHOOK_ADDR
    http_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    shutdown_grace: float | None = Field(default=None, ge=0)
    log_level: str = "INFO"
    runtime: str | None = None  # "module:callable" runtime factory

    @property
    def grace_period(self) -> float:
        """Shutdown grace period; the HTTP timeout unless set explicitly."""
        if self.shutdown_grace is None:
            return self.http_timeout
        return self.shutdown_grace

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> ServiceConfig:
        """Build a config from the environment; non-None ``overrides`` win."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            name: env[var] for name, var in _ENV_FIELDS.items() if env.get(var)
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid configuration: {exc}") from exc
