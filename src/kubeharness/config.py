"""Configuration for kubeharness.

Settings are read from environment variables prefixed with ``KUBEHARNESS_``
(and an optional ``.env`` file). Explicit keyword arguments take precedence.

Environment Variables:
    KUBEHARNESS_KUBECONFIG_PATH: Path to kubeconfig. Unset uses in-cluster
        configuration, then the default kubeconfig.
    KUBEHARNESS_CONTEXT: Kubeconfig context to use.
    KUBEHARNESS_NAMESPACE: Namespace scenarios run in (default: "default").
    KUBEHARNESS_POLL_INTERVAL: Readiness poll interval in seconds.
    KUBEHARNESS_POLL_TIMEOUT: Readiness poll budget in seconds.
    KUBEHARNESS_RUN_TIMEOUT: Run-to-completion deadline in seconds.
    KUBEHARNESS_LOG_LEVEL: Minimum log level.
    KUBEHARNESS_LOG_JSON: Emit JSON logs instead of console output.

Example:
    >>> settings = HarnessSettings(namespace="e2e")
    >>> settings.poll_timeout
    60.0
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kubeharness.pods import RunOptions
from kubeharness.polling import PollingConfig


class HarnessSettings(BaseSettings):
    """Connection and timing settings shared by suites and the CLI."""

    model_config = SettingsConfigDict(
        env_prefix="KUBEHARNESS_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    kubeconfig_path: str | None = Field(
        default=None,
        description="Path to kubeconfig file. None uses in-cluster config.",
        examples=["~/.kube/config"],
    )
    context: str | None = Field(
        default=None,
        description="Kubeconfig context to use. None uses current context.",
        examples=["kind-kubeharness"],
    )
    namespace: str = Field(
        default="default",
        min_length=1,
        max_length=63,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$|^[a-z0-9]$",
        description="Namespace scenarios run in",
    )
    poll_interval: float = Field(
        default=1.0,
        ge=0.1,
        description="Readiness poll interval in seconds",
    )
    poll_timeout: float = Field(
        default=60.0,
        ge=0.0,
        description="Readiness poll budget in seconds",
    )
    run_timeout: float = Field(
        default=300.0,
        gt=0.0,
        description="Deadline for run-to-completion pods in seconds",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    log_json: bool = Field(
        default=False,
        description="Emit JSON logs instead of console output",
    )

    @field_validator("kubeconfig_path")
    @classmethod
    def expand_kubeconfig_path(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if v is None:
            return None
        return str(Path(v).expanduser())

    def polling_config(self) -> PollingConfig:
        """Build the readiness poll configuration from these settings."""
        return PollingConfig(
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            description="pods ready",
        )

    def run_options(self, service_account: str | None = None) -> RunOptions:
        """Build run-to-completion options using the configured deadline."""
        return RunOptions(service_account=service_account, timeout=self.run_timeout)


__all__ = ["HarnessSettings"]
