"""Bounded polling for scenario conditions.

Conditions are polled at a fixed interval until they report success or the
time budget is spent. A condition that raises aborts the poll immediately;
only a ``False`` result is treated as "not yet".

Example:
    from kubeharness.polling import PollingConfig, wait_for_condition

    wait_for_condition(
        lambda: deployment_ready("proxy"),
        config=PollingConfig(timeout=60.0, interval=1.0, description="proxy ready"),
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from kubeharness.errors import PollingTimeoutError

logger = structlog.get_logger(__name__)


class PollingConfig(BaseModel):
    """Configuration for polling.

    Attributes:
        timeout: Maximum wait time in seconds. Defaults to 60.0.
        interval: Poll interval in seconds. Defaults to 1.0.
        description: Description for error messages. Defaults to "condition".
    """

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(
        default=60.0,
        ge=0.0,
        description="Maximum wait time in seconds",
    )
    interval: float = Field(
        default=1.0,
        ge=0.1,
        description="Poll interval in seconds",
    )
    description: str = Field(
        default="condition",
        min_length=1,
        description="Description for error messages",
    )


def wait_for_condition(
    condition: Callable[[], bool],
    config: PollingConfig | None = None,
) -> None:
    """Poll until condition is True or the timeout elapses.

    The condition is evaluated once immediately, then after every interval.
    Exceptions raised by the condition propagate to the caller unchanged.

    Args:
        condition: Callable returning True when the condition is met.
        config: Polling configuration. Defaults to ``PollingConfig()``.

    Raises:
        PollingTimeoutError: If the condition is not met within the timeout.
    """
    config = config or PollingConfig()
    start_time = time.monotonic()
    attempts = 0

    while True:
        attempts += 1
        if condition():
            logger.debug(
                "polling.condition_met",
                description=config.description,
                attempts=attempts,
            )
            return

        elapsed = time.monotonic() - start_time
        if elapsed >= config.timeout:
            logger.warning(
                "polling.timeout",
                description=config.description,
                timeout=config.timeout,
                attempts=attempts,
            )
            raise PollingTimeoutError(config.description, config.timeout)

        # Sleep for interval, but don't exceed remaining time
        remaining = config.timeout - elapsed
        sleep_time = min(config.interval, remaining)
        if sleep_time > 0:
            time.sleep(sleep_time)


__all__ = [
    "PollingConfig",
    "wait_for_condition",
]
