"""Pod conditions and run-to-completion checks.

Conditions:
    pods_are_ready: Wait until N pods matching a label selector are running
        and ready.
    sleep: Wait a fixed duration.

Checks:
    run_succeeds: Run a command in a one-off pod and expect it to succeed.
    run_fails: Run a command in a one-off pod and expect it to fail.

Both checks write the pod's logs verbatim to stderr when their expectation
is not met.
"""

from __future__ import annotations

import enum
import sys
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Any

import structlog
from kubernetes import client, watch
from pydantic import BaseModel, ConfigDict, Field
from urllib3.exceptions import ReadTimeoutError

from kubeharness.errors import (
    PodCompletedError,
    PodCreateError,
    PodListError,
    PodReadyConditionMissingError,
    PodWatchError,
    RunCancelledError,
    RunCheckError,
    RunError,
    RunTimeoutError,
    sanitize_k8s_api_error,
)
from kubeharness.polling import PollingConfig, wait_for_condition
from kubeharness.tracing import get_tracer, harness_span

if TYPE_CHECKING:
    from kubeharness.scenario import Check, Condition, ScenarioContext

logger = structlog.get_logger(__name__)

POD_RUNNING = "Running"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"
POD_READY = "Ready"

# Longest single watch request. Cancellation is checked between requests.
WATCH_WINDOW_SECONDS = 5
WATCH_READ_GRACE_SECONDS = 5


# =============================================================================
# Readiness
# =============================================================================


def pod_running_and_ready(pod: Any) -> bool:
    """Return whether a pod is running and has passed its Ready condition.

    Raises:
        PodCompletedError: If the pod is in a terminal phase.
        PodReadyConditionMissingError: If a running pod has no Ready condition.
    """
    name = pod.metadata.name if pod.metadata else ""
    phase = pod.status.phase if pod.status else None

    if phase in (POD_FAILED, POD_SUCCEEDED):
        raise PodCompletedError(name, phase)
    if phase == POD_RUNNING:
        for cond in pod.status.conditions or []:
            if cond.type != POD_READY:
                continue
            return cond.status == "True"
        raise PodReadyConditionMissingError(name)
    return False


def pods_are_ready(
    core_api: client.CoreV1Api,
    replicas: int,
    labels: str,
    polling: PollingConfig | None = None,
) -> Condition:
    """Condition waiting for ``replicas`` pods matching ``labels`` to be ready.

    Usable in Given and When phases alike. Succeeds as soon as the number of
    running and ready pods equals ``replicas``. A list failure or a pod in a
    terminal phase aborts the wait immediately.

    Args:
        core_api: Core V1 API client.
        replicas: Expected number of running and ready pods.
        labels: Label selector, e.g. ``"app=kube-rbac-proxy"``.
        polling: Interval and budget. Defaults to every second for a minute.

    Returns:
        A condition step.
    """
    config = polling or PollingConfig(
        interval=1.0,
        timeout=60.0,
        description=f"{replicas} ready pods matching {labels}",
    )

    def ready(ctx: ScenarioContext) -> None:
        namespace = ctx.namespace

        def count_matches() -> bool:
            try:
                pods = core_api.list_namespaced_pod(namespace, label_selector=labels)
            except Exception as e:
                raise PodListError(
                    f"failed to list pods: {sanitize_k8s_api_error(e)}",
                    namespace=namespace,
                    label_selector=labels,
                ) from e

            running_and_ready = sum(1 for p in pods.items if pod_running_and_ready(p))
            logger.debug(
                "pods.readiness",
                namespace=namespace,
                labels=labels,
                ready=running_and_ready,
                expected=replicas,
            )
            return running_and_ready == replicas

        with harness_span(
            get_tracer(),
            "pods.ready",
            namespace=namespace,
            extra_attributes={"kubeharness.labels": labels, "kubeharness.replicas": replicas},
        ):
            wait_for_condition(count_matches, config)

    return ready


def sleep(seconds: float) -> Condition:
    """Condition that waits a fixed number of seconds."""

    def pause(ctx: ScenarioContext) -> None:  # noqa: ARG001
        time.sleep(seconds)

    return pause


# =============================================================================
# Run to completion
# =============================================================================


class RunOptions(BaseModel):
    """Options for run-to-completion pods.

    Attributes:
        service_account: Service account the pod runs as.
        timeout: Seconds to wait for a terminal phase.
    """

    model_config = ConfigDict(frozen=True)

    service_account: str | None = Field(
        default=None,
        description="Service account the pod runs as",
    )
    timeout: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds to wait for the pod to reach a terminal phase",
    )


class RunOutcome(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RunResult:
    """Terminal outcome of a run-to-completion pod and its container logs."""

    outcome: RunOutcome
    logs: bytes = b""

    @property
    def succeeded(self) -> bool:
        return self.outcome is RunOutcome.SUCCEEDED


def build_run_pod(
    namespace: str,
    image: str,
    name: str,
    command: Sequence[str],
    options: RunOptions,
) -> client.V1Pod:
    """Build a single-container pod that is never restarted."""
    return client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={"app": name},
        ),
        spec=client.V1PodSpec(
            containers=[
                client.V1Container(name=name, image=image, command=list(command)),
            ],
            restart_policy="Never",
            service_account_name=options.service_account,
        ),
    )


def pod_logs(
    core_api: client.CoreV1Api,
    namespace: str,
    pod: str,
    container: str,
) -> bytes:
    """Fetch the complete logs of a pod's container as raw bytes."""
    response = core_api.read_namespaced_pod_log(
        name=pod,
        namespace=namespace,
        container=container,
        follow=False,
        _preload_content=False,
    )
    try:
        return response.data
    finally:
        response.release_conn()


def _collect_logs(core_api: client.CoreV1Api, namespace: str, name: str) -> bytes:
    try:
        return pod_logs(core_api, namespace, name, name)
    except Exception as e:
        logger.warning(
            "pods.logs_unavailable",
            pod=name,
            namespace=namespace,
            error=sanitize_k8s_api_error(e),
        )
        return b""


def _wait_for_terminal_phase(
    core_api: client.CoreV1Api,
    namespace: str,
    name: str,
    timeout: float,
    cancel: threading.Event | None,
) -> RunOutcome:
    deadline = time.monotonic() + timeout

    while True:
        if cancel is not None and cancel.is_set():
            raise RunCancelledError(
                f"watch of pod {name} cancelled",
                pod_name=name,
                namespace=namespace,
            )
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise RunTimeoutError(
                f"pod {name} did not complete within {timeout:.1f}s",
                pod_name=name,
                namespace=namespace,
            )

        window = max(1, int(min(remaining, WATCH_WINDOW_SECONDS)))
        w = watch.Watch()
        try:
            for event in w.stream(
                core_api.list_namespaced_pod,
                namespace,
                field_selector=f"metadata.name={name}",
                timeout_seconds=window,
                _request_timeout=window + WATCH_READ_GRACE_SECONDS,
            ):
                if cancel is not None and cancel.is_set():
                    raise RunCancelledError(
                        f"watch of pod {name} cancelled",
                        pod_name=name,
                        namespace=namespace,
                    )
                if not event:
                    continue
                status = getattr(event.get("object"), "status", None)
                phase = getattr(status, "phase", None)
                if phase == POD_FAILED:
                    return RunOutcome.FAILED
                if phase == POD_SUCCEEDED:
                    return RunOutcome.SUCCEEDED
                if time.monotonic() >= deadline:
                    break
        except RunError:
            raise
        except ReadTimeoutError:
            logger.debug("pods.watch_window_expired", pod_name=name, namespace=namespace)
        except Exception as e:
            raise PodWatchError(
                f"failed to watch pod: {sanitize_k8s_api_error(e)}",
                pod_name=name,
                namespace=namespace,
            ) from e
        finally:
            w.stop()


def run_pod(
    core_api: client.CoreV1Api,
    ctx: ScenarioContext,
    image: str,
    name: str,
    command: Sequence[str],
    options: RunOptions | None = None,
    *,
    cancel: threading.Event | None = None,
) -> RunResult:
    """Run ``command`` in a one-off pod and wait for it to terminate.

    The pod's deletion is registered on the context before it is created.
    Setting ``cancel`` from another thread stops the wait at the next watch
    event, or within one watch window when the pod is silent.

    Returns:
        The terminal outcome and the container's logs.

    Raises:
        PodCreateError: If the pod cannot be created.
        PodWatchError: If the pod cannot be watched.
        RunTimeoutError: If no terminal phase is reached before the deadline.
        RunCancelledError: If ``cancel`` is set before a terminal phase.
    """
    options = options or RunOptions()
    namespace = ctx.namespace
    pod = build_run_pod(namespace, image, name, command, options)

    ctx.add_finalizer(lambda: core_api.delete_namespaced_pod(name, namespace))

    with harness_span(get_tracer(), "pods.run", namespace=namespace, name=name) as span:
        try:
            core_api.create_namespaced_pod(namespace, pod)
        except Exception as e:
            raise PodCreateError(
                f"failed to create pod: {sanitize_k8s_api_error(e)}",
                pod_name=name,
                namespace=namespace,
            ) from e

        outcome = _wait_for_terminal_phase(core_api, namespace, name, options.timeout, cancel)
        span.set_attribute("kubeharness.run_outcome", outcome.value)

    logs = _collect_logs(core_api, namespace, name)
    logger.info("pods.run_finished", pod=name, namespace=namespace, outcome=outcome.value)
    return RunResult(outcome=outcome, logs=logs)


def write_diagnostics(logs: bytes, stream: IO[bytes] | None = None) -> None:
    """Write captured container logs verbatim to ``stream`` (stderr by default)."""
    if not logs:
        return
    if stream is None:
        buffer = getattr(sys.stderr, "buffer", None)
        if buffer is None:
            sys.stderr.write(logs.decode("utf-8", errors="replace"))
            sys.stderr.flush()
            return
        stream = buffer
    stream.write(logs)
    stream.flush()


def run_succeeds(
    core_api: client.CoreV1Api,
    image: str,
    name: str,
    command: Sequence[str],
    options: RunOptions | None = None,
    *,
    cancel: threading.Event | None = None,
    diagnostics: IO[bytes] | None = None,
) -> Check:
    """Check that ``command`` exits successfully in a one-off pod.

    Any error fails the check; if the command itself failed, its logs are
    written to the diagnostic stream first.
    """

    def check(ctx: ScenarioContext) -> None:
        result = run_pod(core_api, ctx, image, name, command, options, cancel=cancel)
        if not result.succeeded:
            write_diagnostics(result.logs, diagnostics)
            raise RunCheckError(
                f"run of {name} failed",
                pod_name=name,
                expected=RunOutcome.SUCCEEDED.value,
            )

    return check


def run_fails(
    core_api: client.CoreV1Api,
    image: str,
    name: str,
    command: Sequence[str],
    options: RunOptions | None = None,
    *,
    cancel: threading.Event | None = None,
    diagnostics: IO[bytes] | None = None,
) -> Check:
    """Check that ``command`` exits with a failure in a one-off pod.

    A successful run fails the check and writes its logs to the diagnostic
    stream. Infrastructure errors propagate unchanged.
    """

    def check(ctx: ScenarioContext) -> None:
        result = run_pod(core_api, ctx, image, name, command, options, cancel=cancel)
        if result.succeeded:
            write_diagnostics(result.logs, diagnostics)
            raise RunCheckError(
                "expected run to fail",
                pod_name=name,
                expected=RunOutcome.FAILED.value,
            )

    return check


__all__ = [
    "RunOptions",
    "RunOutcome",
    "RunResult",
    "build_run_pod",
    "pod_logs",
    "pod_running_and_ready",
    "pods_are_ready",
    "run_fails",
    "run_pod",
    "run_succeeds",
    "sleep",
    "write_diagnostics",
]
