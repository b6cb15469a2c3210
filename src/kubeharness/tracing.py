"""OpenTelemetry tracing helpers for kubeharness.

Resolution, manifest provisioning, polling, run checks and scenario phases
emit spans so a failing end-to-end run can be inspected alongside the
workload's own traces. Without a configured tracer provider all spans are
no-ops.

Example:
    >>> from kubeharness.tracing import get_tracer, harness_span
    >>> with harness_span(get_tracer(), "resolve", kind="Service") as span:
    ...     pass
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from kubeharness.errors import sanitize_k8s_api_error

if TYPE_CHECKING:
    from collections.abc import Iterator

TRACER_NAME = "kubeharness"

ATTR_OPERATION = "kubeharness.operation"
ATTR_NAMESPACE = "kubeharness.namespace"
ATTR_KIND = "kubeharness.kind"
ATTR_API_VERSION = "kubeharness.api_version"
ATTR_NAME = "kubeharness.name"


def get_tracer() -> trace.Tracer:
    """Get the OpenTelemetry tracer for harness operations."""
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def harness_span(
    tracer: trace.Tracer,
    operation: str,
    *,
    namespace: str | None = None,
    kind: str | None = None,
    api_version: str | None = None,
    name: str | None = None,
    extra_attributes: dict[str, Any] | None = None,
) -> Iterator[trace.Span]:
    """Context manager for creating harness operation spans.

    Args:
        tracer: OpenTelemetry tracer instance.
        operation: Operation name (e.g., "resolve", "scenario.given").
        namespace: Kubernetes namespace for the operation.
        kind: Object kind, when the operation targets one.
        api_version: Object apiVersion, when the operation targets one.
        name: Object or scenario name.
        extra_attributes: Additional span attributes.

    Yields:
        The active span for adding custom attributes.
    """
    attributes: dict[str, Any] = {ATTR_OPERATION: operation}

    if namespace is not None:
        attributes[ATTR_NAMESPACE] = namespace
    if kind is not None:
        attributes[ATTR_KIND] = kind
    if api_version is not None:
        attributes[ATTR_API_VERSION] = api_version
    if name is not None:
        attributes[ATTR_NAME] = name
    if extra_attributes:
        attributes.update(extra_attributes)

    with tracer.start_as_current_span(f"kubeharness.{operation}", attributes=attributes) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            span.set_attribute("exception.type", type(e).__name__)
            span.set_attribute("exception.message", sanitize_k8s_api_error(e))
            raise


__all__ = [
    "ATTR_API_VERSION",
    "ATTR_KIND",
    "ATTR_NAME",
    "ATTR_NAMESPACE",
    "ATTR_OPERATION",
    "TRACER_NAME",
    "get_tracer",
    "harness_span",
]
