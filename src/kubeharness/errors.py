"""Custom exceptions for kubeharness.

Exception Hierarchy:
    KubeHarnessError (base)
    ├── ResolutionError
    │   ├── DiscoveryError
    │   ├── GroupVersionParseError (also ValueError)
    │   ├── KindNotServedError (also LookupError)
    │   └── TransportConstructionError
    ├── ManifestError
    │   ├── EmptyManifestError
    │   ├── ManifestDecodeError (also ValueError)
    │   └── ManifestApplyError
    ├── PodListError
    │   ├── PodCompletedError
    │   └── PodReadyConditionMissingError
    ├── PollingTimeoutError (also TimeoutError)
    ├── RunError
    │   ├── PodCreateError
    │   ├── PodWatchError
    │   ├── RunTimeoutError (also TimeoutError)
    │   └── RunCancelledError
    ├── RunCheckError
    ├── ClusterConnectionError (also ConnectionError)
    ├── NamespaceError
    ├── StepError
    ├── FinalizerError
    └── ScenarioFailedError

Example:
    >>> from kubeharness.errors import KindNotServedError
    >>> raise KindNotServedError("example.com/v1", "Widget")
    KindNotServedError: apiVersion example.com/v1 and kind Widget not found ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kubeharness.scenario import ScenarioResult


class KubeHarnessError(Exception):
    """Base exception for all kubeharness errors.

    Attributes:
        message: Human-readable error message.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# =============================================================================
# Resolution
# =============================================================================


class ResolutionError(KubeHarnessError):
    """Raised when an object's apiVersion/kind cannot be mapped to a REST handle."""


class DiscoveryError(ResolutionError):
    """Raised when the discovery catalog cannot be fetched.

    Attributes:
        api_version: The requested apiVersion.
        kind: The requested kind.
    """

    def __init__(self, api_version: str, kind: str, *, reason: str = "") -> None:
        self.api_version = api_version
        self.kind = kind
        self.reason = reason
        message = f"discovering resource information failed for {kind} in {api_version}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class GroupVersionParseError(ResolutionError, ValueError):
    """Raised when a group-version string is malformed.

    Attributes:
        group_version: The string that failed to parse.
    """

    def __init__(self, group_version: str) -> None:
        self.group_version = group_version
        ResolutionError.__init__(self, f"parsing GroupVersion failed {group_version}")


class KindNotServedError(ResolutionError, LookupError):
    """Raised when no catalog entry serves the requested apiVersion and kind.

    Attributes:
        api_version: The requested apiVersion.
        kind: The requested kind.
    """

    def __init__(self, api_version: str, kind: str) -> None:
        self.api_version = api_version
        self.kind = kind
        ResolutionError.__init__(
            self,
            f"apiVersion {api_version} and kind {kind} not found available "
            "in Kubernetes cluster",
        )


class TransportConstructionError(ResolutionError):
    """Raised when the generic transport client cannot be built.

    Attributes:
        group_version: The resolved group-version the client was built for.
    """

    def __init__(self, group_version: str, *, reason: str = "") -> None:
        self.group_version = group_version
        message = f"creating dynamic client failed for {group_version}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# =============================================================================
# Manifests
# =============================================================================


class ManifestError(KubeHarnessError):
    """Base exception for manifest loading and provisioning failures.

    Attributes:
        path: Path of the manifest file.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(message)


class EmptyManifestError(ManifestError):
    """Raised when a manifest file has no content."""

    def __init__(self, path: str) -> None:
        super().__init__(path, f"manifest has no content: {path}")


class ManifestDecodeError(ManifestError, ValueError):
    """Raised when a manifest is not a single document with identity fields.

    Attributes:
        reason: Why decoding failed.
    """

    def __init__(self, path: str, reason: str) -> None:
        self.reason = reason
        ManifestError.__init__(self, path, f"failed to decode manifest {path}: {reason}")


class ManifestApplyError(ManifestError):
    """Raised when the create call for a decoded manifest fails.

    Attributes:
        kind: Kind of the object.
        name: Name of the object.
    """

    def __init__(self, path: str, *, kind: str, name: str, reason: str = "") -> None:
        self.kind = kind
        self.name = name
        message = f"failed to create {kind} {name} from {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(path, message)


# =============================================================================
# Polling
# =============================================================================


class PodListError(KubeHarnessError):
    """Raised when listing pods fails or yields a non-transient state.

    Attributes:
        namespace: Namespace that was listed.
        label_selector: Label selector used for the list.
    """

    def __init__(self, message: str, *, namespace: str = "", label_selector: str = "") -> None:
        self.namespace = namespace
        self.label_selector = label_selector
        super().__init__(message)


class PodCompletedError(PodListError):
    """Raised when a polled pod has reached a terminal phase.

    Attributes:
        pod_name: Name of the completed pod.
        phase: The terminal phase observed (``Failed`` or ``Succeeded``).
    """

    def __init__(self, pod_name: str, phase: str) -> None:
        self.pod_name = pod_name
        self.phase = phase
        super().__init__(f"pod {pod_name} completed with phase {phase}")


class PodReadyConditionMissingError(PodListError):
    """Raised when a running pod reports no Ready condition.

    Attributes:
        pod_name: Name of the pod.
    """

    def __init__(self, pod_name: str) -> None:
        self.pod_name = pod_name
        super().__init__(f"pod {pod_name} ready condition not found")


class PollingTimeoutError(KubeHarnessError, TimeoutError):
    """Raised when a polling operation times out.

    Attributes:
        description: What was being waited for.
        timeout: How long we waited.
    """

    def __init__(self, description: str, timeout: float) -> None:
        self.description = description
        self.timeout = timeout
        KubeHarnessError.__init__(
            self, f"Timeout waiting for {description} after {timeout:.1f}s"
        )


# =============================================================================
# Run-to-completion
# =============================================================================


class RunError(KubeHarnessError):
    """Infrastructure failure while running a pod to completion.

    Attributes:
        pod_name: Name of the pod.
        namespace: Namespace of the pod.
    """

    def __init__(self, message: str, *, pod_name: str = "", namespace: str = "") -> None:
        self.pod_name = pod_name
        self.namespace = namespace
        super().__init__(message)


class PodCreateError(RunError):
    """Raised when the run pod cannot be created."""


class PodWatchError(RunError):
    """Raised when the run pod cannot be watched."""


class RunTimeoutError(RunError, TimeoutError):
    """Raised when the run pod does not reach a terminal phase in time."""


class RunCancelledError(RunError):
    """Raised when the watch is cancelled before a terminal phase."""


class RunCheckError(KubeHarnessError):
    """Raised when a run check observes the wrong outcome.

    Attributes:
        pod_name: Name of the pod.
        expected: The outcome the check expected.
    """

    def __init__(self, message: str, *, pod_name: str = "", expected: str = "") -> None:
        self.pod_name = pod_name
        self.expected = expected
        super().__init__(message)


# =============================================================================
# Cluster access
# =============================================================================


class ClusterConnectionError(KubeHarnessError, ConnectionError):
    """Raised when no usable cluster configuration can be loaded.

    Attributes:
        kubeconfig_path: Kubeconfig that was tried, if any.
        reason: Additional context about the failure.
    """

    def __init__(self, *, kubeconfig_path: str | None = None, reason: str = "") -> None:
        self.kubeconfig_path = kubeconfig_path
        self.reason = reason
        message = "failed to load Kubernetes configuration"
        if kubeconfig_path:
            message = f"{message} from {kubeconfig_path}"
        if reason:
            message = f"{message}: {reason}"
        KubeHarnessError.__init__(self, message)


class NamespaceError(KubeHarnessError):
    """Raised when a namespace cannot be created or deleted.

    Attributes:
        namespace: The namespace name.
    """

    def __init__(self, message: str, *, namespace: str) -> None:
        self.namespace = namespace
        super().__init__(message)


# =============================================================================
# Scenario
# =============================================================================


class StepError(KubeHarnessError):
    """Wraps the exception raised by a step, naming the phase it failed in.

    Attributes:
        phase: ``given``, ``when`` or ``then``.
        cause: The original exception.
    """

    _PHASE_MESSAGES = {
        "given": "failed to create given setup",
        "when": "failed to evaluate state",
        "then": "checks failed",
    }

    def __init__(self, phase: str, cause: BaseException) -> None:
        self.phase = phase
        self.cause = cause
        prefix = self._PHASE_MESSAGES.get(phase, f"{phase} failed")
        super().__init__(f"{prefix}: {cause}")


class FinalizerError(KubeHarnessError):
    """Wraps the exception raised by a finalizer.

    Attributes:
        index: Registration index of the finalizer.
        cause: The original exception.
    """

    def __init__(self, index: int, cause: BaseException) -> None:
        self.index = index
        self.cause = cause
        super().__init__(f"finalizer {index} failed: {cause}")


class ScenarioFailedError(KubeHarnessError, AssertionError):
    """Raised by ``Scenario.run_or_fail`` when a scenario did not pass.

    Attributes:
        result: The full scenario result.
    """

    def __init__(self, result: ScenarioResult) -> None:
        self.result = result
        lines = [f"scenario {result.name!r} failed"]
        lines.extend(f"  - {err}" for err in result.errors)
        KubeHarnessError.__init__(self, "\n".join(lines))


def sanitize_k8s_api_error(exc: BaseException) -> str:
    """Sanitize Kubernetes API exception for safe logging.

    Extracts only the safe fields (status code and reason) from K8s
    ApiException, avoiding sensitive data in body or headers.

    Args:
        exc: Exception from kubernetes client (ApiException expected).

    Returns:
        Sanitized error message safe for logging.
    """
    status = getattr(exc, "status", None)
    reason = getattr(exc, "reason", None)

    if status is not None and reason is not None:
        return f"{reason} (HTTP {status})"
    if reason is not None:
        return str(reason)
    return str(exc) or type(exc).__name__


__all__ = [
    "ClusterConnectionError",
    "DiscoveryError",
    "EmptyManifestError",
    "FinalizerError",
    "GroupVersionParseError",
    "KindNotServedError",
    "KubeHarnessError",
    "ManifestApplyError",
    "ManifestDecodeError",
    "ManifestError",
    "NamespaceError",
    "PodCompletedError",
    "PodCreateError",
    "PodListError",
    "PodReadyConditionMissingError",
    "PodWatchError",
    "PollingTimeoutError",
    "ResolutionError",
    "RunCancelledError",
    "RunCheckError",
    "RunError",
    "RunTimeoutError",
    "ScenarioFailedError",
    "StepError",
    "TransportConstructionError",
    "sanitize_k8s_api_error",
]
