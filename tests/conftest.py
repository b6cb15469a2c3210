"""Shared pytest configuration and fixtures for kubeharness tests.

Fixtures:
    - scenario_context: Fresh ScenarioContext in the "harness-test" namespace
    - core_api: MagicMock standing in for CoreV1Api
    - make_pod: Factory building V1Pod objects with a phase and Ready status
    - api_exception: Factory building kubernetes ApiException instances
    - manifest_dir: tmp directory with the kube-rbac-proxy example manifests
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from kubeharness.scenario import ScenarioContext

RESOURCES_DIR = Path(__file__).parent / "e2e" / "resources"


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: Integration tests requiring a Kubernetes cluster",
    )
    config.addinivalue_line(
        "markers",
        "e2e: End-to-end scenarios requiring a Kubernetes cluster",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip cluster tests unless KUBEHARNESS_E2E=1."""
    if os.environ.get("KUBEHARNESS_E2E") == "1":
        return
    skip = pytest.mark.skip(reason="set KUBEHARNESS_E2E=1 to run against a cluster")
    for item in items:
        if "e2e" in item.keywords or "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def scenario_context() -> ScenarioContext:
    """Fresh scenario context."""
    return ScenarioContext(namespace="harness-test")


@pytest.fixture
def core_api() -> MagicMock:
    """Mocked CoreV1Api."""
    return MagicMock(spec=client.CoreV1Api)


@pytest.fixture
def make_pod() -> Callable[..., client.V1Pod]:
    """Factory for V1Pod objects.

    ``ready`` None means no Ready condition at all.
    """

    def _make(name: str = "pod-0", phase: str = "Running", ready: bool | None = True) -> client.V1Pod:
        conditions = None
        if ready is not None:
            conditions = [
                client.V1PodCondition(type="Initialized", status="True"),
                client.V1PodCondition(type="Ready", status="True" if ready else "False"),
            ]
        return client.V1Pod(
            metadata=client.V1ObjectMeta(name=name),
            status=client.V1PodStatus(phase=phase, conditions=conditions),
        )

    return _make


@pytest.fixture
def api_exception() -> Callable[..., ApiException]:
    """Factory for kubernetes ApiException instances."""

    def _make(status: int = 500, reason: str = "Internal Server Error") -> ApiException:
        return ApiException(status=status, reason=reason)

    return _make


@pytest.fixture
def manifest_dir(tmp_path: Path) -> Path:
    """Copy of the example manifests in a writable directory."""
    target = tmp_path / "resources"
    shutil.copytree(RESOURCES_DIR, target)
    return target
