"""Namespace helpers for scenario isolation.

Each scenario can run in its own namespace so concurrent scenarios never see
each other's objects.

Example:
    >>> from kubeharness.namespaces import generate_unique_namespace
    >>> generate_unique_namespace("rbac_proxy")  # doctest: +SKIP
    'rbac-proxy-a1b2c3d4'
"""

from __future__ import annotations

import re
import uuid
from typing import TYPE_CHECKING

import structlog
from kubernetes import client

from kubeharness.errors import NamespaceError, sanitize_k8s_api_error

if TYPE_CHECKING:
    from kubeharness.scenario import ScenarioContext, Setup

logger = structlog.get_logger(__name__)

# K8s namespace constraints
MAX_NAMESPACE_LENGTH = 63
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_SUFFIX_LENGTH = 8


def generate_unique_namespace(prefix: str = "kubeharness") -> str:
    """Generate a unique K8s namespace name.

    The prefix is lowercased, underscores become hyphens, other invalid
    characters are dropped, and it is truncated so the result (prefix, hyphen
    and an 8-character random suffix) fits in 63 characters.

    Args:
        prefix: Namespace prefix.

    Returns:
        Unique namespace string, e.g. ``"rbac-proxy-a1b2c3d4"``.
    """
    normalized = prefix.lower().replace("_", "-")
    normalized = re.sub(r"[^a-z0-9-]", "", normalized).strip("-")

    suffix = uuid.uuid4().hex[:_SUFFIX_LENGTH]
    max_prefix_length = MAX_NAMESPACE_LENGTH - _SUFFIX_LENGTH - 1
    normalized = normalized[:max_prefix_length].rstrip("-")

    if not normalized:
        return suffix
    return f"{normalized}-{suffix}"


def create_namespace(
    core_api: client.CoreV1Api,
    name: str,
    labels: dict[str, str] | None = None,
) -> None:
    """Create a namespace.

    Raises:
        NamespaceError: If the namespace is invalid or cannot be created.
    """
    if len(name) > MAX_NAMESPACE_LENGTH or not NAMESPACE_PATTERN.match(name):
        raise NamespaceError(f"invalid namespace name {name!r}", namespace=name)

    body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name, labels=labels))
    try:
        core_api.create_namespace(body)
    except Exception as e:
        raise NamespaceError(
            f"failed to create namespace with name {name}: {sanitize_k8s_api_error(e)}",
            namespace=name,
        ) from e
    logger.info("namespaces.created", namespace=name)


def delete_namespace(core_api: client.CoreV1Api, name: str) -> None:
    """Delete a namespace and, through it, everything inside it.

    Raises:
        NamespaceError: If the delete call fails.
    """
    try:
        core_api.delete_namespace(name)
    except Exception as e:
        raise NamespaceError(
            f"failed to delete namespace {name}: {sanitize_k8s_api_error(e)}",
            namespace=name,
        ) from e
    logger.info("namespaces.deleted", namespace=name)


def created_namespace(core_api: client.CoreV1Api, prefix: str = "kubeharness") -> Setup:
    """Setup step creating a unique namespace and switching the context to it.

    The namespace's deletion is registered as a finalizer. Put this step
    first so later finalizers (which run earlier) clean up before it.
    """

    def create(ctx: ScenarioContext) -> None:
        name = generate_unique_namespace(prefix)
        create_namespace(
            core_api, name, labels={"app.kubernetes.io/managed-by": "kubeharness"}
        )
        ctx.add_finalizer(lambda: delete_namespace(core_api, name))
        ctx.namespace = name

    return create


__all__ = [
    "MAX_NAMESPACE_LENGTH",
    "create_namespace",
    "created_namespace",
    "delete_namespace",
    "generate_unique_namespace",
]
