"""Manifest loading and provisioning.

A manifest file holds one Kubernetes object, either as block-style YAML or as
JSON (bracketed flow style, which YAML also reads). Decoding validates the
identity fields the resolver and the cleanup need: ``apiVersion``, ``kind``,
``metadata.name`` and, optionally, ``metadata.namespace``.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kubeharness.errors import (
    EmptyManifestError,
    ManifestApplyError,
    ManifestDecodeError,
    ManifestError,
    sanitize_k8s_api_error,
)
from kubeharness.resolver import ResourceHandle, ResourceResolver
from kubeharness.tracing import get_tracer, harness_span

if TYPE_CHECKING:
    from kubernetes import client

    from kubeharness.scenario import ScenarioContext, Setup

logger = structlog.get_logger(__name__)


class Manifest(BaseModel):
    """A decoded manifest with validated identity fields.

    Attributes:
        api_version: Declared ``apiVersion``.
        kind: Declared ``kind``.
        name: ``metadata.name``.
        namespace: ``metadata.namespace``; empty when not declared.
        body: The full document, sent as-is on create.
        source: Path the manifest was read from.
    """

    model_config = ConfigDict(frozen=True)

    api_version: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    name: str = Field(min_length=1)
    namespace: str = ""
    body: dict[str, Any]
    source: str = ""

    @classmethod
    def from_document(cls, document: Any, source: str = "") -> Manifest:
        """Build a manifest from a decoded document.

        Raises:
            ManifestDecodeError: If the document is not a mapping or lacks
                an identity field.
        """
        if not isinstance(document, dict):
            raise ManifestDecodeError(source, "document is not a mapping")
        metadata = document.get("metadata")
        if not isinstance(metadata, dict):
            raise ManifestDecodeError(source, "metadata is missing or not a mapping")
        try:
            return cls(
                api_version=document.get("apiVersion") or "",
                kind=document.get("kind") or "",
                name=metadata.get("name") or "",
                namespace=metadata.get("namespace") or "",
                body=document,
                source=source,
            )
        except ValidationError as e:
            fields = ", ".join(
                str(err["loc"][0]) for err in e.errors() if err.get("loc")
            )
            raise ManifestDecodeError(source, f"missing or invalid {fields}") from e


def load_manifest(path: str | Path) -> Manifest:
    """Read and decode a single-document manifest file.

    Raises:
        ManifestError: If the file cannot be read.
        EmptyManifestError: If the file is empty.
        ManifestDecodeError: If the content is not one valid document.
    """
    source = str(path)
    try:
        content = Path(path).read_bytes()
    except OSError as e:
        raise ManifestError(source, f"failed to read manifest {source}: {e}") from e

    if len(content) == 0:
        raise EmptyManifestError(source)

    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ManifestDecodeError(source, str(e)) from e

    return Manifest.from_document(document, source)


def _delete_object(handle: ResourceHandle, name: str) -> None:
    handle.delete(name)
    logger.info("manifests.deleted", name=name, path=handle.collection_path)


def created_manifests(
    configuration: client.Configuration,
    *paths: str | Path,
    resolver: ResourceResolver | None = None,
) -> Setup:
    """Setup step creating the objects of the given manifests, in order.

    Every created object gets a finalizer deleting it by name. Manifests
    without a namespace land in the context's namespace when their kind is
    namespaced. The first failure aborts the remaining manifests; objects
    created before it are not rolled back here but keep their finalizers.

    Args:
        configuration: Base connection configuration.
        *paths: Manifest files, applied in the given order.
        resolver: Resolver to use. Defaults to one built on ``configuration``.

    Returns:
        A setup step.
    """
    resource_resolver = resolver or ResourceResolver(configuration)

    def create_all(ctx: ScenarioContext) -> None:
        for path in paths:
            manifest = load_manifest(path)
            handle = resource_resolver.for_manifest(manifest, ctx.namespace)
            with harness_span(
                get_tracer(),
                "manifest.create",
                namespace=handle.namespace or None,
                kind=manifest.kind,
                api_version=manifest.api_version,
                name=manifest.name,
            ):
                try:
                    handle.create(dict(manifest.body))
                except Exception as e:
                    raise ManifestApplyError(
                        manifest.source,
                        kind=manifest.kind,
                        name=manifest.name,
                        reason=sanitize_k8s_api_error(e),
                    ) from e

            ctx.add_finalizer(partial(_delete_object, handle, manifest.name))
            logger.info(
                "manifests.created",
                kind=manifest.kind,
                name=manifest.name,
                namespace=handle.namespace,
                path=manifest.source,
            )

    return create_all


__all__ = [
    "Manifest",
    "created_manifests",
    "load_manifest",
]
