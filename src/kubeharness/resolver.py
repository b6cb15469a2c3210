"""Generic resource resolution against the Kubernetes discovery catalog.

The resolver maps an object's declared ``apiVersion`` and ``kind`` to a REST
handle that can create, read, update, list, watch and delete objects of that
kind, without any compile-time knowledge of the type. Every call queries the
live discovery catalog; nothing is cached between calls.

Example:
    >>> from kubernetes import client, config
    >>> from kubeharness.resolver import ResourceResolver
    >>> config.load_kube_config()
    >>> resolver = ResourceResolver(client.Configuration.get_default_copy())
    >>> handle = resolver.resolve("apps/v1", "Deployment", "default")
    >>> handle.create({"apiVersion": "apps/v1", "kind": "Deployment", ...})
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from kubernetes import client, watch

from kubeharness.errors import (
    DiscoveryError,
    GroupVersionParseError,
    KindNotServedError,
    TransportConstructionError,
    sanitize_k8s_api_error,
)
from kubeharness.tracing import get_tracer, harness_span

if TYPE_CHECKING:
    from kubeharness.manifests import Manifest

logger = structlog.get_logger(__name__)

CORE_API_PATH = "/api"
GROUPS_API_PATH = "/apis"
JSON_CONTENT_TYPE = "application/json"

_AUTH_SETTINGS = ["BearerToken"]


@dataclass(frozen=True)
class GroupVersion:
    """An API group and version, e.g. ``("apps", "v1")`` or ``("", "v1")``."""

    group: str
    version: str

    @classmethod
    def parse(cls, group_version: str) -> GroupVersion:
        """Parse a group-version string.

        ``""`` parses to an empty group-version, ``"v1"`` to the legacy core
        group and ``"apps/v1"`` to a named group.

        Raises:
            GroupVersionParseError: If the string has more than one ``/`` or
                an empty group or version around the ``/``.
        """
        if not group_version:
            return cls(group="", version="")
        if "/" not in group_version:
            return cls(group="", version=group_version)
        group, _, version = group_version.partition("/")
        if not group or not version or "/" in version:
            raise GroupVersionParseError(group_version)
        return cls(group=group, version=version)

    def __str__(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    @property
    def api_path(self) -> str:
        """Root path serving this group-version."""
        if self.group == "" and self.version == "v1":
            return CORE_API_PATH
        return GROUPS_API_PATH


@dataclass(frozen=True)
class APIResource:
    """A resource served within a group-version."""

    name: str
    kind: str
    namespaced: bool = True


@dataclass(frozen=True)
class CatalogEntry:
    """One group-version of the discovery catalog and its served resources."""

    group_version: str
    resources: tuple[APIResource, ...] = ()

    def find(self, kind: str) -> APIResource | None:
        """Return the first resource of the given kind, if served."""
        for resource in self.resources:
            if resource.kind == kind:
                return resource
        return None


@dataclass(frozen=True)
class ResourceCoordinates:
    """Where a resource lives: group, version, plural name and namespace.

    ``namespace`` is empty for cluster-scoped kinds.
    """

    group: str
    version: str
    resource: str
    namespace: str = ""

    @property
    def group_version(self) -> GroupVersion:
        return GroupVersion(group=self.group, version=self.version)


@dataclass
class TransportConfig:
    """Connection configuration scoped to one group-version.

    ``configuration`` is always a private copy of the base configuration.
    """

    configuration: client.Configuration
    api_path: str
    group_version: GroupVersion
    content_type: str = JSON_CONTENT_TYPE
    headers: dict[str, str] = field(init=False)

    def __post_init__(self) -> None:
        self.headers = {"Accept": self.content_type, "Content-Type": self.content_type}

    @classmethod
    def for_group_version(
        cls,
        base: client.Configuration,
        group_version: GroupVersion,
    ) -> TransportConfig:
        """Copy ``base`` and scope it to ``group_version``."""
        return cls(
            configuration=copy.deepcopy(base),
            api_path=group_version.api_path,
            group_version=group_version,
        )


class ResourceHandle:
    """REST handle for one resource (plural) in one namespace.

    Bodies and results are plain JSON-compatible mappings.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        transport: TransportConfig,
        coordinates: ResourceCoordinates,
    ) -> None:
        self.api_client = api_client
        self.transport = transport
        self.coordinates = coordinates

    @property
    def namespace(self) -> str:
        return self.coordinates.namespace

    @property
    def collection_path(self) -> str:
        """REST path of the resource collection."""
        parts = [self.transport.api_path, str(self.transport.group_version)]
        if self.coordinates.namespace:
            parts.extend(["namespaces", self.coordinates.namespace])
        parts.append(self.coordinates.resource)
        return "/".join(parts)

    def object_path(self, name: str) -> str:
        return f"{self.collection_path}/{name}"

    def create(self, body: dict[str, Any]) -> Any:
        return self._call(self.collection_path, "POST", body=body)

    def get(self, name: str) -> Any:
        return self._call(self.object_path(name), "GET")

    def replace(self, name: str, body: dict[str, Any]) -> Any:
        return self._call(self.object_path(name), "PUT", body=body)

    def delete(self, name: str) -> Any:
        return self._call(self.object_path(name), "DELETE")

    def list(
        self,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
        resource_version: str | None = None,
        timeout_seconds: int | None = None,
        watch: bool = False,
        _preload_content: bool = True,
    ) -> Any:
        """List objects in the collection.

        Also serves as the list function for ``kubernetes.watch.Watch``,
        which passes ``watch=True`` and ``_preload_content=False``.
        """
        query: list[tuple[str, Any]] = []
        if label_selector:
            query.append(("labelSelector", label_selector))
        if field_selector:
            query.append(("fieldSelector", field_selector))
        if resource_version:
            query.append(("resourceVersion", resource_version))
        if timeout_seconds is not None:
            query.append(("timeoutSeconds", timeout_seconds))
        if watch:
            query.append(("watch", True))
        return self._call(
            self.collection_path,
            "GET",
            query_params=query,
            _preload_content=_preload_content,
        )

    def watch(
        self,
        name: str | None = None,
        *,
        label_selector: str | None = None,
        timeout_seconds: int | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Stream ``{"type", "object"}`` events for the collection or one object."""
        field_selector = f"metadata.name={name}" if name else None
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if field_selector:
            kwargs["field_selector"] = field_selector
        if timeout_seconds is not None:
            kwargs["timeout_seconds"] = timeout_seconds
        for event in watch.Watch().stream(self.list, **kwargs):
            if event:
                yield event

    def close(self) -> None:
        """Release the underlying API client's connection pool."""
        self.api_client.close()

    def _call(
        self,
        path: str,
        method: str,
        *,
        body: dict[str, Any] | None = None,
        query_params: list[tuple[str, Any]] | None = None,
        _preload_content: bool = True,
    ) -> Any:
        return self.api_client.call_api(
            path,
            method,
            query_params=query_params or [],
            header_params=dict(self.transport.headers),
            body=body,
            response_type="object",
            auth_settings=_AUTH_SETTINGS,
            _return_http_data_only=True,
            _preload_content=_preload_content,
        )

    def __repr__(self) -> str:
        return f"ResourceHandle({self.collection_path!r})"


class ResourceResolver:
    """Resolves apiVersion/kind pairs to ``ResourceHandle`` instances.

    Attributes:
        configuration: Base connection configuration. Never mutated.
    """

    def __init__(self, configuration: client.Configuration) -> None:
        self.configuration = configuration

    def for_manifest(self, manifest: Manifest, namespace: str = "") -> ResourceHandle:
        """Resolve the handle for a decoded manifest.

        The manifest's own namespace wins over ``namespace``.
        """
        return self.resolve(
            manifest.api_version,
            manifest.kind,
            manifest.namespace or namespace,
        )

    def resolve(self, api_version: str, kind: str, namespace: str = "") -> ResourceHandle:
        """Resolve a REST handle for ``kind`` in ``api_version``.

        Args:
            api_version: Group-version string, e.g. ``"v1"`` or ``"apps/v1"``.
            kind: Object kind, e.g. ``"Deployment"``.
            namespace: Target namespace. Ignored for cluster-scoped kinds.

        Returns:
            A handle scoped to the resolved resource and namespace.

        Raises:
            DiscoveryError: If the discovery catalog cannot be fetched.
            KindNotServedError: If no catalog entry serves the pair.
            GroupVersionParseError: If the matched group-version is malformed.
            TransportConstructionError: If the API client cannot be built.
        """
        with harness_span(
            get_tracer(),
            "resolve",
            namespace=namespace or None,
            kind=kind,
            api_version=api_version,
        ):
            try:
                catalog = self.discover()
            except Exception as e:
                logger.error(
                    "resolver.discovery_failed",
                    api_version=api_version,
                    kind=kind,
                    error=sanitize_k8s_api_error(e),
                )
                raise DiscoveryError(
                    api_version, kind, reason=sanitize_k8s_api_error(e)
                ) from e

            entry, resource = self._find(catalog, api_version, kind)
            group_version = GroupVersion.parse(entry.group_version)
            coordinates = ResourceCoordinates(
                group=group_version.group,
                version=group_version.version,
                resource=resource.name,
                namespace=namespace if resource.namespaced else "",
            )

            transport = TransportConfig.for_group_version(self.configuration, group_version)
            try:
                api_client = client.ApiClient(configuration=transport.configuration)
            except Exception as e:
                raise TransportConstructionError(
                    entry.group_version, reason=str(e)
                ) from e

            handle = ResourceHandle(api_client, transport, coordinates)
            logger.debug(
                "resolver.resolved",
                api_version=api_version,
                kind=kind,
                path=handle.collection_path,
            )
            return handle

    def discover(self) -> list[CatalogEntry]:
        """Fetch the full discovery catalog.

        Returns the legacy core group-versions first, then every version of
        every named group, each with its served (non-sub) resources.
        """
        api_client = client.ApiClient(configuration=self.configuration)
        try:
            group_versions: list[str] = []

            core = self._get(api_client, CORE_API_PATH, "V1APIVersions")
            group_versions.extend(core.versions or [])

            groups = self._get(api_client, GROUPS_API_PATH, "V1APIGroupList")
            for group in groups.groups or []:
                group_versions.extend(v.group_version for v in group.versions or [])

            catalog: list[CatalogEntry] = []
            for gv in group_versions:
                path = (
                    f"{CORE_API_PATH}/{gv}" if "/" not in gv else f"{GROUPS_API_PATH}/{gv}"
                )
                resource_list = self._get(api_client, path, "V1APIResourceList")
                catalog.append(
                    CatalogEntry(
                        group_version=resource_list.group_version or gv,
                        resources=tuple(
                            APIResource(name=r.name, kind=r.kind, namespaced=bool(r.namespaced))
                            for r in resource_list.resources or []
                            if "/" not in r.name
                        ),
                    )
                )
            return catalog
        finally:
            api_client.close()

    @staticmethod
    def _find(
        catalog: list[CatalogEntry],
        api_version: str,
        kind: str,
    ) -> tuple[CatalogEntry, APIResource]:
        for entry in catalog:
            if entry.group_version != api_version:
                continue
            resource = entry.find(kind)
            if resource is not None:
                return entry, resource
        raise KindNotServedError(api_version, kind)

    @staticmethod
    def _get(api_client: client.ApiClient, path: str, response_type: str) -> Any:
        return api_client.call_api(
            path,
            "GET",
            header_params={"Accept": JSON_CONTENT_TYPE},
            response_type=response_type,
            auth_settings=_AUTH_SETTINGS,
            _return_http_data_only=True,
        )


__all__ = [
    "APIResource",
    "CatalogEntry",
    "GroupVersion",
    "ResourceCoordinates",
    "ResourceHandle",
    "ResourceResolver",
    "TransportConfig",
]
