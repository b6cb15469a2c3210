"""Transport tests for kubeharness.resolver against a local HTTP server.

These go through a real kubernetes ApiClient, so they pin the request shape
(paths, methods, query parameters, JSON bodies) the installed client emits.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from kubeharness.errors import KindNotServedError
from kubeharness.resolver import ResourceResolver

API_VERSIONS = {"kind": "APIVersions", "versions": ["v1"], "serverAddressByClientCIDRs": []}

API_GROUPS = {
    "kind": "APIGroupList",
    "apiVersion": "v1",
    "groups": [
        {
            "name": "apps",
            "versions": [{"groupVersion": "apps/v1", "version": "v1"}],
            "preferredVersion": {"groupVersion": "apps/v1", "version": "v1"},
        }
    ],
}


def _resource(name: str, kind: str, namespaced: bool = True) -> dict[str, Any]:
    return {
        "name": name,
        "singularName": "",
        "namespaced": namespaced,
        "kind": kind,
        "verbs": ["create", "delete", "get", "list", "watch"],
    }


RESOURCE_LISTS = {
    "/api/v1": {
        "kind": "APIResourceList",
        "groupVersion": "v1",
        "resources": [
            _resource("namespaces", "Namespace", namespaced=False),
            _resource("pods", "Pod"),
            _resource("pods/log", "Pod"),
        ],
    },
    "/apis/apps/v1": {
        "kind": "APIResourceList",
        "groupVersion": "apps/v1",
        "resources": [_resource("deployments", "Deployment")],
    },
}

OBJECT_PATHS = {
    "/api/v1/namespaces/x": {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "x"}},
}

WATCH_EVENTS = [
    {
        "type": "ADDED",
        "object": {"kind": "Deployment", "metadata": {"name": "d", "resourceVersion": "1"}},
    },
    {
        "type": "MODIFIED",
        "object": {"kind": "Deployment", "metadata": {"name": "d", "resourceVersion": "2"}},
    },
]


class FakeAPIServer(BaseHTTPRequestHandler):
    """Minimal API server: discovery, object CRUD and one watch stream."""

    protocol_version = "HTTP/1.1"

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        pass

    def _record(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append(  # type: ignore[attr-defined]
            {
                "method": self.command,
                "path": self.path,
                "body": body,
                "headers": dict(self.headers),
            }
        )
        return body

    def _send_json(self, status: int, payload: dict[str, Any]) -> None:
        data = json.dumps(payload).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(data)

    def _send_watch(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Transfer-Encoding", "chunked")
        self.send_header("Connection", "close")
        self.end_headers()
        for event in WATCH_EVENTS:
            line = json.dumps(event).encode() + b"\n"
            self.wfile.write(f"{len(line):x}\r\n".encode() + line + b"\r\n")
        self.wfile.write(b"0\r\n\r\n")

    def do_GET(self) -> None:  # noqa: N802
        self._record()
        url = urlsplit(self.path)
        if "watch" in parse_qs(url.query):
            self._send_watch()
        elif url.path == "/api":
            self._send_json(200, API_VERSIONS)
        elif url.path == "/apis":
            self._send_json(200, API_GROUPS)
        elif url.path in RESOURCE_LISTS:
            self._send_json(200, RESOURCE_LISTS[url.path])
        elif url.path in OBJECT_PATHS:
            self._send_json(200, OBJECT_PATHS[url.path])
        else:
            self._send_json(404, {"kind": "Status", "status": "Failure", "reason": "NotFound"})

    def do_POST(self) -> None:  # noqa: N802
        body = self._record()
        self._send_json(201, json.loads(body))

    def do_DELETE(self) -> None:  # noqa: N802
        self._record()
        self._send_json(200, {"kind": "Status", "status": "Success"})


@pytest.fixture
def api_server() -> Iterator[ThreadingHTTPServer]:
    server = ThreadingHTTPServer(("127.0.0.1", 0), FakeAPIServer)
    server.requests = []  # type: ignore[attr-defined]
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def resolver(api_server: ThreadingHTTPServer) -> ResourceResolver:
    configuration = client.Configuration()
    configuration.host = f"http://127.0.0.1:{api_server.server_address[1]}"
    return ResourceResolver(configuration)


def _requests(server: ThreadingHTTPServer, method: str) -> list[dict[str, Any]]:
    return [r for r in server.requests if r["method"] == method]  # type: ignore[attr-defined]


class TestDiscoveryTransport:
    """Discovery requests issued through a real ApiClient."""

    def test_walks_core_and_group_versions(
        self, resolver: ResourceResolver, api_server: ThreadingHTTPServer
    ) -> None:
        catalog = resolver.discover()

        paths = [r["path"] for r in _requests(api_server, "GET")]
        assert paths == ["/api", "/apis", "/api/v1", "/apis/apps/v1"]
        assert [entry.group_version for entry in catalog] == ["v1", "apps/v1"]
        assert [r.name for r in catalog[0].resources] == ["namespaces", "pods"]

    def test_unknown_kind(self, resolver: ResourceResolver) -> None:
        with pytest.raises(KindNotServedError):
            resolver.resolve("apps/v1", "StatefulSet", "ns1")


class TestHandleTransport:
    """Object operations issued through a real ApiClient."""

    def test_create_posts_json_to_collection(
        self, resolver: ResourceResolver, api_server: ThreadingHTTPServer
    ) -> None:
        handle = resolver.resolve("apps/v1", "Deployment", "ns1")
        body = {"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {"name": "d"}}

        result = handle.create(body)

        assert result == body
        (post,) = _requests(api_server, "POST")
        assert post["path"] == "/apis/apps/v1/namespaces/ns1/deployments"
        assert json.loads(post["body"]) == body
        assert post["headers"]["Content-Type"] == "application/json"

    def test_delete_targets_object(
        self, resolver: ResourceResolver, api_server: ThreadingHTTPServer
    ) -> None:
        handle = resolver.resolve("apps/v1", "Deployment", "ns1")

        result = handle.delete("d")

        assert result["status"] == "Success"
        (delete,) = _requests(api_server, "DELETE")
        assert delete["path"] == "/apis/apps/v1/namespaces/ns1/deployments/d"

    def test_cluster_scoped_get_ignores_namespace(
        self, resolver: ResourceResolver, api_server: ThreadingHTTPServer
    ) -> None:
        handle = resolver.resolve("v1", "Namespace", "ignored")

        result = handle.get("x")

        assert result["metadata"]["name"] == "x"
        assert _requests(api_server, "GET")[-1]["path"] == "/api/v1/namespaces/x"

    def test_get_missing_object(self, resolver: ResourceResolver) -> None:
        handle = resolver.resolve("v1", "Pod", "ns1")

        with pytest.raises(ApiException) as exc_info:
            handle.get("missing")

        assert exc_info.value.status == 404

    def test_watch_streams_dict_events(
        self, resolver: ResourceResolver, api_server: ThreadingHTTPServer
    ) -> None:
        handle = resolver.resolve("apps/v1", "Deployment", "ns1")

        events = list(handle.watch("d", timeout_seconds=5))

        assert [e["type"] for e in events] == ["ADDED", "MODIFIED"]
        assert events[1]["object"]["metadata"]["resourceVersion"] == "2"
        url = urlsplit(_requests(api_server, "GET")[-1]["path"])
        query = parse_qs(url.query)
        assert url.path == "/apis/apps/v1/namespaces/ns1/deployments"
        assert query["fieldSelector"] == ["metadata.name=d"]
        assert query["timeoutSeconds"] == ["5"]
        assert "watch" in query
