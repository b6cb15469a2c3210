"""Unit tests for Suite and load_configuration()."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.config import ConfigException

from kubeharness.config import HarnessSettings
from kubeharness.errors import ClusterConnectionError
from kubeharness.resolver import ResourceResolver
from kubeharness.suite import Suite, load_configuration


class TestLoadConfiguration:
    """Tests for load_configuration() fallback order."""

    def test_explicit_kubeconfig(self) -> None:
        with patch("kubeharness.suite.k8s_config") as k8s_config:
            configuration = load_configuration("/tmp/kubeconfig", "kind-e2e")

        k8s_config.load_kube_config.assert_called_once_with(
            config_file="/tmp/kubeconfig",
            context="kind-e2e",
            client_configuration=configuration,
        )
        k8s_config.load_incluster_config.assert_not_called()

    def test_prefers_incluster(self) -> None:
        with patch("kubeharness.suite.k8s_config") as k8s_config:
            k8s_config.ConfigException = ConfigException
            configuration = load_configuration()

        k8s_config.load_incluster_config.assert_called_once_with(
            client_configuration=configuration
        )
        k8s_config.load_kube_config.assert_not_called()

    def test_falls_back_to_default_kubeconfig(self) -> None:
        with patch("kubeharness.suite.k8s_config") as k8s_config:
            k8s_config.ConfigException = ConfigException
            k8s_config.load_incluster_config.side_effect = ConfigException("not in cluster")
            configuration = load_configuration(context="kind-e2e")

        k8s_config.load_kube_config.assert_called_once_with(
            context="kind-e2e", client_configuration=configuration
        )

    def test_failure_raises_connection_error(self) -> None:
        with patch("kubeharness.suite.k8s_config") as k8s_config:
            k8s_config.load_kube_config.side_effect = FileNotFoundError("missing")
            with pytest.raises(ClusterConnectionError) as exc_info:
                load_configuration("/tmp/missing")

        assert exc_info.value.kubeconfig_path == "/tmp/missing"
        assert "missing" in str(exc_info.value)

    def test_returns_fresh_configuration(self) -> None:
        with patch("kubeharness.suite.k8s_config"):
            configuration = load_configuration("/tmp/kubeconfig")
        assert isinstance(configuration, client.Configuration)


class TestSuite:
    """Tests for Suite."""

    @pytest.fixture
    def suite(self, core_api: MagicMock) -> Suite:
        return Suite(
            client.Configuration(),
            HarnessSettings(namespace="e2e"),
            core_api=core_api,
        )

    def test_namespace_from_settings(self, suite: Suite) -> None:
        assert suite.namespace == "e2e"

    def test_scenario_starts_in_suite_namespace(self, suite: Suite) -> None:
        seen: list[str] = []
        suite.scenario("ns", given=lambda ctx: seen.append(ctx.namespace)).run()
        assert seen == ["e2e"]

    def test_resolver_uses_base_configuration(self, suite: Suite) -> None:
        resolver = suite.resolver()
        assert isinstance(resolver, ResourceResolver)
        assert resolver.configuration is suite.kube_config

    def test_builds_core_api(self) -> None:
        suite = Suite(client.Configuration(), HarnessSettings())
        assert isinstance(suite.core_api, client.CoreV1Api)

    def test_from_settings(self) -> None:
        settings = HarnessSettings(kubeconfig_path="/tmp/kc", context="kind-e2e")
        configuration = client.Configuration()
        with patch(
            "kubeharness.suite.load_configuration", return_value=configuration
        ) as load:
            suite = Suite.from_settings(settings)

        load.assert_called_once_with("/tmp/kc", "kind-e2e")
        assert suite.kube_config is configuration
        assert suite.settings is settings

    def test_from_kubeconfig(self) -> None:
        with patch(
            "kubeharness.suite.load_configuration", return_value=client.Configuration()
        ) as load:
            Suite.from_kubeconfig("/tmp/kc", context="kind-e2e")
        load.assert_called_once_with("/tmp/kc", "kind-e2e")
