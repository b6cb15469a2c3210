"""Cluster access for scenarios.

A ``Suite`` holds the base connection configuration shared by every scenario
of a test session and the typed Core V1 client built on it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from kubernetes import client
from kubernetes import config as k8s_config

from kubeharness.config import HarnessSettings
from kubeharness.errors import ClusterConnectionError
from kubeharness.resolver import ResourceResolver
from kubeharness.scenario import Scenario

if TYPE_CHECKING:
    from kubeharness.scenario import Check, Condition, Setup

logger = structlog.get_logger(__name__)


def load_configuration(
    kubeconfig_path: str | None = None,
    context: str | None = None,
) -> client.Configuration:
    """Load a connection configuration without touching the global default.

    Attempts, in order:
    1. Explicit kubeconfig path
    2. In-cluster configuration
    3. Default kubeconfig (~/.kube/config)

    Raises:
        ClusterConnectionError: If no configuration can be loaded.
    """
    configuration = client.Configuration()
    try:
        if kubeconfig_path:
            k8s_config.load_kube_config(
                config_file=kubeconfig_path,
                context=context,
                client_configuration=configuration,
            )
            logger.info("suite.kubeconfig_loaded", kubeconfig_path=kubeconfig_path, context=context)
        else:
            try:
                k8s_config.load_incluster_config(client_configuration=configuration)
                logger.info("suite.incluster_loaded")
            except k8s_config.ConfigException:
                k8s_config.load_kube_config(context=context, client_configuration=configuration)
                logger.info("suite.default_kubeconfig_loaded", context=context)
    except Exception as e:
        logger.error("suite.config_failed", kubeconfig_path=kubeconfig_path, error=str(e))
        raise ClusterConnectionError(kubeconfig_path=kubeconfig_path, reason=str(e)) from e
    return configuration


class Suite:
    """Shared cluster access for a set of scenarios.

    Attributes:
        kube_config: Base connection configuration. Never mutated.
        core_api: Core V1 client bound to ``kube_config``.
        settings: Settings the suite was built from.
    """

    def __init__(
        self,
        kube_config: client.Configuration,
        settings: HarnessSettings | None = None,
        core_api: client.CoreV1Api | None = None,
    ) -> None:
        self.kube_config = kube_config
        self.settings = settings or HarnessSettings()
        self.core_api = core_api or client.CoreV1Api(client.ApiClient(configuration=kube_config))

    @classmethod
    def from_settings(cls, settings: HarnessSettings | None = None) -> Suite:
        """Build a suite from settings (environment variables by default)."""
        settings = settings or HarnessSettings()
        configuration = load_configuration(settings.kubeconfig_path, settings.context)
        return cls(configuration, settings)

    @classmethod
    def from_kubeconfig(cls, path: str, context: str | None = None) -> Suite:
        """Build a suite from an explicit kubeconfig file."""
        return cls.from_settings(HarnessSettings(kubeconfig_path=path, context=context))

    @property
    def namespace(self) -> str:
        return self.settings.namespace

    def resolver(self) -> ResourceResolver:
        return ResourceResolver(self.kube_config)

    def scenario(
        self,
        name: str,
        given: Setup | None = None,
        when: Condition | None = None,
        then: Check | None = None,
    ) -> Scenario:
        """Build a scenario starting in the suite's namespace."""
        return Scenario(name=name, given=given, when=when, then=then, namespace=self.namespace)


__all__ = [
    "Suite",
    "load_configuration",
]
