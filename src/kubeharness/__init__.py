"""kubeharness: end-to-end scenario harness for Kubernetes workloads.

Provides a generic resource resolver that maps any object's apiVersion and
kind to a REST handle through live discovery, and a Given / When / Then
scenario runner that always cleans up what it provisioned.

Example:
    >>> from kubeharness import Suite, setups, conditions
    >>> from kubeharness.manifests import created_manifests
    >>> from kubeharness.pods import pods_are_ready
    >>> suite = Suite.from_settings()
    >>> suite.scenario(
    ...     "Simple",
    ...     given=setups(created_manifests(suite.kube_config, "deployment.yaml")),
    ...     when=conditions(pods_are_ready(suite.core_api, 1, "app=proxy")),
    ... ).run_or_fail()
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    "HarnessSettings",
    "ResourceResolver",
    "Scenario",
    "ScenarioContext",
    "ScenarioResult",
    "Suite",
    "checks",
    "conditions",
    "setups",
]

_LAZY = {
    "HarnessSettings": "kubeharness.config",
    "ResourceResolver": "kubeharness.resolver",
    "Scenario": "kubeharness.scenario",
    "ScenarioContext": "kubeharness.scenario",
    "ScenarioResult": "kubeharness.scenario",
    "Suite": "kubeharness.suite",
    "checks": "kubeharness.scenario",
    "conditions": "kubeharness.scenario",
    "setups": "kubeharness.scenario",
}


# Lazy imports keep `import kubeharness` free of the kubernetes client import
def __getattr__(name: str):
    """Lazy import of public components."""
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    import importlib

    return getattr(importlib.import_module(module_name), name)
