"""Command line interface for kubeharness.

Example:
    $ kubeharness resolve --api-version apps/v1 --kind Deployment -n default
    $ kubeharness apply resources/serviceAccount.yaml resources/deployment.yaml
"""

from __future__ import annotations

from pathlib import Path

import click
import structlog

from kubeharness import __version__
from kubeharness.config import HarnessSettings
from kubeharness.errors import KubeHarnessError
from kubeharness.logs import configure_logging
from kubeharness.manifests import load_manifest
from kubeharness.suite import Suite

logger = structlog.get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="kubeharness")
@click.option(
    "--kubeconfig",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to kubeconfig file. Defaults to in-cluster, then ~/.kube/config.",
)
@click.option("--context", default=None, help="Kubeconfig context to use.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Minimum log level.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    kubeconfig: str | None,
    context: str | None,
    log_level: str | None,
) -> None:
    """kubeharness - resolve and apply Kubernetes objects generically."""
    overrides: dict[str, str] = {}
    if kubeconfig:
        overrides["kubeconfig_path"] = kubeconfig
    if context:
        overrides["context"] = context
    if log_level:
        overrides["log_level"] = log_level.upper()
    settings = HarnessSettings(**overrides)
    configure_logging(settings.log_level, json_output=settings.log_json)
    ctx.obj = settings


def _suite(ctx: click.Context) -> Suite:
    try:
        return Suite.from_settings(ctx.obj)
    except KubeHarnessError as e:
        raise click.ClickException(str(e)) from e


@cli.command("resolve")
@click.option("--api-version", required=True, help="Group-version, e.g. apps/v1.")
@click.option("--kind", required=True, help="Object kind, e.g. Deployment.")
@click.option("--namespace", "-n", default="", help="Target namespace.")
@click.pass_context
def resolve_command(ctx: click.Context, api_version: str, kind: str, namespace: str) -> None:
    """Show the REST endpoint serving KIND in API-VERSION."""
    suite = _suite(ctx)
    try:
        handle = suite.resolver().resolve(api_version, kind, namespace)
    except KubeHarnessError as e:
        raise click.ClickException(str(e)) from e

    coords = handle.coordinates
    click.echo(f"group:     {coords.group or '(core)'}")
    click.echo(f"version:   {coords.version}")
    click.echo(f"resource:  {coords.resource}")
    click.echo(f"namespace: {coords.namespace or '(cluster-scoped)'}")
    click.echo(f"path:      {handle.collection_path}")


@cli.command("apply")
@click.argument(
    "manifests",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--namespace",
    "-n",
    default=None,
    help="Namespace for manifests that declare none. Defaults to the configured namespace.",
)
@click.pass_context
def apply_command(ctx: click.Context, manifests: tuple[Path, ...], namespace: str | None) -> None:
    """Create the objects described by MANIFESTS, in order."""
    suite = _suite(ctx)
    resolver = suite.resolver()
    target_namespace = namespace or suite.namespace

    for path in manifests:
        try:
            manifest = load_manifest(path)
            handle = resolver.for_manifest(manifest, target_namespace)
            handle.create(dict(manifest.body))
        except KubeHarnessError as e:
            raise click.ClickException(str(e)) from e
        except Exception as e:
            logger.error("cli.apply_failed", path=str(path), error=str(e))
            raise click.ClickException(f"failed to create {path}: {e}") from e

        click.echo(
            f"created {manifest.name}/{handle.namespace} "
            f"({manifest.kind}.{manifest.api_version})"
        )


def main() -> None:
    cli()


__all__ = ["cli", "main"]
