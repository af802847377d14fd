"""CLI entry point for aumai-meshenv."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import click
import yaml

from aumai_meshenv import __version__
from aumai_meshenv.core import ClusterContext
from aumai_meshenv.environment import MeshEnvironment, group_running_pods
from aumai_meshenv.models import EnvironmentConfig
from aumai_meshenv.probe import ExecutionProbe
from aumai_meshenv.scenarios import build_components, registered_components

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config(path: str) -> EnvironmentConfig:
    """Load an :class:`EnvironmentConfig` from a YAML or JSON file."""
    file_path = Path(path)
    raw = file_path.read_text(encoding="utf-8")
    if file_path.suffix in (".yaml", ".yml"):
        data: dict[str, Any] = yaml.safe_load(raw) or {}
    else:
        data = json.loads(raw)
    return EnvironmentConfig(**data)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _run_components(env: MeshEnvironment, names: tuple[str, ...]) -> list[str]:
    """Run each component's setup/run/teardown; return the names that failed."""
    failed: list[str] = []
    for component in build_components(env, names or None):
        click.echo(f"Running {component}...")
        try:
            component.setup()
            component.run()
        except Exception as exc:  # noqa: BLE001
            logger.error("Component %s failed: %s", component, exc)
            failed.append(str(component))
        else:
            click.echo(f"  {component}: PASS")
        finally:
            component.teardown()
    return failed


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

_kubeconfig_option = click.option(
    "--kubeconfig",
    default=lambda: os.environ.get("KUBECONFIG", str(Path.home() / ".kube" / "config")),
    show_default="$KUBECONFIG or ~/.kube/config",
    help="Path to the kubeconfig file.",
)
_log_level_option = click.option(
    "--log-level",
    default=lambda: os.environ.get("LOG_LEVEL", "INFO"),
    show_default="$LOG_LEVEL or INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)


@click.group()
@click.version_option(version=__version__, prog_name="aumai-meshenv")
def main() -> None:
    """AumAI MeshEnv — disposable service-mesh environments for integration tests."""


@main.command("run")
@click.option(
    "--config",
    "config_path",
    required=True,
    metavar="PATH",
    help="Path to the environment definition (YAML or JSON).",
)
@click.option(
    "--component",
    "components",
    multiple=True,
    type=click.Choice(registered_components()),
    help="Component to run (repeatable). Defaults to all registered components.",
)
@click.option("--skip-cleanup", is_flag=True, help="Leave the environment running afterwards.")
@_kubeconfig_option
@_log_level_option
def run_command(
    config_path: str,
    components: tuple[str, ...],
    skip_cleanup: bool,
    kubeconfig: str,
    log_level: str,
) -> None:
    """Provision an environment, run test components, then tear it down."""
    _configure_logging(log_level)
    try:
        config = _load_config(config_path)
    except Exception as exc:
        click.echo(f"Error loading config: {exc}", err=True)
        sys.exit(1)

    env = MeshEnvironment(config, ClusterContext(kubeconfig))
    failed: list[str] = []
    try:
        env.setup()
        env.deploy_apps()
        env.discover_pods()
        failed = _run_components(env, components)
    except Exception as exc:
        click.echo(f"Environment setup failed: {exc}", err=True)
        failed = ["setup"]
    finally:
        if skip_cleanup:
            click.echo(
                f"Skipping cleanup (namespace={env.namespace}, "
                f"istio namespace={env.istio_namespace})"
            )
        else:
            env.teardown()

    if failed:
        click.echo(f"FAILED: {', '.join(failed)}", err=True)
        sys.exit(1)
    click.echo("All components passed.")


@main.command("probe")
@click.option("--namespace", required=True, help="Namespace of the workloads.")
@click.option("--app", required=True, help="Application whose pod issues the requests.")
@click.option("--url", required=True, help="Target URL.")
@click.option("--count", default=1, show_default=True, help="Number of requests.")
@click.option("--extra", default="", help="Extra argument passed to the probe client.")
@_kubeconfig_option
@_log_level_option
def probe_command(
    namespace: str,
    app: str,
    url: str,
    count: int,
    extra: str,
    kubeconfig: str,
    log_level: str,
) -> None:
    """Send probe requests from an existing workload and print the parsed response."""
    _configure_logging(log_level)
    context = ClusterContext(kubeconfig)
    apps, _ = group_running_pods(context.list_pods(namespace))

    response = ExecutionProbe(context, namespace, apps).client_request(app, url, count, extra)
    click.echo(response.model_dump_json(indent=2))
    if not response.is_ok():
        sys.exit(1)


if __name__ == "__main__":
    main()
