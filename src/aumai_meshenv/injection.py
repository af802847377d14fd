"""Sidecar injection configuration and the injector boundary."""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, Protocol

import yaml

from aumai_meshenv.core import ClusterContext, MeshEnvError, run_command
from aumai_meshenv.models import InjectConfig, InjectParams

logger = logging.getLogger(__name__)

MESH_CONFIG_MAP = "istio"
MESH_CONFIG_KEY = "mesh"


def init_image_name(hub: str, tag: str) -> str:
    """Image of the init container that sets up traffic redirection."""
    return f"{hub}/proxy_init:{tag}"


def proxy_image_name(hub: str, tag: str, debug: bool = False) -> str:
    """Image of the sidecar proxy; the debug build when *debug* is set."""
    if debug:
        return f"{hub}/proxy_debug:{tag}"
    return f"{hub}/proxy:{tag}"


def get_mesh_config(
    context: ClusterContext, namespace: str, name: str = MESH_CONFIG_MAP
) -> dict[str, Any]:
    """Read the mesh-wide settings rendered into ConfigMap *name*.

    Raises:
        MeshEnvError: if the ConfigMap lacks the mesh key or it is not a mapping.
    """
    data = context.read_config_map(namespace, name)
    raw = data.get(MESH_CONFIG_KEY)
    if raw is None:
        raise MeshEnvError(f"ConfigMap {namespace}/{name} has no {MESH_CONFIG_KEY!r} key")
    try:
        mesh = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise MeshEnvError(f"invalid mesh config in {namespace}/{name}: {exc}") from exc
    if not isinstance(mesh, dict):
        raise MeshEnvError(f"mesh config in {namespace}/{name} is not a mapping")
    return mesh


def build_inject_config(
    hub: str,
    tag: str,
    verbosity: int,
    mesh: dict[str, Any],
    include_namespaces: list[str],
    debug: bool = False,
) -> InjectConfig:
    return InjectConfig(
        policy="enabled",
        include_namespaces=include_namespaces,
        params=InjectParams(
            init_image=init_image_name(hub, tag),
            proxy_image=proxy_image_name(hub, tag, debug),
            verbosity=verbosity,
            mesh=mesh,
            debug_mode=debug,
        ),
    )


class SidecarInjector(Protocol):
    """Rewrites a workload manifest so that its pods carry a proxy sidecar."""

    def inject(self, manifest: str, config: InjectConfig) -> str: ...


class IstioctlInjector:
    """Inject sidecars by piping manifests through ``istioctl kube-inject``.

    The mesh settings carried by the :class:`InjectConfig` are written to a
    temporary file for the duration of the call, and istioctl is pointed at
    the context's kubeconfig and the environment's control-plane namespace.
    """

    def __init__(
        self,
        context: ClusterContext,
        istio_namespace: str,
        istioctl: str = "istioctl",
        timeout: float | None = 120.0,
    ) -> None:
        self.context = context
        self.istio_namespace = istio_namespace
        self.istioctl = istioctl
        self.timeout = timeout

    def inject(self, manifest: str, config: InjectConfig) -> str:
        params = config.params
        with tempfile.NamedTemporaryFile(
            "w", suffix=".yaml", prefix="mesh-", delete=False, encoding="utf-8"
        ) as mesh_file:
            yaml.safe_dump(params.mesh, mesh_file, default_flow_style=False)
        try:
            command = [
                self.istioctl,
                "kube-inject",
                "--kubeconfig",
                self.context.kubeconfig,
                "--istioNamespace",
                self.istio_namespace,
                "--meshConfigFile",
                mesh_file.name,
                "-f",
                "-",
                "--initImage",
                params.init_image,
                "--proxyImage",
                params.proxy_image,
                "--verbosity",
                str(params.verbosity),
                "--sidecarProxyUID",
                str(params.sidecar_proxy_uid),
            ]
            if params.debug_mode:
                command.append("--debug")
            logger.debug("Injecting sidecar via %s into %s", self.istioctl, self.istio_namespace)
            return run_command(command, stdin=manifest, timeout=self.timeout)
        finally:
            os.unlink(mesh_file.name)


__all__ = [
    "IstioctlInjector",
    "SidecarInjector",
    "build_inject_config",
    "get_mesh_config",
    "init_image_name",
    "proxy_image_name",
]
