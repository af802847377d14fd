"""Render and apply the test workloads."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from aumai_meshenv.core import ClusterContext, MeshEnvError
from aumai_meshenv.injection import SidecarInjector
from aumai_meshenv.models import EnvironmentConfig, InjectConfig, RegistryKind
from aumai_meshenv.templates import TemplateRenderer

logger = logging.getLogger(__name__)

APP_TEMPLATE = "app.yaml.tmpl"


@dataclass(frozen=True)
class AppSpec:
    """One workload of the standard test topology."""

    deployment: str
    service: str
    ports: tuple[int, int, int, int, int, int]
    version: str
    inject_proxy: bool


# A mix of proxied and non-proxied apps, with swapped service/target ports
# on half of them and two versions behind one service.
DEFAULT_APPS: tuple[AppSpec, ...] = (
    AppSpec("t", "t", (8080, 80, 9090, 90, 7070, 70), "unversioned", False),
    AppSpec("a", "a", (8080, 80, 9090, 90, 7070, 70), "v1", True),
    AppSpec("b", "b", (80, 8080, 90, 9090, 70, 7070), "unversioned", True),
    AppSpec("c-v1", "c", (80, 8080, 90, 9090, 70, 7070), "v1", True),
    AppSpec("c-v2", "c", (80, 8080, 90, 9090, 70, 7070), "v2", True),
)


class AppDeployer:
    """Apply per-workload manifests into the workload namespace.

    When a proxy is requested and auto-injection is off, the rendered
    manifest goes through *injector* before being applied.
    """

    def __init__(
        self,
        context: ClusterContext,
        renderer: TemplateRenderer,
        config: EnvironmentConfig,
        namespace: str,
        istio_namespace: str,
        inject_config: InjectConfig | None,
        injector: SidecarInjector | None,
    ) -> None:
        self.context = context
        self.renderer = renderer
        self.config = config
        self.namespace = namespace
        self.istio_namespace = istio_namespace
        self.inject_config = inject_config
        self.injector = injector

    def deploy_app(
        self,
        deployment: str,
        service: str,
        ports: Sequence[int],
        version: str,
        inject_proxy: bool,
    ) -> None:
        """Render the app template for one workload and apply it.

        Raises:
            ValueError: if *ports* does not hold exactly six values.
            MeshEnvError: if manual injection is needed but not configured.
        """
        if len(ports) != 6:
            raise ValueError(f"expected 6 port values, got {len(ports)}")

        # Eureka does not support management ports.
        health_port = self.config.registry != RegistryKind.eureka

        context = {
            "hub": self.config.hub,
            "tag": self.config.tag,
            "service": service,
            "deployment": deployment,
            "version": version,
            "istio_namespace": self.istio_namespace,
            "inject_proxy": str(inject_proxy).lower(),
            "health_port": str(health_port).lower(),
        }
        for index, port in enumerate(ports, start=1):
            context[f"port{index}"] = str(port)

        manifest = self.renderer.render(APP_TEMPLATE, context)

        if inject_proxy and not self.config.use_initializer:
            if self.injector is None or self.inject_config is None:
                raise MeshEnvError(
                    f"cannot inject a proxy into {deployment!r}: no sidecar injector configured"
                )
            manifest = self.injector.inject(manifest, self.inject_config)

        logger.info("Deploying app %s (service=%s, version=%s)", deployment, service, version)
        self.context.apply(manifest, self.namespace)

    def deploy_apps(self, apps: Sequence[AppSpec] = DEFAULT_APPS) -> None:
        """Deploy *apps* in order, stopping at the first failure."""
        for app in apps:
            self.deploy_app(app.deployment, app.service, app.ports, app.version, app.inject_proxy)


__all__ = ["APP_TEMPLATE", "AppDeployer", "AppSpec", "DEFAULT_APPS"]
