"""Environment lifecycle: ordered setup, ownership-scoped teardown."""

from __future__ import annotations

import logging
import pprint
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Any

from jinja2 import TemplateError

from aumai_meshenv.core import ClusterContext, MeshEnvError
from aumai_meshenv.deploy import DEFAULT_APPS, AppDeployer, AppSpec
from aumai_meshenv.injection import (
    IstioctlInjector,
    SidecarInjector,
    build_inject_config,
    get_mesh_config,
)
from aumai_meshenv.models import AuthPolicy, EnvironmentConfig, InjectConfig, ProbeResponse, RegistryKind
from aumai_meshenv.probe import ExecutionProbe
from aumai_meshenv.reconciler import ConfigReconciler
from aumai_meshenv.store import ConfigStore, CustomResourceStore
from aumai_meshenv.templates import TemplateRenderer

logger = logging.getLogger(__name__)

INGRESS_SECRET_NAME = "istio-ingress-certs"

RBAC_TEMPLATE = "rbac-beta.yaml.tmpl"
CONFIG_TEMPLATE = "config.yaml.tmpl"
INITIALIZER_CONFIG_TEMPLATE = "initializer-config.yaml.tmpl"
INITIALIZER_CONFIGMAP_TEMPLATE = "initializer-configmap.yaml.tmpl"
INITIALIZER_TEMPLATE = "initializer.yaml.tmpl"


def group_running_pods(
    pods: Iterable[Any],
) -> tuple[Mapping[str, tuple[str, ...]], list[str]]:
    """Split ``app``-labelled pods into a frozen app-to-pods snapshot and the rest.

    Returns the read-only mapping of running pods (names sorted per app) and
    the names of labelled pods that are not running yet. Unlabelled pods are
    ignored.
    """
    apps: dict[str, list[str]] = {}
    pending: list[str] = []
    for pod in pods:
        app = (pod.metadata.labels or {}).get("app")
        if not app:
            continue
        if pod.status.phase != "Running":
            pending.append(pod.metadata.name)
            continue
        apps.setdefault(app, []).append(pod.metadata.name)
    snapshot = MappingProxyType({app: tuple(sorted(names)) for app, names in apps.items()})
    return snapshot, pending


class MeshEnvironment:
    """The state holder for one disposable mesh environment.

    ``setup`` runs a strictly ordered, fail-fast sequence: the first error
    propagates and nothing after it runs. ``teardown`` only removes what
    this instance created and never raises.

    The app-to-pods mapping is frozen by :meth:`discover_pods` and exposed
    read-only, so concurrent scenarios may share it.
    """

    def __init__(
        self,
        config: EnvironmentConfig,
        context: ClusterContext,
        renderer: TemplateRenderer | None = None,
        store: ConfigStore | None = None,
        injector: SidecarInjector | None = None,
    ) -> None:
        self.config = config
        self.context = context
        self.renderer = renderer or TemplateRenderer(config.template_dir)
        self.store = store
        self.injector = injector

        self.namespace = config.namespace
        self.istio_namespace = config.istio_namespace
        self.namespace_created = False
        self.istio_namespace_created = False
        self.inject_config: InjectConfig | None = None
        self._apps: Mapping[str, tuple[str, ...]] = MappingProxyType({})

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> MeshEnvironment:
        try:
            self.setup()
        except BaseException:
            self.teardown()
            raise
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.teardown()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def template_context(self) -> dict[str, Any]:
        """The environment as seen by manifest templates."""
        context = self.config.model_dump(mode="json")
        context.update(
            namespace=self.namespace,
            istio_namespace=self.istio_namespace,
            inject_config=(
                self.inject_config.model_dump(mode="json") if self.inject_config else None
            ),
        )
        return context

    def setup(self) -> None:
        """Bring the environment to a fully running state.

        Raises:
            The first error met, unchanged. Partially applied steps are left
            for :meth:`teardown` to reverse.
        """
        cfg = self.config

        if self.store is None:
            self.store = CustomResourceStore(self.context)
        self.store.register_resources()

        self.namespace, self.namespace_created = self._resolve_namespace(cfg.namespace)
        self.istio_namespace, self.istio_namespace_created = self._resolve_namespace(
            cfg.istio_namespace
        )

        self._deploy(RBAC_TEMPLATE, self.istio_namespace)
        self._deploy(CONFIG_TEMPLATE, self.istio_namespace)

        mesh = get_mesh_config(self.context, self.istio_namespace)
        logger.info("mesh %s", pprint.pformat(mesh))
        self.inject_config = build_inject_config(
            cfg.hub,
            cfg.tag,
            cfg.verbosity,
            mesh,
            [self.namespace, self.istio_namespace],
            debug=cfg.debug_images,
        )

        if cfg.use_initializer:
            self._deploy_initializer(self.inject_config)

        self._deploy("pilot.yaml.tmpl", self.istio_namespace)
        self._deploy("mixer.yaml.tmpl", self.istio_namespace)
        if cfg.registry == RegistryKind.eureka:
            self._deploy("eureka.yaml.tmpl", self.istio_namespace)
        if cfg.auth != AuthPolicy.NONE:
            self._deploy("ca.yaml.tmpl", self.istio_namespace)
        self._deploy("headless.yaml.tmpl", self.namespace)

        if cfg.ingress:
            self._deploy("ingress-proxy.yaml.tmpl", self.istio_namespace)
            certs = Path(cfg.certs_dir)
            key = (certs / "cert.key").read_bytes()
            crt = (certs / "cert.crt").read_bytes()
            self.context.create_secret(
                self.istio_namespace, INGRESS_SECRET_NAME, {"tls.key": key, "tls.crt": crt}
            )
        if cfg.egress:
            self._deploy("egress-proxy.yaml.tmpl", self.istio_namespace)
        if cfg.zipkin:
            self._deploy("zipkin.yaml", self.istio_namespace)
        if cfg.mongo:
            self._deploy("mongo.yaml", self.istio_namespace)

        logger.info(
            "Environment ready (namespace=%s, istio namespace=%s)",
            self.namespace,
            self.istio_namespace,
        )

    def _resolve_namespace(self, requested: str) -> tuple[str, bool]:
        """Return ``(name, created_here)`` for a requested namespace."""
        if not requested:
            return self.context.create_namespace(), True
        self.context.check_namespace(requested)
        return requested, False

    def _deploy(self, template: str, namespace: str) -> None:
        manifest = self.renderer.render(template, self.template_context())
        self.context.apply(manifest, namespace)

    def _deploy_initializer(self, inject_config: InjectConfig) -> None:
        # InitializerConfiguration is cluster-scoped and may be shared with
        # other tests on the same cluster.
        self._deploy(INITIALIZER_CONFIG_TEMPLATE, self.istio_namespace)

        # A deployment created by an earlier run cannot be re-applied once
        # initialization has completed, so remove it first.
        stale = self.renderer.render(INITIALIZER_TEMPLATE, self.template_context())
        try:
            self.context.delete(stale, self.istio_namespace)
        except MeshEnvError as exc:
            logger.info("Sidecar initializer could not be deleted: %s", exc)

        configmap = self.renderer.render(
            INITIALIZER_CONFIGMAP_TEMPLATE, inject_config.model_dump(mode="json")
        )
        self.context.apply(configmap, self.istio_namespace)
        self._deploy(INITIALIZER_TEMPLATE, self.istio_namespace)

    # ------------------------------------------------------------------
    # Workloads
    # ------------------------------------------------------------------

    def app_deployer(self) -> AppDeployer:
        return AppDeployer(
            self.context,
            self.renderer,
            self.config,
            self.namespace,
            self.istio_namespace,
            self.inject_config,
            self.injector or IstioctlInjector(self.context, self.istio_namespace),
        )

    def deploy_app(
        self,
        deployment: str,
        service: str,
        ports: Sequence[int],
        version: str,
        inject_proxy: bool,
    ) -> None:
        self.app_deployer().deploy_app(deployment, service, ports, version, inject_proxy)

    def deploy_apps(self, apps: Sequence[AppSpec] = DEFAULT_APPS) -> None:
        self.app_deployer().deploy_apps(apps)

    @property
    def apps(self) -> Mapping[str, tuple[str, ...]]:
        """Read-only snapshot of app name to running pod names."""
        return self._apps

    def discover_pods(
        self,
        timeout: float | None = None,
        interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Mapping[str, tuple[str, ...]]:
        """Wait until every ``app``-labelled pod is running, then snapshot them.

        Raises:
            MeshEnvError: if some pod is still not running after *timeout*
                seconds (``config.pod_wait_timeout`` by default).
        """
        wait = self.config.pod_wait_timeout if timeout is None else timeout
        deadline = time.monotonic() + wait
        while True:
            apps, pending = group_running_pods(self.context.list_pods(self.namespace))
            if apps and not pending:
                break
            if time.monotonic() >= deadline:
                raise MeshEnvError(
                    f"pods not running in {self.namespace}: {', '.join(pending) or 'none found'}"
                )
            sleep(interval)

        self._apps = apps
        logger.info("Discovered pods: %s", dict(self._apps))
        return self._apps

    # ------------------------------------------------------------------
    # Probing and configuration
    # ------------------------------------------------------------------

    def probe(self) -> ExecutionProbe:
        return ExecutionProbe(self.context, self.namespace, self._apps)

    def client_request(self, app: str, url: str, count: int = 1, extra: str = "") -> ProbeResponse:
        return self.probe().client_request(app, url, count, extra)

    def reconciler(self) -> ConfigReconciler:
        if self.store is None:
            raise MeshEnvError("configuration store is not available before setup()")
        return ConfigReconciler(
            self.store, self.renderer, self.namespace, self.config.propagation_delay
        )

    def apply_config(self, template_name: str, template_data: Mapping[str, Any]) -> None:
        self.reconciler().apply_config(template_name, template_data)

    def delete_all_configs(self) -> None:
        self.reconciler().delete_all_configs()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def teardown(self) -> None:
        """Best-effort removal of everything this environment created.

        Failures are logged and swallowed. Owned namespaces are forgotten
        even when their deletion fails, so they never look owned afterwards.
        """
        if self.istio_namespace:
            try:
                manifest = self.renderer.render(RBAC_TEMPLATE, self.template_context())
                self.context.delete(manifest, self.istio_namespace)
            except (TemplateError, MeshEnvError) as exc:
                logger.warning(
                    "RBAC config could not be deleted, please delete stale "
                    "ClusterRoleBindings: %s",
                    exc,
                )

        if self.namespace_created:
            self._delete_namespace(self.namespace)
            self.namespace = ""
            self.namespace_created = False
        if self.istio_namespace_created:
            self._delete_namespace(self.istio_namespace)
            self.istio_namespace = ""
            self.istio_namespace_created = False

    def _delete_namespace(self, name: str) -> None:
        try:
            self.context.delete_namespace(name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Namespace %s could not be deleted: %s", name, exc)


__all__ = ["INGRESS_SECRET_NAME", "MeshEnvironment", "group_running_pods"]
