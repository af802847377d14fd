"""Shared pytest fixtures for aumai-meshenv test suite."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from jinja2 import DictLoader

from aumai_meshenv.core import ClusterContext, ConfigStoreError, StaleVersionError
from aumai_meshenv.models import ConfigDescriptor, ConfigObject, EnvironmentConfig
from aumai_meshenv.store import ISTIO_CONFIG_TYPES
from aumai_meshenv.templates import TemplateRenderer

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

ENV_TEMPLATES = [
    "rbac-beta.yaml.tmpl",
    "config.yaml.tmpl",
    "initializer-config.yaml.tmpl",
    "initializer.yaml.tmpl",
    "pilot.yaml.tmpl",
    "mixer.yaml.tmpl",
    "eureka.yaml.tmpl",
    "ca.yaml.tmpl",
    "headless.yaml.tmpl",
    "ingress-proxy.yaml.tmpl",
    "egress-proxy.yaml.tmpl",
    "zipkin.yaml",
    "mongo.yaml",
]

TEMPLATES: dict[str, str] = {
    name: f"template: {name}\nnamespace: {{{{ namespace }}}}\nistio: {{{{ istio_namespace }}}}\n"
    for name in ENV_TEMPLATES
}
TEMPLATES["initializer-configmap.yaml.tmpl"] = (
    "template: initializer-configmap.yaml.tmpl\n"
    "proxy: {{ params.proxy_image }}\n"
    "namespaces: {{ include_namespaces | join(',') }}\n"
)
TEMPLATES["app.yaml.tmpl"] = (
    "template: app.yaml.tmpl\n"
    "deployment: {{ deployment }}\n"
    "service: {{ service }}\n"
    "ports: {{ port1 }},{{ port2 }},{{ port3 }},{{ port4 }},{{ port5 }},{{ port6 }}\n"
    "version: {{ version }}\n"
    "image: {{ hub }}/app:{{ tag }}\n"
    "istio: {{ istio_namespace }}\n"
    "inject: \"{{ inject_proxy }}\"\n"
    "health: \"{{ health_port }}\"\n"
)
TEMPLATES["rules.yaml.tmpl"] = (
    "apiVersion: config.istio.io/v1alpha2\n"
    "kind: RouteRule\n"
    "metadata:\n"
    "  name: {{ name }}\n"
    "spec:\n"
    "  destination: {{ destination }}\n"
    "---\n"
    "apiVersion: config.istio.io/v1alpha2\n"
    "kind: DestinationPolicy\n"
    "metadata:\n"
    "  name: {{ name }}-policy\n"
    "spec:\n"
    "  destination: {{ destination }}\n"
)


@pytest.fixture()
def renderer() -> TemplateRenderer:
    """A renderer over in-memory templates for every manifest the engine uses."""
    return TemplateRenderer(loader=DictLoader(TEMPLATES))


# ---------------------------------------------------------------------------
# Recording config store
# ---------------------------------------------------------------------------


class RecordingStore:
    """In-memory config store that records every call with its version token."""

    def __init__(
        self,
        descriptors: tuple[ConfigDescriptor, ...] = ISTIO_CONFIG_TYPES,
        fail_delete_on: str | None = None,
    ) -> None:
        self._descriptors = list(descriptors)
        self.objects: dict[tuple[str, str, str], ConfigObject] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.registered = False
        self.fail_delete_on = fail_delete_on
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def seed(self, obj: ConfigObject) -> ConfigObject:
        stored = obj.model_copy(update={"resource_version": self._next_version()})
        self.objects[(stored.type, stored.name, stored.namespace)] = stored
        return stored

    def register_resources(self) -> None:
        self.registered = True
        self.calls.append(("register", "", ""))

    def descriptors(self) -> list[ConfigDescriptor]:
        return list(self._descriptors)

    def get(self, type_: str, name: str, namespace: str) -> ConfigObject | None:
        return self.objects.get((type_, name, namespace))

    def list(self, type_: str, namespace: str) -> list[ConfigObject]:
        return [o for (t, _, ns), o in self.objects.items() if t == type_ and ns == namespace]

    def create(self, obj: ConfigObject) -> str:
        self.calls.append(("create", obj.key(), obj.resource_version))
        if (obj.type, obj.name, obj.namespace) in self.objects:
            raise ConfigStoreError(f"{obj.key()} already exists")
        return self.seed(obj).resource_version

    def update(self, obj: ConfigObject) -> str:
        self.calls.append(("update", obj.key(), obj.resource_version))
        current = self.objects.get((obj.type, obj.name, obj.namespace))
        if current is None or current.resource_version != obj.resource_version:
            raise StaleVersionError(obj.key())
        return self.seed(obj).resource_version

    def delete(self, type_: str, name: str, namespace: str) -> None:
        key = f"{type_}/{namespace}/{name}"
        self.calls.append(("delete", key, ""))
        if key == self.fail_delete_on:
            raise ConfigStoreError(f"cannot delete {key}")
        del self.objects[(type_, name, namespace)]


@pytest.fixture()
def store() -> RecordingStore:
    return RecordingStore()


# ---------------------------------------------------------------------------
# Cluster context and environment config
# ---------------------------------------------------------------------------


@pytest.fixture()
def cluster() -> MagicMock:
    """A ClusterContext stand-in that records every cluster operation."""
    ctx = MagicMock(spec=ClusterContext)
    ctx.kubeconfig = "/tmp/kubeconfig"
    names = iter(["istio-test-app", "istio-test-system"])
    ctx.create_namespace.side_effect = lambda *a, **k: next(names)
    ctx.read_config_map.return_value = {"mesh": "ingressService: istio-ingress\nauthPolicy: NONE\n"}
    return ctx


@pytest.fixture()
def env_config() -> EnvironmentConfig:
    """Minimal switches: no ingress/egress/zipkin, no propagation wait."""
    return EnvironmentConfig(
        hub="docker.io/test",
        tag="t1",
        ingress=False,
        egress=False,
        zipkin=False,
        propagation_delay=0.0,
        pod_wait_timeout=1.0,
    )

