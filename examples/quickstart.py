"""aumai-meshenv quickstart: offline demonstrations of the main building blocks.

Run this file directly to verify your installation:

    python examples/quickstart.py

None of the demos needs a cluster. They cover the probe parser, the
parallel scenario runner, manifest rendering and config reconciliation
against an in-memory store. A real run against a cluster goes through
the CLI instead:

    aumai-meshenv run --config env.yaml --component mongodb
"""

from __future__ import annotations

import time

from jinja2 import DictLoader

from aumai_meshenv import (
    ConfigDescriptor,
    ConfigObject,
    ConfigReconciler,
    EnvironmentConfig,
    ScenarioFailure,
    ScenarioFailuresError,
    TemplateRenderer,
    parallel,
    parse_response,
    run_parallel,
)
from aumai_meshenv.store import ISTIO_CONFIG_TYPES

# ---------------------------------------------------------------------------
# Demo 1 — Parsing probe output
# ---------------------------------------------------------------------------

_PROBE_OUTPUT = """\
[0] Url=http://c:80
[0] StatusCode=200
[0] ServiceVersion=v1
[0] ServicePort=8080
[0] X-Request-Id=5d1c
[1] Url=http://c:80
[1] StatusCode=200
[1] ServiceVersion=v2
[1] ServicePort=8080
[1] x-request-id=9e02
"""


def demo_parse_response() -> None:
    """Turn the probe client's text output into a ProbeResponse."""

    print("\n=== Demo 1: Probe Response Parsing ===")

    response = parse_response(_PROBE_OUTPUT)
    print(f"  codes={response.code} versions={response.version} ids={response.id}")

    assert response.is_ok()
    assert response.version == ["v1", "v2"]
    assert response.id == ["5d1c", "9e02"]

    print("  Demo 1 passed.")


# ---------------------------------------------------------------------------
# Demo 2 — Running scenarios in parallel
# ---------------------------------------------------------------------------

def demo_parallel_scenarios() -> None:
    """Run three scenarios at once; one of them fails."""

    print("\n=== Demo 2: Parallel Scenarios ===")

    def slow_ok() -> None:
        time.sleep(0.2)

    def fast_ok() -> None:
        time.sleep(0.05)

    def broken() -> None:
        time.sleep(0.1)
        raise ScenarioFailure("StatusCode=503")

    start = time.perf_counter()
    statuses = run_parallel({"slow": slow_ok, "fast": fast_ok, "broken": broken})
    elapsed = time.perf_counter() - start
    for status in statuses:
        outcome = "PASS" if status.passed else f"FAIL ({status.error})"
        print(f"  {status.name}: {outcome} in {status.duration_seconds:.2f}s")
    print(f"  Wall time: {elapsed:.2f}s")
    assert elapsed < 0.5

    try:
        parallel({"slow": slow_ok, "broken": broken})
    except ScenarioFailuresError as exc:
        print(f"  parallel() raised: {exc}")
        assert list(exc.failures) == ["broken"]

    print("  Demo 2 passed.")


# ---------------------------------------------------------------------------
# Demo 3 — Rendering a workload manifest
# ---------------------------------------------------------------------------

_APP_TEMPLATE = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: {{ deployment }}
spec:
  template:
    metadata:
      labels: {app: {{ service }}, version: {{ version }}}
    spec:
      containers:
      - name: app
        image: {{ hub }}/app:{{ tag }}
"""


def demo_render_manifest() -> None:
    """Render a template with strict undefined-variable checking."""

    print("\n=== Demo 3: Manifest Rendering ===")

    config = EnvironmentConfig(hub="docker.io/example", tag="0.2.0")
    renderer = TemplateRenderer(loader=DictLoader({"app.yaml.tmpl": _APP_TEMPLATE}))
    manifest = renderer.render(
        "app.yaml.tmpl",
        {"deployment": "c-v2", "service": "c", "version": "v2", "hub": config.hub, "tag": config.tag},
    )
    print("  " + manifest.replace("\n", "\n  ").rstrip())
    assert "docker.io/example/app:0.2.0" in manifest

    print("  Demo 3 passed.")


# ---------------------------------------------------------------------------
# Demo 4 — Reconciling routing config against an in-memory store
# ---------------------------------------------------------------------------

_RULES_TEMPLATE = """\
apiVersion: config.istio.io/v1alpha2
kind: RouteRule
metadata:
  name: {{ name }}
spec:
  destination: {name: {{ destination }}}
  route:
  - labels: {version: {{ version }}}
"""


class MemoryStore:
    """Just enough of a config store for the demo."""

    def __init__(self) -> None:
        self.objects: dict[str, ConfigObject] = {}
        self._version = 0

    def register_resources(self) -> None:
        pass

    def descriptors(self) -> list[ConfigDescriptor]:
        return list(ISTIO_CONFIG_TYPES)

    def get(self, type_: str, name: str, namespace: str) -> ConfigObject | None:
        return self.objects.get(f"{type_}/{namespace}/{name}")

    def list(self, type_: str, namespace: str) -> list[ConfigObject]:
        return [o for o in self.objects.values() if o.type == type_ and o.namespace == namespace]

    def _put(self, obj: ConfigObject) -> str:
        self._version += 1
        stored = obj.model_copy(update={"resource_version": str(self._version)})
        self.objects[stored.key()] = stored
        return stored.resource_version

    def create(self, obj: ConfigObject) -> str:
        return self._put(obj)

    def update(self, obj: ConfigObject) -> str:
        return self._put(obj)

    def delete(self, type_: str, name: str, namespace: str) -> None:
        del self.objects[f"{type_}/{namespace}/{name}"]


def demo_reconcile_config() -> None:
    """Apply a rule twice (create, then update) and clean it up."""

    print("\n=== Demo 4: Config Reconciliation ===")

    store = MemoryStore()
    renderer = TemplateRenderer(loader=DictLoader({"rule.yaml.tmpl": _RULES_TEMPLATE}))
    reconciler = ConfigReconciler(store, renderer, "demo", propagation_delay=0.0)

    reconciler.apply_config("rule.yaml.tmpl", {"name": "reviews", "destination": "c", "version": "v1"})
    first = store.get("route-rule", "reviews", "demo")
    reconciler.apply_config("rule.yaml.tmpl", {"name": "reviews", "destination": "c", "version": "v2"})
    second = store.get("route-rule", "reviews", "demo")
    assert first is not None and second is not None
    print(f"  version token {first.resource_version} -> {second.resource_version}")
    print(f"  route now: {second.spec['route']}")

    reconciler.delete_all_configs()
    assert store.objects == {}

    print("  Demo 4 passed.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Run all quickstart demos in sequence."""
    print("aumai-meshenv quickstart demos")
    print("=" * 45)

    demo_parse_response()
    demo_parallel_scenarios()
    demo_render_manifest()
    demo_reconcile_config()

    print("\n" + "=" * 45)
    print("All demos completed successfully.")


if __name__ == "__main__":
    main()
