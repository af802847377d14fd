"""Live configuration store backed by cluster custom resources."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import yaml
from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException

from aumai_meshenv.core import ClusterContext, ConfigParseError, ConfigStoreError, StaleVersionError
from aumai_meshenv.models import ConfigDescriptor, ConfigObject

logger = logging.getLogger(__name__)

ROUTE_RULE = ConfigDescriptor(type="route-rule", kind="RouteRule", plural="routerules")
DESTINATION_POLICY = ConfigDescriptor(
    type="destination-policy", kind="DestinationPolicy", plural="destinationpolicies"
)
EGRESS_RULE = ConfigDescriptor(type="egress-rule", kind="EgressRule", plural="egressrules")

ISTIO_CONFIG_TYPES: tuple[ConfigDescriptor, ...] = (ROUTE_RULE, DESTINATION_POLICY, EGRESS_RULE)


class ConfigStore(Protocol):
    """The operations the lifecycle and reconciler need from a config store."""

    def register_resources(self) -> None: ...

    def descriptors(self) -> list[ConfigDescriptor]: ...

    def get(self, type_: str, name: str, namespace: str) -> ConfigObject | None: ...

    def list(self, type_: str, namespace: str) -> list[ConfigObject]: ...

    def create(self, obj: ConfigObject) -> str: ...

    def update(self, obj: ConfigObject) -> str: ...

    def delete(self, type_: str, name: str, namespace: str) -> None: ...


def parse_inputs(
    text: str, descriptors: tuple[ConfigDescriptor, ...] | list[ConfigDescriptor] = ISTIO_CONFIG_TYPES
) -> list[ConfigObject]:
    """Parse a multi-document YAML string into configuration objects.

    Empty documents are skipped. Every other document must carry a ``kind``
    known to *descriptors* and a ``metadata.name``.

    Raises:
        ConfigParseError: on malformed YAML, an unknown kind or a missing name.
    """
    by_kind = {d.kind: d for d in descriptors}
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ConfigParseError(f"invalid configuration YAML: {exc}") from exc

    objects: list[ConfigObject] = []
    for doc in documents:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ConfigParseError(f"expected a mapping, got {type(doc).__name__}")
        kind = doc.get("kind")
        descriptor = by_kind.get(kind)  # type: ignore[arg-type]
        if descriptor is None:
            raise ConfigParseError(f"unrecognized configuration kind {kind!r}")
        metadata = doc.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise ConfigParseError(f"{kind} is missing metadata.name")
        objects.append(
            ConfigObject(
                type=descriptor.type,
                name=name,
                namespace=metadata.get("namespace", ""),
                resource_version=str(metadata.get("resourceVersion", "")),
                spec=doc.get("spec") or {},
            )
        )
    return objects


class CustomResourceStore:
    """A :class:`ConfigStore` that keeps each configuration type as a CRD.

    Update conflicts reported by the API server (HTTP 409) surface as
    :class:`StaleVersionError`; other API errors as :class:`ConfigStoreError`.
    """

    def __init__(
        self,
        context: ClusterContext,
        descriptors: tuple[ConfigDescriptor, ...] | list[ConfigDescriptor] = ISTIO_CONFIG_TYPES,
    ) -> None:
        self._context = context
        self._descriptors = {d.type: d for d in descriptors}
        self._api = k8s_client.CustomObjectsApi(context.api_client)

    def descriptors(self) -> list[ConfigDescriptor]:
        return list(self._descriptors.values())

    def register_resources(self) -> None:
        """Create a CustomResourceDefinition per descriptor.

        Definitions that already exist are left alone.
        """
        extensions = k8s_client.ApiextensionsV1Api(self._context.api_client)
        for descriptor in self._descriptors.values():
            try:
                extensions.create_custom_resource_definition(_crd_body(descriptor))
            except ApiException as exc:
                if exc.status != 409:
                    raise ConfigStoreError(
                        f"registering {descriptor.plural}.{descriptor.group}: {exc.reason}"
                    ) from exc
                logger.debug("CRD %s.%s already registered", descriptor.plural, descriptor.group)

    def get(self, type_: str, name: str, namespace: str) -> ConfigObject | None:
        descriptor = self._descriptor(type_)
        try:
            item = self._api.get_namespaced_custom_object(
                descriptor.group, descriptor.version, namespace, descriptor.plural, name
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise ConfigStoreError(f"get {type_} {namespace}/{name}: {exc.reason}") from exc
        return _to_object(descriptor, item)

    def list(self, type_: str, namespace: str) -> list[ConfigObject]:
        descriptor = self._descriptor(type_)
        try:
            result = self._api.list_namespaced_custom_object(
                descriptor.group, descriptor.version, namespace, descriptor.plural
            )
        except ApiException as exc:
            raise ConfigStoreError(f"list {type_} in {namespace}: {exc.reason}") from exc
        return [_to_object(descriptor, item) for item in result.get("items", [])]

    def create(self, obj: ConfigObject) -> str:
        descriptor = self._descriptor(obj.type)
        try:
            item = self._api.create_namespaced_custom_object(
                descriptor.group,
                descriptor.version,
                obj.namespace,
                descriptor.plural,
                _to_body(descriptor, obj),
            )
        except ApiException as exc:
            raise ConfigStoreError(f"create {obj.key()}: {exc.reason}") from exc
        return item["metadata"]["resourceVersion"]

    def update(self, obj: ConfigObject) -> str:
        descriptor = self._descriptor(obj.type)
        try:
            item = self._api.replace_namespaced_custom_object(
                descriptor.group,
                descriptor.version,
                obj.namespace,
                descriptor.plural,
                obj.name,
                _to_body(descriptor, obj),
            )
        except ApiException as exc:
            if exc.status == 409:
                raise StaleVersionError(
                    f"update {obj.key()} with stale version {obj.resource_version!r}"
                ) from exc
            raise ConfigStoreError(f"update {obj.key()}: {exc.reason}") from exc
        return item["metadata"]["resourceVersion"]

    def delete(self, type_: str, name: str, namespace: str) -> None:
        descriptor = self._descriptor(type_)
        try:
            self._api.delete_namespaced_custom_object(
                descriptor.group, descriptor.version, namespace, descriptor.plural, name
            )
        except ApiException as exc:
            raise ConfigStoreError(f"delete {type_} {namespace}/{name}: {exc.reason}") from exc

    def _descriptor(self, type_: str) -> ConfigDescriptor:
        try:
            return self._descriptors[type_]
        except KeyError:
            raise ConfigStoreError(f"unknown configuration type {type_!r}") from None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _crd_body(descriptor: ConfigDescriptor) -> dict[str, Any]:
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{descriptor.plural}.{descriptor.group}"},
        "spec": {
            "group": descriptor.group,
            "scope": "Namespaced",
            "names": {
                "plural": descriptor.plural,
                "singular": descriptor.kind.lower(),
                "kind": descriptor.kind,
            },
            "versions": [
                {
                    "name": descriptor.version,
                    "served": True,
                    "storage": True,
                    "schema": {
                        "openAPIV3Schema": {
                            "type": "object",
                            "x-kubernetes-preserve-unknown-fields": True,
                        }
                    },
                }
            ],
        },
    }


def _to_body(descriptor: ConfigDescriptor, obj: ConfigObject) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": obj.name, "namespace": obj.namespace}
    if obj.resource_version:
        metadata["resourceVersion"] = obj.resource_version
    return {
        "apiVersion": descriptor.api_version,
        "kind": descriptor.kind,
        "metadata": metadata,
        "spec": obj.spec,
    }


def _to_object(descriptor: ConfigDescriptor, item: dict[str, Any]) -> ConfigObject:
    metadata = item.get("metadata", {})
    return ConfigObject(
        type=descriptor.type,
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", ""),
        resource_version=str(metadata.get("resourceVersion", "")),
        spec=item.get("spec") or {},
    )


__all__ = [
    "ConfigStore",
    "CustomResourceStore",
    "DESTINATION_POLICY",
    "EGRESS_RULE",
    "ISTIO_CONFIG_TYPES",
    "ROUTE_RULE",
    "parse_inputs",
]
