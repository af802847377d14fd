"""Pydantic models for aumai-meshenv."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

HTTP_OK = "200"


class RegistryKind(str, Enum):
    """Service registries the control plane can be pointed at."""

    kubernetes = "kubernetes"
    consul = "consul"
    eureka = "eureka"


class AuthPolicy(str, Enum):
    """Mesh-wide mutual authentication policy."""

    NONE = "NONE"
    MUTUAL_TLS = "MUTUAL_TLS"


class EnvironmentConfig(BaseModel):
    """Declarative description of a test mesh environment.

    An empty ``namespace`` or ``istio_namespace`` asks the engine to create
    (and later delete) a fresh namespace; a non-empty one must already exist
    and is never deleted.
    """

    hub: str = "gcr.io/istio-testing"
    tag: str = "latest"
    namespace: str = ""
    istio_namespace: str = ""
    registry: RegistryKind = RegistryKind.kubernetes
    verbosity: int = Field(default=2, ge=0)
    auth: AuthPolicy = AuthPolicy.NONE

    mixer: bool = True
    ingress: bool = True
    egress: bool = True
    zipkin: bool = True
    mongo: bool = False

    use_initializer: bool = False
    use_admission_webhook: bool = False
    admission_service_name: str = "istio-pilot"
    debug_images: bool = False

    certs_dir: str = "docker/certs"
    template_dir: str = "templates"
    propagation_delay: float = Field(default=3.0, ge=0.0)
    pod_wait_timeout: float = Field(default=300.0, gt=0.0)


class InjectParams(BaseModel):
    """Parameters handed to the sidecar injector."""

    init_image: str
    proxy_image: str
    verbosity: int = Field(default=2, ge=0)
    sidecar_proxy_uid: int = 1337
    enable_core_dump: bool = True
    version: str = "integration-test"
    mesh: dict[str, Any] = Field(default_factory=dict)
    debug_mode: bool = False


class InjectConfig(BaseModel):
    """Injection policy plus the namespaces eligible for auto-injection."""

    policy: str = "enabled"
    include_namespaces: list[str] = Field(default_factory=list)
    params: InjectParams


class ConfigDescriptor(BaseModel):
    """Schema for one configuration type backed by a custom resource."""

    model_config = ConfigDict(frozen=True)

    type: str
    kind: str
    plural: str
    group: str = "config.istio.io"
    version: str = "v1alpha2"

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


class ConfigObject(BaseModel):
    """A configuration record keyed by (type, name, namespace).

    ``resource_version`` is the opaque token the store uses to reject
    stale updates.
    """

    type: str
    name: str
    namespace: str = ""
    resource_version: str = ""
    spec: dict[str, Any] = Field(default_factory=dict)

    def key(self) -> str:
        return f"{self.type}/{self.namespace}/{self.name}"


class ProbeResponse(BaseModel):
    """Parsed output of one probe invocation.

    The four sequences are filled independently, so their lengths may
    differ. An empty ``code`` means no response was obtained at all.
    """

    body: str = ""
    id: list[str] = Field(default_factory=list)
    version: list[str] = Field(default_factory=list)
    port: list[str] = Field(default_factory=list)
    code: list[str] = Field(default_factory=list)

    def is_ok(self) -> bool:
        """Return True when the first recorded status code is ``200``."""
        return bool(self.code) and self.code[0] == HTTP_OK


class ScenarioStatus(BaseModel):
    """Outcome of one named scenario in a parallel run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    error: BaseException | None = None
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def passed(self) -> bool:
        return self.error is None


__all__ = [
    "AuthPolicy",
    "ConfigDescriptor",
    "ConfigObject",
    "EnvironmentConfig",
    "HTTP_OK",
    "InjectConfig",
    "InjectParams",
    "ProbeResponse",
    "RegistryKind",
    "ScenarioStatus",
]
