"""aumai-meshenv: Disposable service-mesh environments for integration tests."""

from aumai_meshenv.core import (
    ClusterContext,
    CommandError,
    ConfigParseError,
    ConfigStoreError,
    MeshEnvError,
    NamespaceError,
    ScenarioFailure,
    ScenarioFailuresError,
    StaleVersionError,
)
from aumai_meshenv.deploy import DEFAULT_APPS, AppDeployer, AppSpec
from aumai_meshenv.environment import MeshEnvironment
from aumai_meshenv.models import (
    AuthPolicy,
    ConfigDescriptor,
    ConfigObject,
    EnvironmentConfig,
    InjectConfig,
    InjectParams,
    ProbeResponse,
    RegistryKind,
    ScenarioStatus,
)
from aumai_meshenv.probe import ExecutionProbe, parse_response
from aumai_meshenv.reconciler import ConfigReconciler
from aumai_meshenv.runner import parallel, run_parallel
from aumai_meshenv.scenarios import (
    MongoScenario,
    TestComponent,
    build_components,
    register_component,
)
from aumai_meshenv.store import ConfigStore, CustomResourceStore, parse_inputs
from aumai_meshenv.templates import TemplateRenderer

__version__ = "0.1.0"

__all__ = [
    "AppDeployer",
    "AppSpec",
    "AuthPolicy",
    "ClusterContext",
    "CommandError",
    "ConfigDescriptor",
    "ConfigObject",
    "ConfigParseError",
    "ConfigReconciler",
    "ConfigStore",
    "ConfigStoreError",
    "CustomResourceStore",
    "DEFAULT_APPS",
    "EnvironmentConfig",
    "ExecutionProbe",
    "InjectConfig",
    "InjectParams",
    "MeshEnvError",
    "MeshEnvironment",
    "MongoScenario",
    "NamespaceError",
    "ProbeResponse",
    "RegistryKind",
    "ScenarioFailure",
    "ScenarioFailuresError",
    "ScenarioStatus",
    "StaleVersionError",
    "TemplateRenderer",
    "TestComponent",
    "build_components",
    "parallel",
    "parse_inputs",
    "parse_response",
    "register_component",
    "run_parallel",
]
