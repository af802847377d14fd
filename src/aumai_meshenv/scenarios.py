"""Test components: a small capability interface plus a name registry."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TypeVar

from aumai_meshenv.core import ScenarioFailure
from aumai_meshenv.environment import MeshEnvironment
from aumai_meshenv.models import ProbeResponse
from aumai_meshenv.runner import parallel

logger = logging.getLogger(__name__)


class TestComponent(ABC):
    """A named behaviour run against a ready :class:`MeshEnvironment`.

    ``setup`` and ``run`` raise on failure; ``teardown`` must not raise.
    """

    __test__ = False

    name: str = ""

    def __init__(self, env: MeshEnvironment) -> None:
        self.env = env

    def __str__(self) -> str:
        return self.name

    def setup(self) -> None:
        """Prepare component-specific state. Default: nothing."""

    @abstractmethod
    def run(self) -> None: ...

    def teardown(self) -> None:
        """Undo component-specific state. Default: nothing."""


C = TypeVar("C", bound=type[TestComponent])

_REGISTRY: dict[str, type[TestComponent]] = {}


class ComponentNotFoundError(KeyError):
    """Raised when a component name is not registered."""


def register_component(cls: C) -> C:
    """Class decorator adding *cls* to the registry under ``cls.name``."""
    if not cls.name:
        raise ValueError(f"{cls.__name__} must define a non-empty name")
    _REGISTRY[cls.name] = cls
    return cls


def registered_components() -> list[str]:
    return sorted(_REGISTRY)


def build_components(env: MeshEnvironment, names: Iterable[str] | None = None) -> list[TestComponent]:
    """Instantiate the named components (all registered ones if *names* is None).

    Raises:
        ComponentNotFoundError: for an unknown name.
    """
    selected = list(names) if names is not None else registered_components()
    components: list[TestComponent] = []
    for name in selected:
        try:
            cls = _REGISTRY[name]
        except KeyError:
            raise ComponentNotFoundError(name) from None
        components.append(cls(env))
    return components


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@register_component
class MongoScenario(TestComponent):
    """Drive the mongo test backend through the mongo-aware proxy filter."""

    name = "mongodb"
    source_app = "t"
    iterations = 10

    def url(self) -> str:
        return f"mongodb://mongo.{self.env.istio_namespace}:27017"

    def run(self) -> None:
        if not self.env.config.mongo:
            logger.info("Mongo backend disabled, skipping %s", self.name)
            return
        parallel({"iterate on mongo inserts": self._iterate_inserts})

    def _iterate_inserts(self) -> None:
        # Once to check the ratings collection, then once per insert.
        self._request("")
        for i in range(self.iterations):
            response = self._request(str(i))
            logger.info("%r", response)

    def _request(self, extra: str) -> ProbeResponse:
        response = self.env.client_request(self.source_app, self.url(), 1, extra)
        if not response.is_ok():
            raise ScenarioFailure(response.body)
        return response


__all__ = [
    "ComponentNotFoundError",
    "MongoScenario",
    "TestComponent",
    "build_components",
    "register_component",
    "registered_components",
]
