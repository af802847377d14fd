"""Drive the live configuration store toward a rendered desired state."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from aumai_meshenv.models import ConfigDescriptor
from aumai_meshenv.store import ConfigStore, parse_inputs
from aumai_meshenv.templates import TemplateRenderer

logger = logging.getLogger(__name__)


class ConfigReconciler:
    """Create-or-update configuration objects in one namespace.

    Objects that already exist are always overwritten, even when their
    content is unchanged. Every write batch is followed by a fixed
    ``propagation_delay`` so that readers observe the new state.
    """

    def __init__(
        self,
        store: ConfigStore,
        renderer: TemplateRenderer,
        namespace: str,
        propagation_delay: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.namespace = namespace
        self.propagation_delay = propagation_delay
        self._sleep = sleep

    def apply_config(self, template_name: str, template_data: Mapping[str, Any]) -> None:
        """Render *template_name*, then create or update each parsed object.

        The first store error aborts the batch and propagates; no
        propagation wait happens in that case.
        """
        text = self.renderer.render(template_name, template_data)
        descriptors: list[ConfigDescriptor] = self.store.descriptors()
        for obj in parse_inputs(text, descriptors):
            obj.namespace = self.namespace
            existing = self.store.get(obj.type, obj.name, obj.namespace)
            if existing is not None:
                obj.resource_version = existing.resource_version
                logger.debug("Updating config %s at version %s", obj.key(), obj.resource_version)
                self.store.update(obj)
            else:
                logger.debug("Creating config %s", obj.key())
                self.store.create(obj)

        logger.info("Sleeping for the config to propagate")
        self._sleep(self.propagation_delay)

    def delete_all_configs(self) -> None:
        """Delete every object of every registered type in the namespace.

        Stops at the first failing list or delete call and re-raises it.
        """
        for descriptor in self.store.descriptors():
            for config in self.store.list(descriptor.type, self.namespace):
                logger.info("Delete config %s", config.key())
                self.store.delete(descriptor.type, config.name, config.namespace)


__all__ = ["ConfigReconciler"]
