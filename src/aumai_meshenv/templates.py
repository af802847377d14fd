"""Manifest rendering from named templates."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from jinja2 import BaseLoader, Environment, FileSystemLoader, StrictUndefined


class TemplateRenderer:
    """Render named manifest templates with a mapping as context.

    Templates are looked up in *template_dir* unless an explicit jinja2
    *loader* is given. Undefined variables are errors, so a typo in a
    template fails setup instead of producing a broken manifest.
    """

    def __init__(
        self,
        template_dir: str | Path = "templates",
        loader: BaseLoader | None = None,
    ) -> None:
        self._env = Environment(
            loader=loader or FileSystemLoader(str(template_dir)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, name: str, context: Mapping[str, Any]) -> str:
        """Render template *name* with *context*.

        Raises:
            jinja2.TemplateNotFound: if no template called *name* exists.
            jinja2.UndefinedError: if the template uses a missing variable.
        """
        return self._env.get_template(name).render(dict(context))


__all__ = ["TemplateRenderer"]
