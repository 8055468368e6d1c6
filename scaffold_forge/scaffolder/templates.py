"""Jinja2-backed template access for prompts and scaffold descriptors.

Provides the TemplateRenderer class which locates templates under the
``scaffold_forge/templates/`` directory (or a configured override).  Two kinds
of template live there:

* prompt templates (``instructions.md``, ``instructions-spec.md``) that are
  read as raw text and filled by :class:`~scaffold_forge.prompt_builder.PromptBuilder`;
* Jinja2 templates (``*.j2``) rendered with a context dictionary, such as the
  ``catalog-info.yaml.j2`` service catalog descriptor.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import jinja2
from jinja2 import Environment, FileSystemLoader, select_autoescape
from jinja2.loaders import split_template_path

from scaffold_forge.errors import RenderError, TemplateNotFound


# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Locates, decodes and renders templates from a template directory."""

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir), encoding="utf-8"),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["yaml_quote"] = _yaml_quote_filter

    # -- Raw template access -----------------------------------------------

    def get_source(self, name: str) -> str:
        """Return the decoded text of template *name* without rendering it.

        Raises:
            TemplateNotFound: If no such template exists.
            RenderError: If the template is not valid UTF-8.
        """
        try:
            source, _filename, _uptodate = self.env.loader.get_source(self.env, name)
        except jinja2.TemplateNotFound as exc:
            raise TemplateNotFound(name, str(self.template_dir)) from exc
        except UnicodeDecodeError as exc:
            raise RenderError(f"Template {name} is not valid UTF-8 text: {exc}") from exc
        return source

    def get_bytes(self, name: str) -> bytes:
        """Return the raw bytes of template *name* (used for attachments).

        Raises:
            TemplateNotFound: If no such template exists.
        """
        try:
            pieces = split_template_path(name)
        except jinja2.TemplateNotFound as exc:
            raise TemplateNotFound(name, str(self.template_dir)) from exc
        path = self.template_dir.joinpath(*pieces)
        if not path.is_file():
            raise TemplateNotFound(name, str(self.template_dir))
        return path.read_bytes()

    # -- Jinja2 rendering --------------------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a Jinja2 template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"catalog-info.yaml.j2"``).
            context: Dictionary of variables available inside the template.

        Returns:
            The rendered template content as a string.
        """
        try:
            template = self.env.get_template(template_path)
        except jinja2.TemplateNotFound as exc:
            raise TemplateNotFound(template_path, str(self.template_dir)) from exc
        except (jinja2.TemplateSyntaxError, UnicodeDecodeError) as exc:
            raise RenderError(f"Cannot load template {template_path}: {exc}") from exc
        return template.render(**context)


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a catalog-safe slug (``[a-z0-9-]``, max 63 chars)."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")[:63].rstrip("-")


def _yaml_quote_filter(value: str) -> str:
    """Render *value* as a double-quoted YAML scalar."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ")
    return f'"{escaped}"'
