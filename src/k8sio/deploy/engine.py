"""Template rendering and manifest application for k8sio.

Templates are read from the package ``templates/`` directory once per
process into a read-only table keyed by template name (for example
``fio/server.yaml.j2``); every renderer shares that table.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError

from k8sio.k8s import K8sClient

logger = logging.getLogger(__name__)


class TemplateRenderError(Exception):
    """Raised when a template is missing or fails to render."""

    pass


@functools.lru_cache(maxsize=None)
def load_template_assets(template_dir: Path | None = None) -> Mapping[str, str]:
    """Read every ``*.j2`` template below ``template_dir``.

    Args:
        template_dir: Templates root. Defaults to package templates.

    Returns:
        Read-only mapping of template name (relative posix path) to source
    """
    if template_dir is None:
        # Use package templates (supports dev, pip install, and PyInstaller)
        from k8sio._resources import get_templates_dir

        template_dir = get_templates_dir()

    assets = {
        path.relative_to(template_dir).as_posix(): path.read_text()
        for path in sorted(template_dir.rglob("*.j2"))
    }
    logger.debug("Loaded %d templates from %s", len(assets), template_dir)
    return MappingProxyType(assets)


class TemplateRenderer:
    """Renders Jinja2 templates for Kubernetes manifests."""

    def __init__(self, assets: Mapping[str, str] | None = None):
        """Initialize template renderer.

        Args:
            assets: Template table. Defaults to the package templates.
        """
        self.assets = assets if assets is not None else load_template_assets()
        self.env = Environment(
            loader=DictLoader(dict(self.assets)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["to_yaml"] = _to_yaml

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        """Render a template with the given context.

        Args:
            template_name: Name of template file (e.g., "fio/client.yaml.j2")
            context: Template variables

        Returns:
            Rendered YAML string
        """
        if template_name not in self.assets:
            raise TemplateRenderError(f"Unknown template: {template_name}")
        try:
            return self.env.get_template(template_name).render(**context)
        except TemplateError as e:
            raise TemplateRenderError(f"Failed to render {template_name}: {e}")  # noqa: B904

    def render_manifests(self, template_name: str, context: dict[str, Any]) -> list[dict[str, Any]]:
        """Render a template and parse every YAML document in it."""
        text = self.render(template_name, context)
        try:
            return [doc for doc in yaml.safe_load_all(text) if doc]
        except yaml.YAMLError as e:
            raise TemplateRenderError(f"{template_name} rendered invalid YAML: {e}")  # noqa: B904


def _to_yaml(value: Any, indent: int = 0) -> str:
    """Jinja filter: dump a value as block YAML, indented by ``indent`` spaces."""
    text = yaml.safe_dump(value, default_flow_style=False, sort_keys=False).rstrip("\n")
    if not indent:
        return text
    pad = " " * indent
    return "\n".join(pad + line for line in text.splitlines())


def apply_manifests(
    k8s: K8sClient,
    manifests: Iterable[dict[str, Any]],
    namespace: str,
) -> list[str]:
    """Apply manifests in order, stopping at the first failure.

    Returns:
        ``kind/name`` of each applied resource
    """
    applied = []
    for doc in manifests:
        ref = f"{doc.get('kind', '?')}/{doc.get('metadata', {}).get('name', '?')}"
        k8s.apply_manifest(doc, namespace=namespace)
        logger.info("Applied %s", ref)
        applied.append(ref)
    return applied
