"""Manifest rendering and application."""

from .engine import (
    TemplateRenderError,
    TemplateRenderer,
    apply_manifests,
    load_template_assets,
)

__all__ = [
    "TemplateRenderError",
    "TemplateRenderer",
    "apply_manifests",
    "load_template_assets",
]
