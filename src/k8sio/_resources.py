"""Resource path resolution for k8sio.

Handles correct path resolution whether running from:
- Source tree (development)
- pip install (site-packages)
- PyInstaller bundle (frozen binary)
"""

from __future__ import annotations

import sys
from pathlib import Path


def _package_dir() -> Path:
    """Return the k8sio package directory."""
    if getattr(sys, "frozen", False):
        # PyInstaller bundle -- data files extracted under _MEIPASS
        return Path(sys._MEIPASS) / "k8sio"  # type: ignore[attr-defined]
    return Path(__file__).parent


def get_templates_dir() -> Path:
    """Return path to Jinja2 templates directory."""
    return _package_dir() / "templates"
