"""
Centralized path configuration for backend data.

Responsibilities:
- Decide dev vs frozen (PyInstaller) mode.
- Provide stable roots for the HD map sources and logs.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


DEFAULT_VECTOR_MAP = "vector_map.osm"
DEFAULT_POINTCLOUD_MAP = "pointcloud_map.pcd"
DEFAULT_PROJECTOR_INFO = "projector_info.yaml"
DEFAULT_MAP_CONFIG = "map_config.yaml"


def is_frozen() -> bool:
    """Detect if we are running inside a PyInstaller bundle."""
    return getattr(sys, "frozen", False) is True


def backend_root() -> Path:
    """
    Backend source root (the 'backend' directory in the repo).
    In frozen mode this resolves under the PyInstaller extraction dir.
    """
    if is_frozen():
        base = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parents[1]))
        return base / "backend"

    # backend/config/paths.py -> backend/config -> backend
    return Path(__file__).resolve().parents[1]


def project_root() -> Path:
    """Repository root (parent of the backend directory) in dev."""
    return backend_root().parent


def maps_root() -> Path:
    """
    Directory holding the current map set.
    HD_MAPS_ROOT wins; otherwise <project_root>/hd_maps/current.
    Not created on demand: a missing directory simply means nothing to autoload.
    """
    override = os.getenv("HD_MAPS_ROOT")
    if override:
        return Path(override).expanduser()
    return project_root() / "hd_maps" / "current"


def default_sources() -> dict:
    """Default source paths for the four map inputs, only those that exist."""
    root = maps_root()
    candidates = {
        "vector_source": root / DEFAULT_VECTOR_MAP,
        "pointcloud_source": root / DEFAULT_POINTCLOUD_MAP,
        "projector_source": root / DEFAULT_PROJECTOR_INFO,
        "explicit_origin_source": root / DEFAULT_MAP_CONFIG,
    }
    return {key: str(path) for key, path in candidates.items() if path.is_file()}


def logs_root() -> Path:
    """LOG_DIR or <backend>/logs; created by the logging service when it attaches a file handler."""
    return Path(os.getenv("LOG_DIR", str(backend_root() / "logs")))
