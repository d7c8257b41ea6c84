"""
Scene Service
=============

Lazy singleton for the `LoadCoordinator` that backs the scene endpoints.
Construction is cheap, but pyproj is only pulled in when the first scene
request arrives so API startup stays instant.
"""

from __future__ import annotations

from typing import Optional

_coordinator: Optional["LoadCoordinator"] = None


def _make_coordinator():
    # Import inside function to keep startup light
    from services.scene.load_coordinator import LoadCoordinator  # type: ignore
    return LoadCoordinator()


def get_load_coordinator():
    """Lazily construct and return the singleton LoadCoordinator."""
    global _coordinator
    if _coordinator is None:
        _coordinator = _make_coordinator()
    return _coordinator
