"""
Bounds Fitter
Bounding sphere across all layers and the camera framing derived from it.
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, Optional, Tuple

import numpy as np

from config import settings

from .models import BoundsFit, CameraFit, Diagnostics

logger = logging.getLogger(__name__)

_VIEW_DIRECTION = np.array([1.0, 1.0, 1.0]) / math.sqrt(3.0)


def accumulate_box(point_sets: Iterable[np.ndarray]) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """Axis-aligned (min, max) over every finite point, or None when empty."""
    lo: Optional[np.ndarray] = None
    hi: Optional[np.ndarray] = None
    for points in point_sets:
        if points is None or len(points) == 0:
            continue
        arr = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        arr = arr[np.all(np.isfinite(arr), axis=1)]
        if arr.size == 0:
            continue
        cur_lo = arr.min(axis=0)
        cur_hi = arr.max(axis=0)
        lo = cur_lo if lo is None else np.minimum(lo, cur_lo)
        hi = cur_hi if hi is None else np.maximum(hi, cur_hi)
    if lo is None or hi is None:
        return None
    return lo, hi


class BoundsFitter:
    def __init__(
        self,
        radius_guard: Optional[float] = None,
        min_radius: Optional[float] = None,
        padding: Optional[float] = None,
        fov_deg: Optional[float] = None,
        near_ratio: Optional[float] = None,
        far_ratio: Optional[float] = None,
    ):
        self.radius_guard = settings.BOUNDS_RADIUS_GUARD_M if radius_guard is None else radius_guard
        self.min_radius = settings.BOUNDS_MIN_RADIUS_M if min_radius is None else min_radius
        self.padding = settings.CAMERA_PADDING if padding is None else padding
        self.fov_deg = settings.CAMERA_FOV_DEG if fov_deg is None else fov_deg
        self.near_ratio = settings.CAMERA_NEAR_RATIO if near_ratio is None else near_ratio
        self.far_ratio = settings.CAMERA_FAR_RATIO if far_ratio is None else far_ratio

    def fit(self, point_sets: Iterable[np.ndarray], diagnostics: Diagnostics) -> BoundsFit:
        """
        Sphere = centre and half-diagonal of the box. Above the radius guard the
        result is flagged and carries no camera; callers must leave the camera alone.
        """
        box = accumulate_box(point_sets)
        if box is None:
            logger.info("📦 No renderable geometry to fit")
            return BoundsFit()

        lo, hi = box
        center = tuple(float(v) for v in (lo + hi) / 2.0)
        radius = float(np.linalg.norm(hi - lo) / 2.0)
        diagnostics.bounds_radius = radius

        if radius > self.radius_guard:
            diagnostics.warn(
                "bounds_radius",
                f"Scene radius {radius:.1f} m exceeds {self.radius_guard:.1f} m; "
                f"projection/origin likely unresolved, camera left unchanged",
            )
            return BoundsFit(center=center, radius=radius, guard_triggered=True)

        return BoundsFit(center=center, radius=radius, camera=self.frame_camera(center, radius))

    def frame_camera(self, center: Tuple[float, float, float], radius: float) -> CameraFit:
        framed = max(radius, self.min_radius)
        half_fov = math.radians(self.fov_deg) / 2.0
        distance = framed * self.padding / math.sin(half_fov)
        position = tuple(float(v) for v in np.asarray(center) + _VIEW_DIRECTION * distance)
        camera = CameraFit(
            target=center,
            position=position,
            distance=distance,
            near=framed * self.near_ratio,
            far=framed * self.far_ratio,
        )
        logger.info(f"🎥 Camera fit: radius={radius:.2f} distance={distance:.2f}")
        return camera
