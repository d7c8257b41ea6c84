"""
Alignment Stage
Best-effort co-registration of the point cloud with the vector layer.

This is a magnitude heuristic, not guaranteed registration: a cloud whose
centroid sits far from its native origin is assumed to be in absolute planar
meters and is shifted onto the vector layer's normalization origin. A cloud
close to its origin is assumed already local and is left untouched.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

import numpy as np

from config import settings

from .models import (
    NO_OFFSET,
    AlignmentOffset,
    Diagnostics,
    NormalizationOrigin,
    PointCloudRecord,
)
from .normalizer import remap_array

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlignedCloud:
    """Full-resolution cloud in render space plus the offset that produced it."""

    positions: np.ndarray
    colors: Optional[np.ndarray]
    offset: AlignmentOffset

    @property
    def count(self) -> int:
        return int(self.positions.shape[0])


class AlignmentStage:
    def __init__(self, absolute_threshold: Optional[float] = None):
        self.absolute_threshold = (
            settings.ALIGNMENT_ABSOLUTE_THRESHOLD_M if absolute_threshold is None else absolute_threshold
        )

    def compute_offset(
        self,
        cloud: PointCloudRecord,
        origin: Optional[NormalizationOrigin],
        diagnostics: Diagnostics,
    ) -> AlignmentOffset:
        """Decide the native-frame translation for the cloud."""
        if cloud.count == 0:
            return NO_OFFSET

        centroid = cloud.positions.mean(axis=0)
        magnitude = float(np.linalg.norm(centroid))

        if magnitude <= self.absolute_threshold:
            logger.info(f"☁️ Cloud centroid |c|={magnitude:.1f} m, treating cloud as local")
            return AlignmentOffset(centroid_magnitude=magnitude)

        if origin is None or origin.is_identity:
            diagnostics.warn(
                "cloud_unaligned",
                f"Point cloud centroid |c|={magnitude:.1f} m looks absolute but no vector origin is available",
            )
            return AlignmentOffset(centroid_magnitude=magnitude)

        offset = AlignmentOffset(
            dx=-origin.easting,
            dy=-origin.northing,
            dz=-origin.up,
            applied=True,
            centroid_magnitude=magnitude,
        )
        logger.info(
            f"☁️ Cloud centroid |c|={magnitude:.1f} m is absolute; shifting by "
            f"({offset.dx:.3f}, {offset.dy:.3f}, {offset.dz:.3f})"
        )
        return offset

    def align(
        self,
        cloud: PointCloudRecord,
        origin: Optional[NormalizationOrigin],
        flip_y: bool,
        diagnostics: Diagnostics,
    ) -> AlignedCloud:
        offset = self.compute_offset(cloud, origin, diagnostics)
        positions = cloud.positions.astype(np.float64, copy=True)
        if offset.applied:
            positions += np.array([offset.dx, offset.dy, offset.dz], dtype=np.float64)
        return AlignedCloud(
            positions=remap_array(positions, flip_y),
            colors=cloud.colors,
            offset=offset,
        )
