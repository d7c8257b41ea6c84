"""
Origin Resolver
Picks the normalization origin (E0, N0, U0) for a geographic dataset.

Priority:
    1. explicit configuration origin (static, supplied by the caller)
    2. user-supplied override origin (loaded during the session)
    3. centroid of all projected geographic nodes

An explicit origin wins even when the projected bounds look implausible; the
plausibility guard only annotates.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Optional

from config import settings
from pipelines.mapping.projection.transformer import ProjectionAdapter

from .models import (
    IDENTITY_ORIGIN,
    Diagnostics,
    NormalizationOrigin,
    OriginConfig,
    OriginSource,
    PlanarPoint3,
    ProjectionSelection,
)

logger = logging.getLogger(__name__)

FULL_TURN = 2.0 * math.pi


class OriginResolver:
    """
    Resolves the normalization origin and runs the projected-magnitude guard.
    """

    def __init__(self, adapter: ProjectionAdapter, magnitude_guard: Optional[float] = None):
        self.adapter = adapter
        self.magnitude_guard = (
            settings.PROJECTED_MAGNITUDE_GUARD_M if magnitude_guard is None else magnitude_guard
        )

    def resolve(
        self,
        projected: Dict[str, PlanarPoint3],
        selection: ProjectionSelection,
        diagnostics: Diagnostics,
        explicit_origin: Optional[OriginConfig] = None,
        override_origin: Optional[OriginConfig] = None,
    ) -> NormalizationOrigin:
        """
        Args:
            projected: planar (E, N, U) per geographic node
            selection: projection used for the nodes (and for config origins)
            diagnostics: receives guard and degradation warnings
            explicit_origin: static configuration origin
            override_origin: origin loaded by the user during the session
        """
        self.check_plausibility(projected, diagnostics)

        for config, source in (
            (explicit_origin, OriginSource.EXPLICIT_CONFIG),
            (override_origin, OriginSource.USER_OVERRIDE),
        ):
            if config is None:
                continue
            check_rpy_units(config, source, diagnostics)
            origin = self._project_config_origin(config, selection, source)
            if origin is not None:
                logger.info(
                    f"📍 Origin from {source.value}: E0={origin.easting:.3f} "
                    f"N0={origin.northing:.3f} U0={origin.up:.3f}"
                )
                return origin
            diagnostics.warn(
                "origin_projection_failed",
                f"{source.value} origin ({config.latitude}, {config.longitude}) did not project; trying next source",
            )

        origin = centroid_origin(projected)
        if origin.is_identity:
            diagnostics.warn(
                "origin_unresolved",
                "No geographic node could be projected; rendering raw projected coordinates",
            )
            return origin
        logger.info(
            f"📍 Origin from centroid of {len(projected)} nodes: E0={origin.easting:.3f} "
            f"N0={origin.northing:.3f} U0={origin.up:.3f}"
        )
        return origin

    def _project_config_origin(
        self,
        config: OriginConfig,
        selection: ProjectionSelection,
        source: OriginSource,
    ) -> Optional[NormalizationOrigin]:
        spec = selection.spec if selection.using_projection else None
        e, n = self.adapter.project(spec, config.longitude, config.latitude)
        if not (math.isfinite(e) and math.isfinite(n) and math.isfinite(config.elevation)):
            return None
        return NormalizationOrigin(easting=e, northing=n, up=float(config.elevation), source=source)

    def check_plausibility(self, projected: Dict[str, PlanarPoint3], diagnostics: Diagnostics) -> float:
        """
        Max absolute projected easting/northing. Above the guard this points to a
        wrong zone choice or un-normalized geographic input; reported, never corrected.
        """
        if not projected:
            return 0.0
        max_abs = max(max(abs(e), abs(n)) for e, n, _ in projected.values())
        if max_abs > self.magnitude_guard:
            diagnostics.warn(
                "projected_magnitude",
                f"Max projected |E|/|N| {max_abs:.1f} m exceeds {self.magnitude_guard:.1f} m; "
                f"check projector zone/EPSG",
            )
        return max_abs


def centroid_origin(projected: Dict[str, PlanarPoint3]) -> NormalizationOrigin:
    """Arithmetic mean of projected triples; identity when nothing projected."""
    if not projected:
        return IDENTITY_ORIGIN
    count = len(projected)
    # fsum keeps the mean independent of node order
    easting = math.fsum(p[0] for p in projected.values()) / count
    northing = math.fsum(p[1] for p in projected.values()) / count
    up = math.fsum(p[2] for p in projected.values()) / count
    return NormalizationOrigin(
        easting=easting,
        northing=northing,
        up=up,
        source=OriginSource.CENTROID_FALLBACK,
    )


def check_rpy_units(config: OriginConfig, source: OriginSource, diagnostics: Diagnostics) -> bool:
    """Flag roll/pitch/yaw outside ±2π (likely degrees). Returns True when flagged."""
    suspicious = {
        name: value
        for name, value in (("roll", config.roll), ("pitch", config.pitch), ("yaw", config.yaw))
        if abs(value) > FULL_TURN
    }
    if suspicious:
        listed = ", ".join(f"{k}={v}" for k, v in suspicious.items())
        diagnostics.warn(
            "rpy_unit_mismatch",
            f"{source.value} origin angles look like degrees, expected radians ({listed})",
        )
        return True
    return False
