"""
Frame Normalizer
Projects nodes into planar meters, subtracts the normalization origin and remaps
axes into render space.

Render-space convention, applied identically to vector vertices, point-cloud
points and indicator anchors:

    render X        = planar E  (local x)
    render Z_up     = elevation (local z)
    render Y_signed = -planar N when flip_y else +planar N  (local y likewise)
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Tuple

import numpy as np

from pipelines.mapping.projection.transformer import ProjectionAdapter

from .models import (
    ClassificationResult,
    Diagnostics,
    GeographicCoord,
    NormalizationOrigin,
    PlanarPoint3,
    Polyline,
    ProjectionSelection,
    RenderPoint3,
    WayRecord,
)

logger = logging.getLogger(__name__)


def remap_axes(x: float, y: float, z: float, flip_y: bool) -> RenderPoint3:
    return (x, z, -y if flip_y else y)


def unmap_axes(point: RenderPoint3, flip_y: bool) -> PlanarPoint3:
    """Inverse of remap_axes."""
    rx, rz_up, ry = point
    return (rx, -ry if flip_y else ry, rz_up)


def remap_array(positions: np.ndarray, flip_y: bool) -> np.ndarray:
    """(N, 3) native/planar array -> (N, 3) render array."""
    if positions.size == 0:
        return np.empty((0, 3), dtype=np.float64)
    y = positions[:, 1]
    return np.column_stack((positions[:, 0], positions[:, 2], -y if flip_y else y))


class FrameNormalizer:
    """
    Turns classified nodes into render-space points.

    Geographic nodes go through the ProjectionAdapter and have the origin
    subtracted; local nodes are used as-is. Nodes whose projection is not
    finite are excluded.
    """

    def __init__(self, adapter: ProjectionAdapter):
        self.adapter = adapter

    def project_nodes(
        self,
        classification: ClassificationResult,
        selection: ProjectionSelection,
    ) -> Dict[str, PlanarPoint3]:
        """
        Planar (E, N, U) per geographic node id under the selected projection.
        Without a projection the raw (lon, lat, z) triple is passed through.
        """
        ids: List[str] = []
        lons: List[float] = []
        lats: List[float] = []
        zs: List[float] = []
        for node_id, node in classification.nodes.items():
            if isinstance(node.coord, GeographicCoord):
                ids.append(node_id)
                lons.append(node.coord.lon)
                lats.append(node.coord.lat)
                zs.append(node.coord.z)

        if not ids:
            return {}

        spec = selection.spec if selection.using_projection else None
        eastings, northings = self.adapter.project_many(spec, lons, lats)

        projected: Dict[str, PlanarPoint3] = {}
        for node_id, e, n, z in zip(ids, eastings, northings, zs):
            if math.isfinite(e) and math.isfinite(n):
                projected[node_id] = (float(e), float(n), float(z))
        failed = len(ids) - len(projected)
        if failed:
            logger.warning(f"🧭 {failed}/{len(ids)} geographic nodes did not project to finite coordinates")
        return projected

    def normalize(
        self,
        classification: ClassificationResult,
        projected: Dict[str, PlanarPoint3],
        origin: NormalizationOrigin,
        flip_y: bool,
    ) -> Dict[str, RenderPoint3]:
        """Render coordinates for every resolvable node."""
        e0, n0, u0 = origin.as_tuple()
        render: Dict[str, RenderPoint3] = {}
        for node_id, node in classification.nodes.items():
            if node.is_local:
                c = node.coord
                render[node_id] = remap_axes(c.x, c.y, c.z, flip_y)
                continue
            planar = projected.get(node_id)
            if planar is None:
                continue
            e, n, u = planar
            render[node_id] = remap_axes(e - e0, n - n0, u - u0, flip_y)
        return render

    def build_polylines(
        self,
        ways: Iterable[WayRecord],
        render_points: Dict[str, RenderPoint3],
        diagnostics: Diagnostics,
    ) -> List[Polyline]:
        """
        Ordered polylines, in way order. Missing references are skipped; ways with
        fewer than two resolvable points contribute nothing.
        """
        polylines: List[Polyline] = []
        unresolved = 0
        skipped_ways = 0
        for way in ways:
            points: List[RenderPoint3] = []
            for ref in way.node_refs:
                point = render_points.get(ref)
                if point is None:
                    unresolved += 1
                    continue
                points.append(point)
            if len(points) < 2:
                skipped_ways += 1
                continue
            polylines.append(Polyline(way_id=way.way_id, points=tuple(points)))

        diagnostics.unresolved_refs += unresolved
        if unresolved:
            diagnostics.warn("unresolved_refs", f"{unresolved} way node references could not be resolved")
        logger.info(f"✅ Built {len(polylines)} polylines ({skipped_ways} ways skipped)")
        return polylines


def denormalize(point: RenderPoint3, origin: NormalizationOrigin, flip_y: bool) -> Tuple[float, float, float]:
    """Render point back to projected planar (E, N, U)."""
    e, n, u = unmap_axes(point, flip_y)
    return (e + origin.easting, n + origin.northing, u + origin.up)
