"""
Coordinate Classifier
Decides, per node, whether it carries local planar or geographic coordinates
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from .models import (
    ClassificationResult,
    GeographicCoord,
    GeographicSample,
    LocalCoord,
    MapNode,
    NodeRecord,
)

logger = logging.getLogger(__name__)

LOCAL_X_TAG = "local_x"
LOCAL_Y_TAG = "local_y"
ELEVATION_TAG = "ele"
MGRS_CODE_TAG = "mgrs_code"


def parse_number(value: Any) -> Optional[float]:
    """Finite float or None. Accepts numbers and numeric strings."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def classify_node(record: NodeRecord) -> Optional[MapNode]:
    """
    Local tags take precedence over lat/lon; nodes matching neither are None.
    """
    tags = record.tags or {}
    elevation = parse_number(tags.get(ELEVATION_TAG))
    z = elevation if elevation is not None else 0.0

    x = parse_number(tags.get(LOCAL_X_TAG))
    y = parse_number(tags.get(LOCAL_Y_TAG))
    if x is not None and y is not None:
        return MapNode(record.node_id, LocalCoord(x=x, y=y, z=z))

    lat = parse_number(record.lat)
    lon = parse_number(record.lon)
    if lat is not None and lon is not None:
        mgrs_code = tags.get(MGRS_CODE_TAG) or None
        return MapNode(record.node_id, GeographicCoord(lat=lat, lon=lon, z=z, mgrs_code=mgrs_code))

    return None


def classify_nodes(records: Iterable[NodeRecord]) -> ClassificationResult:
    """
    Build the node map for a parsed vector dataset.

    Pure function of its input. Dropped nodes are reported by id so the caller
    can surface them; ways referencing them simply fail to resolve.
    """
    nodes: Dict[str, MapNode] = {}
    dropped: List[str] = []
    has_local = False
    has_geographic = False
    sample: Optional[GeographicSample] = None

    for record in records:
        node = classify_node(record)
        if node is None:
            dropped.append(record.node_id)
            continue
        nodes[node.node_id] = node
        if node.is_local:
            has_local = True
        else:
            has_geographic = True
            if sample is None:
                coord = node.coord
                sample = GeographicSample(lat=coord.lat, lon=coord.lon, mgrs_code=coord.mgrs_code)

    result = ClassificationResult(
        nodes=nodes,
        has_local=has_local,
        has_geographic=has_geographic,
        sample=sample,
        dropped_node_ids=tuple(dropped),
    )
    logger.info(
        f"🗺️ Classified {len(nodes)} nodes as {result.flavor.value} "
        f"(dropped {len(dropped)})"
    )
    return result
