"""
Frame Normalization Models
Plain records shared by the classification, projection, normalization,
alignment, indicator and bounds stages.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

# (X, Z_up, Y_signed)
RenderPoint3 = Tuple[float, float, float]
# Planar (E, N, U) or local (x, y, z) before the axis remap
PlanarPoint3 = Tuple[float, float, float]


class CoordinateFlavor(str, Enum):
    """Dataset-level coordinate flavor derived from the node variants observed."""

    ALL_LOCAL = "all_local"
    GEOGRAPHIC = "geographic"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class OriginSource(str, Enum):
    EXPLICIT_CONFIG = "explicit-config"
    USER_OVERRIDE = "user-override"
    CENTROID_FALLBACK = "centroid-fallback"
    NONE = "none"


class ProjectionMode(str, Enum):
    AUTO = "auto"
    IDENTITY = "identity"
    PROJ = "proj"


# ----- raw records (what the parsers hand over) -----

@dataclass(frozen=True)
class NodeRecord:
    node_id: str
    tags: Dict[str, str] = field(default_factory=dict)
    lat: Optional[Any] = None
    lon: Optional[Any] = None


@dataclass(frozen=True)
class WayRecord:
    way_id: str
    node_refs: Tuple[str, ...] = ()
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorMapRecord:
    nodes: Tuple[NodeRecord, ...] = ()
    ways: Tuple[WayRecord, ...] = ()
    # <node> elements without an id; they can never be referenced by a way
    unnamed_nodes: int = 0


@dataclass(frozen=True)
class ProjectorInfo:
    """Projector metadata; absence or parse failure means MGRS."""

    projector_type: str = "MGRS"
    mgrs_grid: Optional[str] = None
    vertical_datum: Optional[str] = None

    @property
    def is_mgrs(self) -> bool:
        return self.projector_type.strip().upper() == "MGRS"

    @property
    def is_local(self) -> bool:
        return self.projector_type.strip().lower() == "local"


@dataclass(frozen=True)
class OriginConfig:
    """Geographic map origin. Angles are radians."""

    latitude: float
    longitude: float
    elevation: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(frozen=True)
class PointCloudRecord:
    """Raw point positions (N, 3) in the cloud's native frame, optional RGB in [0, 1]."""

    positions: np.ndarray
    colors: Optional[np.ndarray] = None

    @property
    def count(self) -> int:
        return int(self.positions.shape[0])


# ----- classified nodes -----

@dataclass(frozen=True)
class LocalCoord:
    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class GeographicCoord:
    lat: float
    lon: float
    z: float = 0.0
    mgrs_code: Optional[str] = None


@dataclass(frozen=True)
class MapNode:
    node_id: str
    coord: Union[LocalCoord, GeographicCoord]

    @property
    def is_local(self) -> bool:
        return isinstance(self.coord, LocalCoord)


@dataclass(frozen=True)
class GeographicSample:
    """First geographic node seen; feeds UTM zone derivation."""

    lat: float
    lon: float
    mgrs_code: Optional[str] = None


@dataclass(frozen=True)
class ClassificationResult:
    nodes: Dict[str, MapNode]
    has_local: bool
    has_geographic: bool
    sample: Optional[GeographicSample] = None
    dropped_node_ids: Tuple[str, ...] = ()

    @property
    def flavor(self) -> CoordinateFlavor:
        if self.has_local and self.has_geographic:
            return CoordinateFlavor.MIXED
        if self.has_local:
            return CoordinateFlavor.ALL_LOCAL
        if self.has_geographic:
            return CoordinateFlavor.GEOGRAPHIC
        return CoordinateFlavor.UNKNOWN


# ----- projection & origin -----

@dataclass(frozen=True)
class ProjectionSpec:
    source: str
    target: str


@dataclass(frozen=True)
class ProjectionSelection:
    using_projection: bool
    spec: Optional[ProjectionSpec] = None

    @property
    def identifier(self) -> Optional[str]:
        return self.spec.target if self.spec else None


IDENTITY_SELECTION = ProjectionSelection(using_projection=False)


@dataclass(frozen=True)
class NormalizationOrigin:
    easting: float = 0.0
    northing: float = 0.0
    up: float = 0.0
    source: OriginSource = OriginSource.NONE

    @property
    def is_identity(self) -> bool:
        return self.source == OriginSource.NONE

    def as_tuple(self) -> PlanarPoint3:
        return (self.easting, self.northing, self.up)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "easting": self.easting,
            "northing": self.northing,
            "up": self.up,
            "source": self.source.value,
        }


IDENTITY_ORIGIN = NormalizationOrigin()


# ----- render geometry -----

@dataclass(frozen=True)
class Polyline:
    way_id: str
    points: Tuple[RenderPoint3, ...]


@dataclass(frozen=True)
class DirectionIndicator:
    way_id: str
    position: RenderPoint3
    direction: RenderPoint3
    quaternion: Tuple[float, float, float, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "way_id": self.way_id,
            "position": list(self.position),
            "direction": list(self.direction),
            "quaternion": list(self.quaternion),
        }


@dataclass(frozen=True)
class AlignmentOffset:
    """Native-frame translation applied to the secondary layer."""

    dx: float = 0.0
    dy: float = 0.0
    dz: float = 0.0
    applied: bool = False
    centroid_magnitude: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dx": self.dx,
            "dy": self.dy,
            "dz": self.dz,
            "applied": self.applied,
            "centroid_magnitude": self.centroid_magnitude,
        }


NO_OFFSET = AlignmentOffset()


@dataclass(frozen=True)
class CameraFit:
    target: RenderPoint3
    position: RenderPoint3
    distance: float
    near: float
    far: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": list(self.target),
            "position": list(self.position),
            "distance": self.distance,
            "near": self.near,
            "far": self.far,
        }


@dataclass(frozen=True)
class BoundsFit:
    center: Optional[RenderPoint3] = None
    radius: float = 0.0
    guard_triggered: bool = False
    camera: Optional[CameraFit] = None

    @property
    def is_empty(self) -> bool:
        return self.center is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "center": list(self.center) if self.center is not None else None,
            "radius": self.radius,
            "guard_triggered": self.guard_triggered,
            "camera": self.camera.to_dict() if self.camera else None,
        }


# ----- diagnostics -----

@dataclass
class Diagnostics:
    """
    Per-sequence diagnostics surfaced to the UI.

    Guard trips never correct anything; they only land here (and in the log).
    """

    coordinate_flavor: Optional[CoordinateFlavor] = None
    projection_id: Optional[str] = None
    origin: Optional[NormalizationOrigin] = None
    bounds_radius: Optional[float] = None
    dropped_nodes: int = 0
    unresolved_refs: int = 0
    warnings: List[Dict[str, str]] = field(default_factory=list)

    def warn(self, code: str, message: str) -> None:
        logger.warning(f"⚠️ {code}: {message}")
        self.warnings.append({"code": code, "message": message})

    def has_warning(self, code: str) -> bool:
        return any(w["code"] == code for w in self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coordinate_flavor": self.coordinate_flavor.value if self.coordinate_flavor else None,
            "projection_id": self.projection_id,
            "origin": self.origin.to_dict() if self.origin else None,
            "bounds_radius": self.bounds_radius,
            "dropped_nodes": self.dropped_nodes,
            "unresolved_refs": self.unresolved_refs,
            "warnings": list(self.warnings),
        }
