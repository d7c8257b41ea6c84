"""
Frame Pipeline
Main orchestrator for turning raw map records into render geometry.

    classification → projection selection → origin resolution → normalization
    → alignment → indicator placement → bounds fit

`FramePipeline.build` is a pure function of (SceneInputs, SceneConfig): it never
keeps state between calls, so any input change is handled by calling it again.
Only indicator placement suspends.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import Callable, List, Optional, Tuple

import numpy as np

from config import settings
from pipelines.mapping.projection.transformer import ProjectionAdapter
from pipelines.mapping.projection.utm_manager import UTMManager

from .alignment import AlignedCloud, AlignmentStage
from .arrows import DirectionArrowPlacer
from .bounds import BoundsFitter
from .classifier import classify_nodes
from .cloud_sampling import clamp_density_percent, clamp_point_size
from .models import (
    IDENTITY_ORIGIN,
    IDENTITY_SELECTION,
    BoundsFit,
    ClassificationResult,
    CoordinateFlavor,
    Diagnostics,
    DirectionIndicator,
    NormalizationOrigin,
    OriginConfig,
    PointCloudRecord,
    Polyline,
    ProjectionMode,
    ProjectionSelection,
    ProjectionSpec,
    ProjectorInfo,
    VectorMapRecord,
)
from .normalizer import FrameNormalizer
from .origin_resolver import OriginResolver

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"


def _default_projection_mode() -> ProjectionMode:
    try:
        return ProjectionMode(settings.DEFAULT_PROJECTION_MODE.strip().lower())
    except ValueError:
        logger.warning(f"⚠️ Unknown DEFAULT_PROJECTION_MODE {settings.DEFAULT_PROJECTION_MODE!r}, using auto")
        return ProjectionMode.AUTO


@dataclass(frozen=True)
class SceneConfig:
    projection_mode: ProjectionMode = _default_projection_mode()
    proj_from: str = settings.DEFAULT_PROJ_FROM
    proj_to: str = settings.DEFAULT_PROJ_TO
    flip_y: bool = settings.VECTOR_FLIP_Y
    show_directions: bool = False
    point_size: float = settings.DEFAULT_POINT_SIZE
    density_percent: float = settings.DEFAULT_DENSITY_PERCENT
    sample_seed: int = settings.DEFAULT_SAMPLE_SEED

    def updated(self, **changes) -> "SceneConfig":
        """Copy with changes applied; display values are clamped."""
        if "projection_mode" in changes and not isinstance(changes["projection_mode"], ProjectionMode):
            changes["projection_mode"] = ProjectionMode(changes["projection_mode"])
        if "point_size" in changes:
            changes["point_size"] = clamp_point_size(changes["point_size"])
        if "density_percent" in changes:
            changes["density_percent"] = clamp_density_percent(changes["density_percent"])
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "projection_mode": self.projection_mode.value,
            "proj_from": self.proj_from,
            "proj_to": self.proj_to,
            "flip_y": self.flip_y,
            "show_directions": self.show_directions,
            "point_size": self.point_size,
            "density_percent": self.density_percent,
            "sample_seed": self.sample_seed,
        }


@dataclass(frozen=True)
class SceneInputs:
    """Raw records for one scene; replaced wholesale, never mutated."""

    vector: Optional[VectorMapRecord] = None
    cloud: Optional[PointCloudRecord] = None
    projector: Optional[ProjectorInfo] = None
    explicit_origin: Optional[OriginConfig] = None
    override_origin: Optional[OriginConfig] = None


@dataclass(frozen=True)
class VectorFrame:
    flavor: CoordinateFlavor
    selection: ProjectionSelection
    origin: NormalizationOrigin
    polylines: Tuple[Polyline, ...]
    node_count: int = 0

    def vertex_array(self) -> np.ndarray:
        if not self.polylines:
            return np.empty((0, 3), dtype=np.float64)
        return np.asarray([p for line in self.polylines for p in line.points], dtype=np.float64)


@dataclass(frozen=True)
class SceneFrame:
    vector: Optional[VectorFrame]
    cloud: Optional[AlignedCloud]
    indicators: Tuple[DirectionIndicator, ...]
    bounds: BoundsFit
    diagnostics: Diagnostics
    config: SceneConfig = field(default_factory=SceneConfig)


class FramePipeline:
    """
    Pipeline for coordinate classification, projection and normalization
    """

    def __init__(
        self,
        adapter: Optional[ProjectionAdapter] = None,
        utm_manager: Optional[UTMManager] = None,
        origin_resolver: Optional[OriginResolver] = None,
        alignment: Optional[AlignmentStage] = None,
        arrow_placer: Optional[DirectionArrowPlacer] = None,
        bounds_fitter: Optional[BoundsFitter] = None,
    ):
        self.adapter = adapter or ProjectionAdapter()
        self.utm_manager = utm_manager or UTMManager()
        self.normalizer = FrameNormalizer(self.adapter)
        self.origin_resolver = origin_resolver or OriginResolver(self.adapter)
        self.alignment = alignment or AlignmentStage()
        self.arrow_placer = arrow_placer or DirectionArrowPlacer()
        self.bounds_fitter = bounds_fitter or BoundsFitter()

    def select_projection(
        self,
        classification: ClassificationResult,
        projector: Optional[ProjectorInfo],
        config: SceneConfig,
        diagnostics: Diagnostics,
    ) -> ProjectionSelection:
        """Resolved once per load."""
        if config.projection_mode == ProjectionMode.IDENTITY:
            if classification.has_geographic:
                diagnostics.warn(
                    "projector_mismatch",
                    "Projection disabled; geographic nodes are rendered as raw degrees",
                )
            return IDENTITY_SELECTION

        if config.projection_mode == ProjectionMode.PROJ:
            return ProjectionSelection(
                using_projection=True,
                spec=ProjectionSpec(source=config.proj_from, target=config.proj_to),
            )

        sample = classification.sample
        if not classification.has_geographic or sample is None:
            return IDENTITY_SELECTION

        projector = projector or ProjectorInfo()
        if projector.is_local and not classification.has_local:
            diagnostics.warn(
                "projector_mismatch",
                "Projector metadata says Local but the map only carries lat/lon; projecting to UTM",
            )
        grid_code = sample.mgrs_code
        if not grid_code and projector.is_mgrs:
            grid_code = projector.mgrs_grid
        target = self.utm_manager.resolve_epsg(sample.lat, sample.lon, grid_code)
        return ProjectionSelection(using_projection=True, spec=ProjectionSpec(source=GEOGRAPHIC_CRS, target=target))

    def build_vector_frame(
        self,
        inputs: SceneInputs,
        config: SceneConfig,
        diagnostics: Diagnostics,
    ) -> Optional[VectorFrame]:
        """
        Classification → projection → origin → normalization for the vector layer.
        Raises ProjectionError when the selected CRS pair is unusable.
        """
        if inputs.vector is None:
            return None

        classification = classify_nodes(inputs.vector.nodes)
        flavor = classification.flavor
        diagnostics.coordinate_flavor = flavor
        dropped = len(classification.dropped_node_ids) + inputs.vector.unnamed_nodes
        diagnostics.dropped_nodes = dropped
        if dropped:
            diagnostics.warn(
                "unresolved_nodes",
                f"{dropped} nodes carry no id or neither local tags nor lat/lon",
            )
        if flavor == CoordinateFlavor.MIXED:
            diagnostics.warn(
                "mixed_flavor",
                "Map mixes local and geographic nodes; geographic nodes are not origin-normalized",
            )

        selection = self.select_projection(classification, inputs.projector, config, diagnostics)
        self.adapter.validate(selection.spec)
        diagnostics.projection_id = selection.identifier

        projected = self.normalizer.project_nodes(classification, selection)

        origin = IDENTITY_ORIGIN
        if flavor == CoordinateFlavor.GEOGRAPHIC:
            origin = self.origin_resolver.resolve(
                projected,
                selection,
                diagnostics,
                explicit_origin=inputs.explicit_origin,
                override_origin=inputs.override_origin,
            )
        elif projected:
            self.origin_resolver.check_plausibility(projected, diagnostics)
        diagnostics.origin = origin

        render_points = self.normalizer.normalize(classification, projected, origin, config.flip_y)
        polylines = self.normalizer.build_polylines(inputs.vector.ways, render_points, diagnostics)

        return VectorFrame(
            flavor=flavor,
            selection=selection,
            origin=origin,
            polylines=tuple(polylines),
            node_count=len(classification.nodes),
        )

    def build_cloud_frame(
        self,
        inputs: SceneInputs,
        vector: Optional[VectorFrame],
        config: SceneConfig,
        diagnostics: Diagnostics,
    ) -> Optional[AlignedCloud]:
        if inputs.cloud is None:
            return None
        origin = vector.origin if vector is not None else None
        return self.alignment.align(inputs.cloud, origin, config.flip_y, diagnostics)

    async def build(
        self,
        inputs: SceneInputs,
        config: SceneConfig,
        is_current: Optional[Callable[[], bool]] = None,
        token: int = 0,
    ) -> SceneFrame:
        """
        Full scene for the given inputs. May raise ProjectionError or
        SequenceSuperseded; neither leaves anything behind.
        """
        diagnostics = Diagnostics()
        vector = self.build_vector_frame(inputs, config, diagnostics)
        cloud = self.build_cloud_frame(inputs, vector, config, diagnostics)

        indicators: List[DirectionIndicator] = []
        if config.show_directions and vector is not None:
            indicators = await self.arrow_placer.place(vector.polylines, is_current=is_current, token=token)

        point_sets = []
        if vector is not None:
            point_sets.append(vector.vertex_array())
        if cloud is not None:
            point_sets.append(cloud.positions)
        bounds = self.bounds_fitter.fit(point_sets, diagnostics)

        return SceneFrame(
            vector=vector,
            cloud=cloud,
            indicators=tuple(indicators),
            bounds=bounds,
            diagnostics=diagnostics,
            config=config,
        )
