"""
Load Coordinator
================

Runs load sequences against the frame pipeline and owns the committed scene.

Every top-level operation (load, config change, layer clear) takes a new
sequence token. After each suspension point the sequence re-checks that its
token is still the latest; a stale sequence stops without touching shared
state. Geometry is always recomputed from the full raw inputs plus config, and
committed in one step.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from config import settings
from pipelines.mapping.frame.cloud_sampling import density_ratio, sample_density
from pipelines.mapping.frame.errors import ProjectionError, SequenceSuperseded
from pipelines.mapping.frame.models import OriginConfig, ProjectionMode, ProjectionSpec
from pipelines.mapping.frame.pipeline import FramePipeline, SceneConfig, SceneInputs
from pipelines.mapping.sources import (
    MetadataParseError,
    PointCloudParseError,
    VectorMapParseError,
    parse_origin_config,
    parse_osm,
    parse_pcd,
    parse_projector_info_or_default,
)

from .event_bus import SceneEventBus
from .layer_store import LAYER_CLOUD, LAYER_INDICATORS, LAYER_VECTOR, LAYERS, LayerStore
from .sources import SourceFetchError, fetch_bytes

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[bytes]]

# Config keys that only affect how the committed scene is displayed
DISPLAY_KEYS = frozenset({"point_size", "density_percent", "sample_seed"})


@dataclass(frozen=True)
class LoadWarning:
    code: str
    message: str


def settings_origin() -> Optional[OriginConfig]:
    """Explicit origin from MAP_ORIGIN_* environment settings, if configured."""
    if settings.MAP_ORIGIN_LATITUDE is None or settings.MAP_ORIGIN_LONGITUDE is None:
        return None
    return OriginConfig(
        latitude=settings.MAP_ORIGIN_LATITUDE,
        longitude=settings.MAP_ORIGIN_LONGITUDE,
        elevation=settings.MAP_ORIGIN_ELEVATION,
        roll=settings.MAP_ORIGIN_ROLL,
        pitch=settings.MAP_ORIGIN_PITCH,
        yaw=settings.MAP_ORIGIN_YAW,
    )


class LoadCoordinator:
    def __init__(
        self,
        pipeline: Optional[FramePipeline] = None,
        store: Optional[LayerStore] = None,
        event_bus: Optional[SceneEventBus] = None,
        fetcher: Optional[Fetcher] = None,
        config: Optional[SceneConfig] = None,
    ):
        self.pipeline = pipeline or FramePipeline()
        self.store = store or LayerStore()
        self.event_bus = event_bus or SceneEventBus()
        self.fetcher: Fetcher = fetcher or fetch_bytes
        self._config = config or SceneConfig()
        self._inputs = SceneInputs(explicit_origin=settings_origin())
        self._input_warnings: Dict[str, LoadWarning] = {}
        # Sources requested by loads that have not committed or failed yet
        self._pending: Dict[str, Any] = {}
        self._token = 0

    # ----- sequence tokens -----

    @property
    def token(self) -> int:
        return self._token

    @property
    def config(self) -> SceneConfig:
        return self._config

    @property
    def inputs(self) -> SceneInputs:
        return self._inputs

    def _next_token(self) -> int:
        self._token += 1
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token

    async def _status(self, token: int, status: str) -> bool:
        """Set and publish a status for a live sequence. False when superseded."""
        if not self.is_current(token):
            return False
        self.store.set_status(status)
        await self.event_bus.publish_status(token, status)
        return self.is_current(token)

    def _superseded(self, token: int, stage: str) -> Dict[str, Any]:
        logger.info(f"⏹️ Sequence {token} superseded during {stage} (current={self._token})")
        return {"success": False, "superseded": True, "token": token}

    async def _fail(self, token: int, status: str, error: str) -> Dict[str, Any]:
        if not self.is_current(token):
            return self._superseded(token, "failure report")
        logger.error(f"❌ {error}")
        self._pending = {}
        await self._status(token, status)
        return {"success": False, "superseded": False, "token": token, "error": error}

    # ----- loads -----

    async def load(
        self,
        vector_source: Optional[str] = None,
        pointcloud_source: Optional[str] = None,
        projector_source: Optional[str] = None,
        origin_source: Optional[str] = None,
        origin_override: Optional[OriginConfig] = None,
        explicit_origin_source: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Load any combination of sources, then recompute and commit the scene.

        `origin_source` and `origin_override` set the user override origin;
        `explicit_origin_source` replaces the configured map origin (startup
        autoload). Requested sources stay pending until a sequence commits or
        fails, so a later config change or clear re-applies them.

        Vector or point cloud fetch/parse failures abort the sequence and keep
        the previous inputs. Projector and origin failures degrade to defaults
        with a warning.
        """
        token = self._next_token()
        requested = {
            "vector_source": vector_source,
            "pointcloud_source": pointcloud_source,
            "projector_source": projector_source,
            "origin_source": origin_source,
            "origin_override": origin_override,
            "explicit_origin_source": explicit_origin_source,
        }
        self._pending.update({key: value for key, value in requested.items() if value})
        logger.info(
            f"🚚 Load sequence {token}: vector={vector_source} cloud={pointcloud_source} "
            f"projector={projector_source} origin={origin_source or explicit_origin_source}"
        )
        return await self._run_sequence(token, self._inputs, "Scene updated.")

    async def _read_origin(self, source: str) -> Tuple[Optional[OriginConfig], Optional[str]]:
        try:
            return parse_origin_config(await self.fetcher(source)), None
        except (SourceFetchError, MetadataParseError) as e:
            return None, str(e)

    async def _run_sequence(self, token: int, inputs: SceneInputs, default_status: str) -> Dict[str, Any]:
        """Fetch and apply every pending source on top of `inputs`, then recompute."""
        sources = dict(self._pending)
        warnings = dict(self._input_warnings)
        messages: List[str] = []
        vector_source = sources.get("vector_source")
        pointcloud_source = sources.get("pointcloud_source")

        # The layers being replaced are cleared before anything suspends
        if vector_source:
            self.store.clear_layer(LAYER_VECTOR)
        if pointcloud_source:
            self.store.clear_layer(LAYER_CLOUD)

        if vector_source:
            if not await self._status(token, f"Loading vector map: {vector_source}"):
                return self._superseded(token, "vector status")
            try:
                payload = await self.fetcher(vector_source)
            except SourceFetchError as e:
                return await self._fail(token, f"Failed to load vector map: {e}", str(e))
            if not self.is_current(token):
                return self._superseded(token, "vector fetch")
            try:
                inputs = replace(inputs, vector=parse_osm(payload))
            except VectorMapParseError as e:
                return await self._fail(token, f"Failed to parse vector map: {e}", str(e))
            messages.append("Vector map loaded.")

        projector_source = sources.get("projector_source")
        if projector_source:
            try:
                payload = await self.fetcher(projector_source)
            except SourceFetchError as e:
                payload, error = None, str(e)
            else:
                error = None
            if not self.is_current(token):
                return self._superseded(token, "projector fetch")
            projector, parse_error = parse_projector_info_or_default(payload)
            error = error or parse_error
            inputs = replace(inputs, projector=projector)
            warnings.pop("projector", None)
            if error:
                warnings["projector"] = LoadWarning(
                    "projector_metadata_invalid",
                    f"Projector metadata unusable ({error}); assuming MGRS",
                )

        explicit_source = sources.get("explicit_origin_source")
        if explicit_source:
            origin, error = await self._read_origin(explicit_source)
            if not self.is_current(token):
                return self._superseded(token, "map origin fetch")
            warnings.pop("explicit_origin", None)
            if error:
                origin = settings_origin()
                warnings["explicit_origin"] = LoadWarning(
                    "origin_config_invalid",
                    f"Map origin config unusable ({error}); using configured origin",
                )
            inputs = replace(inputs, explicit_origin=origin)

        origin_source = sources.get("origin_source")
        if origin_source:
            origin, error = await self._read_origin(origin_source)
            if not self.is_current(token):
                return self._superseded(token, "origin fetch")
            warnings.pop("origin", None)
            if error:
                warnings["origin"] = LoadWarning(
                    "origin_config_invalid",
                    f"Origin file unusable ({error}); falling back",
                )
            inputs = replace(inputs, override_origin=origin)

        if sources.get("origin_override") is not None:
            inputs = replace(inputs, override_origin=sources["origin_override"])

        if pointcloud_source:
            if not await self._status(token, f"Loading point cloud: {pointcloud_source}"):
                return self._superseded(token, "cloud status")
            try:
                payload = await self.fetcher(pointcloud_source)
            except SourceFetchError as e:
                return await self._fail(token, f"Failed to load point cloud: {e}", str(e))
            if not self.is_current(token):
                return self._superseded(token, "cloud fetch")
            try:
                inputs = replace(inputs, cloud=parse_pcd(payload))
            except PointCloudParseError as e:
                return await self._fail(token, f"Failed to parse point cloud: {e}", str(e))
            messages.append("Point cloud loaded.")

        status = " ".join(messages) or default_status
        return await self._recompute(token, inputs, self._config, warnings, status)

    async def _recompute(
        self,
        token: int,
        inputs: SceneInputs,
        config: SceneConfig,
        warnings: Dict[str, LoadWarning],
        status: str,
    ) -> Dict[str, Any]:
        try:
            frame = await self.pipeline.build(
                inputs,
                config,
                is_current=lambda: self.is_current(token),
                token=token,
            )
        except SequenceSuperseded:
            return self._superseded(token, "indicator placement")
        except ProjectionError as e:
            return await self._fail(token, f"Projection failed: {e}", str(e))

        if not self.is_current(token):
            return self._superseded(token, "build")

        for warning in warnings.values():
            frame.diagnostics.warn(warning.code, warning.message)

        self._inputs = inputs
        self._input_warnings = warnings
        self._pending = {}
        self.store.commit(frame, token, status)
        await self.event_bus.publish_status(
            token,
            status,
            committed=True,
            warnings=[w["code"] for w in frame.diagnostics.warnings],
        )
        return {
            "success": True,
            "superseded": False,
            "token": token,
            "status": status,
            "diagnostics": frame.diagnostics.to_dict(),
        }

    # ----- config and layers -----

    async def update_config(self, **changes) -> Dict[str, Any]:
        """
        Apply config changes. Display-only changes are picked up at serialization
        time; anything else recomputes the scene under a new token, re-applying
        any sources an unfinished load asked for.

        A CRS pair that cannot be built is rejected and the config is left as is.
        """
        changes = {k: v for k, v in changes.items() if v is not None}
        candidate = self._config.updated(**changes)
        if not changes or set(changes) <= DISPLAY_KEYS:
            self._config = candidate
            logger.info(f"🎛️ Display config updated: {changes}")
            return {"success": True, "superseded": False, "token": self._token, "config": self._config.to_dict()}

        if candidate.projection_mode == ProjectionMode.PROJ:
            try:
                self.pipeline.adapter.validate(ProjectionSpec(source=candidate.proj_from, target=candidate.proj_to))
            except ProjectionError as e:
                logger.error(f"❌ Rejected config change {changes}: {e}")
                return {
                    "success": False,
                    "superseded": False,
                    "token": self._token,
                    "error": str(e),
                    "config": self._config.to_dict(),
                }

        self._config = candidate
        token = self._next_token()
        logger.info(f"🎛️ Config change {changes} → sequence {token}")
        if not await self._status(token, "Updating scene..."):
            return self._superseded(token, "config status")
        result = await self._run_sequence(token, self._inputs, "Scene updated.")
        result["config"] = self._config.to_dict()
        return result

    def set_visibility(self, layer: str, visible: bool) -> Dict[str, bool]:
        """Flag only; no geometry is recomputed."""
        if layer not in LAYERS:
            raise KeyError(layer)
        self.store.set_visibility(layer, visible)
        logger.info(f"👁️ {layer} visible={visible}")
        return dict(self.store.state.visibility)

    async def clear_layer(self, layer: str) -> Dict[str, Any]:
        """
        Drop a layer's raw input and recompute. Clearing the cloud also clears
        its alignment offset; clearing indicators turns placement off. A pending
        load of the cleared layer is dropped too.
        """
        if layer not in LAYERS:
            raise KeyError(layer)
        token = self._next_token()
        inputs = self._inputs
        if layer == LAYER_VECTOR:
            inputs = replace(inputs, vector=None)
            self._pending.pop("vector_source", None)
        elif layer == LAYER_CLOUD:
            inputs = replace(inputs, cloud=None)
            self._pending.pop("pointcloud_source", None)
        else:
            self._config = self._config.updated(show_directions=False)
        self.store.clear_layer(layer)
        return await self._run_sequence(token, inputs, f"Cleared {layer} layer.")

    # ----- serialization -----

    def snapshot(self) -> Dict[str, Any]:
        """Status, diagnostics, camera fit and per-layer summaries."""
        store = self.store
        frame = store.frame
        vector = frame.vector if frame is not None else None
        cloud = frame.cloud if frame is not None else None
        indicators = frame.indicators if frame is not None else ()

        displayed = 0
        if cloud is not None:
            displayed, _ = self._displayed_cloud_size(cloud.count)

        return {
            "status": store.status,
            "token": self._token,
            "committed_token": store.state.committed_token,
            "config": self._config.to_dict(),
            "visibility": dict(store.state.visibility),
            "diagnostics": store.diagnostics().to_dict(),
            "camera": store.camera.to_dict() if store.camera else None,
            "bounds": store.bounds().to_dict(),
            "alignment_offset": store.alignment_offset().to_dict(),
            "layers": {
                LAYER_VECTOR: {
                    "loaded": vector is not None,
                    "nodes": vector.node_count if vector else 0,
                    "polylines": len(vector.polylines) if vector else 0,
                },
                LAYER_CLOUD: {
                    "loaded": cloud is not None,
                    "points": cloud.count if cloud else 0,
                    "displayed_points": displayed,
                },
                LAYER_INDICATORS: {
                    "loaded": bool(indicators),
                    "count": len(indicators),
                },
            },
        }

    def _displayed_cloud_size(self, total: int) -> Tuple[int, float]:
        ratio = density_ratio(self._config.density_percent)
        return (total if ratio >= 1.0 else int(math.floor(total * ratio))), ratio

    def layer_geometry(self, layer: str) -> Dict[str, Any]:
        """Renderable geometry for one layer in render space."""
        if layer not in LAYERS:
            raise KeyError(layer)
        frame = self.store.frame
        result: Dict[str, Any] = {"layer": layer, "visible": self.store.is_visible(layer)}

        if layer == LAYER_VECTOR:
            polylines = frame.vector.polylines if frame is not None and frame.vector is not None else ()
            result["polylines"] = [
                {"way_id": line.way_id, "points": [list(p) for p in line.points]} for line in polylines
            ]
        elif layer == LAYER_CLOUD:
            cloud = frame.cloud if frame is not None else None
            result["point_size"] = self._config.point_size
            result["density_percent"] = self._config.density_percent
            if cloud is None:
                result.update({"total": 0, "count": 0, "positions": [], "colors": None})
            else:
                positions, colors = sample_density(
                    cloud.positions, cloud.colors, self._config.density_percent, self._config.sample_seed
                )
                result.update(
                    {
                        "total": cloud.count,
                        "count": int(positions.shape[0]),
                        "positions": positions.tolist(),
                        "colors": colors.tolist() if colors is not None else None,
                    }
                )
        else:
            indicators = frame.indicators if frame is not None else ()
            result["indicators"] = [indicator.to_dict() for indicator in indicators]
        return result
