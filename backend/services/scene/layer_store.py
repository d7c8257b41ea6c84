"""
Scene Layer Store
Single owner of the committed scene: layers, visibility flags and camera.

Readers only ever see a complete commit; the load coordinator swaps the whole
frame in one assignment.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import Dict, Optional

from pipelines.mapping.frame.models import (
    NO_OFFSET,
    AlignmentOffset,
    BoundsFit,
    CameraFit,
    Diagnostics,
)
from pipelines.mapping.frame.pipeline import SceneFrame

logger = logging.getLogger(__name__)

LAYER_VECTOR = "vector"
LAYER_CLOUD = "cloud"
LAYER_INDICATORS = "indicators"
LAYERS = (LAYER_VECTOR, LAYER_CLOUD, LAYER_INDICATORS)


@dataclass
class SceneState:
    frame: Optional[SceneFrame] = None
    visibility: Dict[str, bool] = field(default_factory=lambda: {name: True for name in LAYERS})
    camera: Optional[CameraFit] = None
    status: str = "Idle"
    committed_token: int = 0


class LayerStore:
    def __init__(self) -> None:
        self._state = SceneState()

    @property
    def state(self) -> SceneState:
        return self._state

    @property
    def frame(self) -> Optional[SceneFrame]:
        return self._state.frame

    @property
    def camera(self) -> Optional[CameraFit]:
        return self._state.camera

    @property
    def status(self) -> str:
        return self._state.status

    def set_status(self, status: str) -> None:
        self._state.status = status

    def commit(self, frame: SceneFrame, token: int, status: str) -> None:
        """
        Replace the scene. The camera moves only when the fit produced one; a
        guard-tripped or empty fit keeps the previous camera.
        """
        self._state.frame = frame
        self._state.committed_token = token
        self._state.status = status
        if frame.bounds.camera is not None:
            self._state.camera = frame.bounds.camera
        logger.info(f"🧱 Committed scene sequence {token}: {status}")

    def is_visible(self, layer: str) -> bool:
        return self._state.visibility.get(layer, False)

    def set_visibility(self, layer: str, visible: bool) -> None:
        if layer not in LAYERS:
            raise KeyError(layer)
        self._state.visibility[layer] = bool(visible)

    def alignment_offset(self) -> AlignmentOffset:
        frame = self._state.frame
        if frame is None or frame.cloud is None:
            return NO_OFFSET
        return frame.cloud.offset

    def diagnostics(self) -> Diagnostics:
        frame = self._state.frame
        return frame.diagnostics if frame is not None else Diagnostics()

    def bounds(self) -> BoundsFit:
        frame = self._state.frame
        return frame.bounds if frame is not None else BoundsFit()

    def clear_layer(self, layer: str) -> None:
        """Drop one layer's geometry from the committed frame, leaving the others."""
        frame = self._state.frame
        if layer not in LAYERS:
            raise KeyError(layer)
        if frame is None:
            return
        if layer == LAYER_VECTOR:
            # Indicators are derived from the vector layer
            frame = replace(frame, vector=None, indicators=())
        elif layer == LAYER_CLOUD:
            frame = replace(frame, cloud=None)
        else:
            frame = replace(frame, indicators=())
        self._state.frame = frame
        logger.info(f"🧹 Cleared {layer} layer")
