"""
Scene API Endpoints
Load map sources, change frame configuration and read back render geometry
"""
from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from typing import AsyncGenerator, Optional
import asyncio
import logging

from pipelines.mapping.frame.models import OriginConfig
from services.scene import get_load_coordinator

logger = logging.getLogger(__name__)
router = APIRouter()


class OriginOverrideRequest(BaseModel):
    """User-supplied origin; angles in radians."""
    latitude: float
    longitude: float
    elevation: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


class LoadRequest(BaseModel):
    """Any subset of sources; omitted sources keep their current data."""
    vector_source: Optional[str] = None
    pointcloud_source: Optional[str] = None
    projector_source: Optional[str] = None
    origin_source: Optional[str] = None
    origin_override: Optional[OriginOverrideRequest] = None


class ConfigRequest(BaseModel):
    projection_mode: Optional[str] = Field(None, pattern="^(auto|identity|proj)$")
    proj_from: Optional[str] = None
    proj_to: Optional[str] = None
    flip_y: Optional[bool] = None
    show_directions: Optional[bool] = None
    point_size: Optional[float] = None
    density_percent: Optional[float] = None
    sample_seed: Optional[int] = None


class VisibilityRequest(BaseModel):
    layer: str
    visible: bool


def _sequence_response(result: dict) -> dict:
    """Failed (non-superseded) sequences surface as 422 with the load error."""
    if not result.get("success") and not result.get("superseded"):
        raise HTTPException(status_code=422, detail=result.get("error", "Scene load failed"))
    return result


@router.post("/load")
async def load_scene(request: LoadRequest):
    """Load map sources and recompute the scene"""
    logger.info(f"📥 Scene load request: {request.model_dump(exclude_none=True)}")
    if not any([request.vector_source, request.pointcloud_source, request.projector_source,
                request.origin_source, request.origin_override]):
        raise HTTPException(status_code=400, detail="No sources given")

    override = None
    if request.origin_override is not None:
        override = OriginConfig(**request.origin_override.model_dump())

    coordinator = get_load_coordinator()
    result = await coordinator.load(
        vector_source=request.vector_source,
        pointcloud_source=request.pointcloud_source,
        projector_source=request.projector_source,
        origin_source=request.origin_source,
        origin_override=override,
    )
    return _sequence_response(result)


@router.post("/config")
async def update_scene_config(request: ConfigRequest):
    """Change projection, axis or display settings"""
    changes = request.model_dump(exclude_none=True)
    coordinator = get_load_coordinator()
    result = await coordinator.update_config(**changes)
    return _sequence_response(result)


@router.post("/visibility")
async def set_layer_visibility(request: VisibilityRequest):
    coordinator = get_load_coordinator()
    try:
        visibility = coordinator.set_visibility(request.layer, request.visible)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown layer: {request.layer}")
    return {"success": True, "visibility": visibility}


@router.delete("/layers/{layer}")
async def clear_layer(layer: str):
    coordinator = get_load_coordinator()
    try:
        result = await coordinator.clear_layer(layer)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown layer: {layer}")
    return _sequence_response(result)


@router.get("")
async def get_scene():
    """Status, diagnostics, camera fit and layer summaries"""
    return get_load_coordinator().snapshot()


@router.get("/layers/{layer}")
async def get_layer(layer: str):
    try:
        return get_load_coordinator().layer_geometry(layer)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown layer: {layer}")


async def _sse_stream(q: asyncio.Queue) -> AsyncGenerator[str, None]:
    try:
        while True:
            try:
                # Wait up to 10 seconds for an event; emit heartbeat if idle
                data = await asyncio.wait_for(q.get(), timeout=10.0)
                yield f"data: {data}\n\n"
            except asyncio.TimeoutError:
                yield "event: ping\ndata: {}\n\n"
    except asyncio.CancelledError:
        return


@router.get("/events", include_in_schema=False)
async def scene_events():
    event_bus = get_load_coordinator().event_bus
    q = await event_bus.subscribe()
    logger.debug(f"SSE: client subscribed, subscribers={event_bus.get_subscriber_count()}")

    async def gen():
        try:
            async for chunk in _sse_stream(q):
                yield chunk
        finally:
            await event_bus.unsubscribe(q)
            logger.debug(f"SSE: client unsubscribed, subscribers={event_bus.get_subscriber_count()}")
    return StreamingResponse(gen(), media_type="text/event-stream")
