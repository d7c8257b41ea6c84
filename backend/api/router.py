"""
Central API Router
Combines all API endpoints into a single router for main.py
"""
from fastapi import APIRouter
from api import logs
from api.endpoints import scene, system

# Create the main API router
api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(system.router, prefix="/api", tags=["system"])
api_router.include_router(scene.router, prefix="/api/scene", tags=["scene"])
api_router.include_router(logs.router, prefix="/api")


# Add a root endpoint for API discovery
@api_router.get("/api")
async def api_root():
    """API root endpoint for discovery"""
    return {
        "message": "HD Map Frame API",
        "documentation": "/docs",
        "endpoints": {
            "health": "/api/health - Process and scene health",
            "load": "/api/scene/load - Load vector map, point cloud and metadata sources",
            "config": "/api/scene/config - Projection, axis and display settings",
            "visibility": "/api/scene/visibility - Toggle layer visibility",
            "scene": "/api/scene - Status, diagnostics and camera fit",
            "layers": "/api/scene/layers/{layer} - Render geometry for vector, cloud or indicators",
            "events": "/api/scene/events - Server-sent scene status events",
            "logs": "/api/logs/recent - Recent log records",
        },
    }
