"""
System Endpoints
================

Cheap health check for the scene service.
"""

from fastapi import APIRouter
from pydantic import BaseModel
import logging
import os
import time

import psutil

logger = logging.getLogger(__name__)
router = APIRouter()

_STARTED_AT = time.time()
_LAST_HEALTH_LOG_TS: float = 0.0


class HealthResponse(BaseModel):
    """Response model for health check endpoints"""
    status: str
    memory_usage_mb: float
    uptime_seconds: float
    scene_token: int
    scene_status: str


@router.get("/health", response_model=HealthResponse)
async def check_system_health():
    """Process memory, uptime and the current scene sequence."""
    from services.scene import get_load_coordinator

    memory_mb = psutil.Process(os.getpid()).memory_info().rss / (1024 * 1024)
    coordinator = get_load_coordinator()

    global _LAST_HEALTH_LOG_TS
    now = time.time()
    msg = f"🏥 HEALTH ► mem={memory_mb:.1f}MB token={coordinator.token} status={coordinator.store.status}"
    if now - _LAST_HEALTH_LOG_TS > 60:
        logger.info(msg)
        _LAST_HEALTH_LOG_TS = now
    else:
        logger.debug(msg)

    return HealthResponse(
        status="success",
        memory_usage_mb=round(memory_mb, 1),
        uptime_seconds=round(now - _STARTED_AT, 1),
        scene_token=coordinator.token,
        scene_status=coordinator.store.status,
    )
