"""
Frame Module
Coordinate-flavor classification, origin resolution, normalization, alignment,
direction indicators and bounds fitting for map layers.

The orchestrator lives in `pipelines.mapping.frame.pipeline`; it is not
re-exported here because the projection package imports these models.
"""
from .errors import ProjectionError, SequenceSuperseded
from .models import (
    CoordinateFlavor,
    Diagnostics,
    NormalizationOrigin,
    OriginConfig,
    OriginSource,
    PointCloudRecord,
    ProjectionMode,
    ProjectorInfo,
    VectorMapRecord,
)

__all__ = [
    "ProjectionError",
    "SequenceSuperseded",
    "CoordinateFlavor",
    "Diagnostics",
    "NormalizationOrigin",
    "OriginConfig",
    "OriginSource",
    "PointCloudRecord",
    "ProjectionMode",
    "ProjectorInfo",
    "VectorMapRecord",
]
