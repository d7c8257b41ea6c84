"""
Central configuration for backend settings.

Every heuristic threshold used by the frame normalization engine lives here so
it can be tuned from the environment (or a .env file) without code changes.
The defaults are empirically chosen cutoffs, not derived values.
"""
import os
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        return None


# Origin resolution: max abs projected easting/northing before we flag a bad zone
PROJECTED_MAGNITUDE_GUARD_M: float = _env_float("PROJECTED_MAGNITUDE_GUARD_M", 1.0e7)

# Alignment: a point cloud whose centroid is farther than this is treated as absolute
ALIGNMENT_ABSOLUTE_THRESHOLD_M: float = _env_float("ALIGNMENT_ABSOLUTE_THRESHOLD_M", 1.0e5)

# Bounds fitting
BOUNDS_RADIUS_GUARD_M: float = _env_float("BOUNDS_RADIUS_GUARD_M", 1.0e6)
BOUNDS_MIN_RADIUS_M: float = _env_float("BOUNDS_MIN_RADIUS_M", 1.0)
CAMERA_PADDING: float = _env_float("CAMERA_PADDING", 1.2)
CAMERA_FOV_DEG: float = _env_float("CAMERA_FOV_DEG", 60.0)
CAMERA_NEAR_RATIO: float = _env_float("CAMERA_NEAR_RATIO", 0.01)
CAMERA_FAR_RATIO: float = _env_float("CAMERA_FAR_RATIO", 100.0)

# Direction indicators
ARROW_MIN_LENGTH_M: float = _env_float("ARROW_MIN_LENGTH_M", 2.0)
ARROW_MAX_COUNT: int = _env_int("ARROW_MAX_COUNT", 2000)
ARROW_YIELD_BATCH: int = _env_int("ARROW_YIELD_BATCH", 20)
ARROW_PLACEMENT_FRACTION: float = _env_float("ARROW_PLACEMENT_FRACTION", 1.0 / 3.0)

# Projection defaults ("auto" | "identity" | "proj")
DEFAULT_PROJECTION_MODE: str = os.getenv("DEFAULT_PROJECTION_MODE", "auto")
DEFAULT_PROJ_FROM: str = os.getenv("DEFAULT_PROJ_FROM", "EPSG:4326")
DEFAULT_PROJ_TO: str = os.getenv("DEFAULT_PROJ_TO", "EPSG:3857")
VECTOR_FLIP_Y: bool = _env_bool("VECTOR_FLIP_Y", True)

# Point cloud display
DEFAULT_POINT_SIZE: float = _env_float("DEFAULT_POINT_SIZE", 0.1)
DEFAULT_DENSITY_PERCENT: float = _env_float("DEFAULT_DENSITY_PERCENT", 40.0)
DEFAULT_SAMPLE_SEED: int = _env_int("DEFAULT_SAMPLE_SEED", 0)

# Explicit configuration origin (static, not user-loaded)
MAP_ORIGIN_LATITUDE: Optional[float] = _env_optional_float("MAP_ORIGIN_LATITUDE")
MAP_ORIGIN_LONGITUDE: Optional[float] = _env_optional_float("MAP_ORIGIN_LONGITUDE")
MAP_ORIGIN_ELEVATION: float = _env_float("MAP_ORIGIN_ELEVATION", 0.0)
MAP_ORIGIN_ROLL: float = _env_float("MAP_ORIGIN_ROLL", 0.0)
MAP_ORIGIN_PITCH: float = _env_float("MAP_ORIGIN_PITCH", 0.0)
MAP_ORIGIN_YAW: float = _env_float("MAP_ORIGIN_YAW", 0.0)

# Startup
AUTOLOAD_DEFAULT_MAPS: bool = _env_bool("AUTOLOAD_DEFAULT_MAPS", False)
FETCH_TIMEOUT_S: float = _env_float("FETCH_TIMEOUT_S", 30.0)
