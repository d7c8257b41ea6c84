"""
Direction Arrow Placer
One direction indicator per polyline, placed by walking arc length.

Admission: chord (first→last) distance is a cheap pre-filter, arc length the
real test; both reject when `< min_length` and admit when `>= min_length`.
Placement is cooperative: after every batch of indicators the coroutine yields
to the event loop and re-checks that its load sequence is still current.
"""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable, List, Optional, Sequence, Tuple

from config import settings

from .errors import SequenceSuperseded
from .models import DirectionIndicator, Polyline, RenderPoint3

logger = logging.getLogger(__name__)

UP: RenderPoint3 = (0.0, 1.0, 0.0)
DEGENERATE_DIRECTION = 1e-9


def _sub(a: Sequence[float], b: Sequence[float]) -> Tuple[float, float, float]:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _lerp(a: Sequence[float], b: Sequence[float], t: float) -> RenderPoint3:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t, a[2] + (b[2] - a[2]) * t)


def arc_length(points: Sequence[RenderPoint3]) -> float:
    return math.fsum(math.dist(points[i], points[i + 1]) for i in range(len(points) - 1))


def point_at_distance(points: Sequence[RenderPoint3], target: float) -> RenderPoint3:
    """Walk segments until `target` falls inside one, then interpolate."""
    travelled = 0.0
    for i in range(len(points) - 1):
        a, b = points[i], points[i + 1]
        segment = math.dist(a, b)
        if segment > 0.0 and travelled + segment >= target:
            return _lerp(a, b, (target - travelled) / segment)
        travelled += segment
    return tuple(points[-1])


def quaternion_from_up(direction: Sequence[float]) -> Tuple[float, float, float, float]:
    """
    Rotation (x, y, z, w) taking the canonical up vector (0, 1, 0) onto the unit
    `direction`.
    """
    dx, dy, dz = direction
    w = 1.0 + dy  # dot(up, direction) + 1
    if w < 1e-6:
        # Opposite vectors: half turn about an axis perpendicular to up
        return (0.0, 0.0, 1.0, 0.0)
    # cross(up, direction) = (dz, 0, -dx)
    x, y, z = dz, 0.0, -dx
    norm = math.sqrt(x * x + y * y + z * z + w * w)
    return (x / norm, y / norm, z / norm, w / norm)


def compute_indicator(
    polyline: Polyline,
    min_length: float,
    fraction: float = 1.0 / 3.0,
) -> Optional[DirectionIndicator]:
    """Indicator for one polyline, or None when the way is rejected."""
    points = polyline.points
    if len(points) < 2:
        return None
    first, last = points[0], points[-1]

    if math.dist(first, last) < min_length:
        return None

    total = arc_length(points)
    if total < min_length:
        return None

    delta = _sub(last, first)
    norm = math.sqrt(delta[0] ** 2 + delta[1] ** 2 + delta[2] ** 2)
    if norm < DEGENERATE_DIRECTION:
        return None
    direction = (delta[0] / norm, delta[1] / norm, delta[2] / norm)

    position = point_at_distance(points, total * fraction)
    return DirectionIndicator(
        way_id=polyline.way_id,
        position=position,
        direction=direction,
        quaternion=quaternion_from_up(direction),
    )


class DirectionArrowPlacer:
    def __init__(
        self,
        min_length: Optional[float] = None,
        max_count: Optional[int] = None,
        batch_size: Optional[int] = None,
        fraction: Optional[float] = None,
    ):
        self.min_length = settings.ARROW_MIN_LENGTH_M if min_length is None else min_length
        self.max_count = settings.ARROW_MAX_COUNT if max_count is None else max_count
        self.batch_size = settings.ARROW_YIELD_BATCH if batch_size is None else batch_size
        self.fraction = settings.ARROW_PLACEMENT_FRACTION if fraction is None else fraction

    async def place(
        self,
        polylines: Sequence[Polyline],
        is_current: Optional[Callable[[], bool]] = None,
        token: int = 0,
    ) -> List[DirectionIndicator]:
        """
        Indicators in polyline order, up to max_count.

        A batch_size of 0 disables yielding; results are identical either way.
        Raises SequenceSuperseded if `is_current` turns false across a yield.
        """
        indicators: List[DirectionIndicator] = []
        for polyline in polylines:
            if len(indicators) >= self.max_count:
                break
            indicator = compute_indicator(polyline, self.min_length, self.fraction)
            if indicator is None:
                continue
            indicators.append(indicator)

            if self.batch_size and len(indicators) % self.batch_size == 0:
                await asyncio.sleep(0)
                if is_current is not None and not is_current():
                    logger.info(f"⏹️ Indicator placement for sequence {token} abandoned after {len(indicators)}")
                    raise SequenceSuperseded(token)

        logger.info(f"➡️ Placed {len(indicators)} direction indicators for {len(polylines)} polylines")
        return indicators
