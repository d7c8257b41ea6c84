"""
Point cloud display settings: point size and density sub-sampling.
"""
from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

MIN_POINT_SIZE = 0.1
MAX_POINT_SIZE = 2.0
MIN_DENSITY_PERCENT = 1.0
MAX_DENSITY_PERCENT = 100.0


def clamp_point_size(size: float) -> float:
    return float(min(MAX_POINT_SIZE, max(MIN_POINT_SIZE, size)))


def clamp_density_percent(percent: float) -> float:
    return float(min(MAX_DENSITY_PERCENT, max(MIN_DENSITY_PERCENT, percent)))


def density_ratio(percent: float) -> float:
    return max(0.01, min(1.0, percent / 100.0))


def sample_density(
    positions: np.ndarray,
    colors: Optional[np.ndarray],
    percent: float,
    seed: int = 0,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Uniform random subset of floor(N * ratio) points; colors follow their points.
    The full-resolution arrays are never modified.
    """
    ratio = density_ratio(percent)
    total = int(positions.shape[0])
    if ratio >= 1.0 or total == 0:
        return positions, colors

    target = int(np.floor(total * ratio))
    rng = np.random.default_rng(seed)
    picked = rng.permutation(total)[:target]
    sampled_colors = colors[picked] if colors is not None else None
    return positions[picked], sampled_colors
