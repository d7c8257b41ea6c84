"""
Projection Adapter
Wraps the geodetic projection function used to move geographic nodes into planar meters
"""
import logging
import math
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from pipelines.mapping.frame.errors import ProjectionError
from pipelines.mapping.frame.models import ProjectionSpec

logger = logging.getLogger(__name__)

# (fromCRS, toCRS, (x, y)) -> (x', y')
ProjectFn = Callable[[str, str, Tuple[float, float]], Tuple[float, float]]


class ProjectionAdapter:
    """
    Projects 2D points between coordinate reference systems.

    Uses pyproj with always_xy ordering, so geographic input is (lon, lat) and
    planar output is (easting, northing). A custom projection function can be
    injected in place of pyproj; when no projection spec is given the adapter is
    an identity pass-through.
    """

    def __init__(self, project_fn: Optional[ProjectFn] = None):
        self._project_fn = project_fn
        self._transformers: Dict[Tuple[str, str], Transformer] = {}

    def _get_transformer(self, spec: ProjectionSpec) -> Transformer:
        key = (spec.source, spec.target)
        if key not in self._transformers:
            try:
                self._transformers[key] = Transformer.from_crs(
                    CRS.from_user_input(spec.source),
                    CRS.from_user_input(spec.target),
                    always_xy=True,
                )
                logger.debug(f"🧭 Created transformer {spec.source} → {spec.target}")
            except (CRSError, ProjError) as e:
                raise ProjectionError(f"Cannot build projection {spec.source} → {spec.target}: {e}") from e
        return self._transformers[key]

    def validate(self, spec: Optional[ProjectionSpec]) -> None:
        """Raise ProjectionError early if the CRS pair cannot be built."""
        if spec is None or self._project_fn is not None:
            return
        self._get_transformer(spec)

    def project(self, spec: Optional[ProjectionSpec], x: float, y: float) -> Tuple[float, float]:
        """
        Project a single point. Non-finite results come back as NaN rather than
        raising; callers drop such points.
        """
        if spec is None:
            return (float(x), float(y))
        if self._project_fn is not None:
            px, py = self._project_fn(spec.source, spec.target, (float(x), float(y)))
            return (float(px), float(py))
        try:
            px, py = self._get_transformer(spec).transform(x, y)
        except ProjError as e:
            logger.debug(f"🧭 Point ({x}, {y}) failed to project: {e}")
            return (math.nan, math.nan)
        return (float(px), float(py))

    def project_many(
        self,
        spec: Optional[ProjectionSpec],
        xs: Sequence[float],
        ys: Sequence[float],
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized projection; invalid points come back as NaN."""
        xs_arr = np.asarray(xs, dtype=np.float64)
        ys_arr = np.asarray(ys, dtype=np.float64)
        if spec is None:
            return xs_arr.copy(), ys_arr.copy()
        if self._project_fn is not None:
            out = [self.project(spec, x, y) for x, y in zip(xs_arr, ys_arr)]
            if not out:
                return np.empty(0), np.empty(0)
            px, py = zip(*out)
            return np.asarray(px, dtype=np.float64), np.asarray(py, dtype=np.float64)
        transformer = self._get_transformer(spec)
        try:
            px, py = transformer.transform(xs_arr, ys_arr, errcheck=False)
        except ProjError as e:
            logger.warning(f"🧭 Batch projection failed ({e}); retrying point by point")
            out = [self.project(spec, x, y) for x, y in zip(xs_arr, ys_arr)]
            px = [p[0] for p in out]
            py = [p[1] for p in out]
        px_arr = np.asarray(px, dtype=np.float64)
        py_arr = np.asarray(py, dtype=np.float64)
        # PROJ signals failures with inf
        bad = ~(np.isfinite(px_arr) & np.isfinite(py_arr))
        px_arr[bad] = np.nan
        py_arr[bad] = np.nan
        return px_arr, py_arr
