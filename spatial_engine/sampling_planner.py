"""
Adaptive sampling density for elevation assessment.

Chooses a sampling step from the size of the target and the DEM cell size:
never finer than about two raster cells and never more samples than the
per-geometry ceilings (350 along a line, 600 inside a polygon).
"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry

from screening_utils.geo_utils import project_geometry, to_geographic_many

logger = logging.getLogger(__name__)

MIN_STEP_M = 25.0
MAX_LINE_STEP_M = 200.0
TARGET_LINE_SAMPLES = 200
MIN_LINE_SAMPLES = 2
MAX_LINE_SAMPLES = 350
MAX_POLYGON_SAMPLES = 600
UNKNOWN_AREA_STEP_M = 75.0

# (upper area bound in m², step in m)
POLYGON_STEP_BRACKETS = (
    (50_000, 25.0),      # < 5 ha
    (300_000, 50.0),     # < 30 ha
    (2_000_000, 100.0),  # < 200 ha
)
LARGE_POLYGON_STEP_M = 200.0


def _clamp(value, low, high):
    return max(low, min(high, value))


@dataclass(frozen=True)
class LinePlan:
    step_m: float
    sample_count: int


@dataclass(frozen=True)
class PolygonGrid:
    points: List[Tuple[float, float]]  # (lon, lat)
    step_m: float
    candidates: int  # grid nodes inside the polygon before downsampling


def min_step_from_pixel(dx: Optional[float], dy: Optional[float]) -> float:
    """Smallest useful step: two raster cells, and never below 25 m."""
    px = max(dx or 0, dy or 0)
    if not px or not math.isfinite(px):
        return MIN_STEP_M
    return max(MIN_STEP_M, 2 * px)


def plan_line(length_m: float, dx: Optional[float] = None, dy: Optional[float] = None) -> LinePlan:
    """
    Plan sampling along a line of the given length.

    The base step targets ~200 samples and is clamped to 25-200 m, then
    widened to the pixel floor. The sample count includes both ends.
    """
    if length_m is None or not math.isfinite(length_m) or length_m <= 0:
        return LinePlan(max(MIN_STEP_M, min_step_from_pixel(dx, dy)), MIN_LINE_SAMPLES)

    step = _clamp(max(MIN_STEP_M, length_m / TARGET_LINE_SAMPLES), MIN_STEP_M, MAX_LINE_STEP_M)
    step = max(step, min_step_from_pixel(dx, dy))
    count = _clamp(math.ceil(length_m / step) + 1, MIN_LINE_SAMPLES, MAX_LINE_SAMPLES)
    return LinePlan(step, int(count))


def polygon_base_step(area_m2: Optional[float]) -> float:
    if not area_m2 or not math.isfinite(area_m2):
        return UNKNOWN_AREA_STEP_M
    for upper, step in POLYGON_STEP_BRACKETS:
        if area_m2 < upper:
            return step
    return LARGE_POLYGON_STEP_M


def plan_polygon_step(area_m2: Optional[float], dx: Optional[float] = None, dy: Optional[float] = None) -> float:
    return max(polygon_base_step(area_m2), min_step_from_pixel(dx, dy))


def build_polygon_grid(polygon: BaseGeometry, step_m: float,
                       max_points: int = MAX_POLYGON_SAMPLES,
                       seed: Optional[int] = None) -> PolygonGrid:
    """
    Regular grid of sample locations inside a polygon.

    The grid is laid out in projected meters and centred on the polygon's
    bounding box. Nodes outside the polygon are dropped; if more than
    max_points remain, a uniform random subset is kept (seedable). A polygon
    too small to hold any node is sampled at its representative point.
    """
    projected = project_geometry(polygon)
    min_x, min_y, max_x, max_y = projected.bounds

    cols = int(math.floor((max_x - min_x) / step_m))
    rows = int(math.floor((max_y - min_y) / step_m))
    xs = min_x + ((max_x - min_x) - cols * step_m) / 2 + np.arange(cols + 1) * step_m
    ys = min_y + ((max_y - min_y) - rows * step_m) / 2 + np.arange(rows + 1) * step_m
    grid_x, grid_y = np.meshgrid(xs, ys)
    grid_x = grid_x.ravel()
    grid_y = grid_y.ravel()

    inside = shapely.intersects_xy(projected, grid_x, grid_y)
    grid_x = grid_x[inside]
    grid_y = grid_y[inside]
    candidates = int(grid_x.size)

    if candidates == 0:
        rep = polygon.representative_point()
        logger.debug("No grid node inside polygon; using representative point")
        return PolygonGrid([(rep.x, rep.y)], step_m, 0)

    if candidates > max_points:
        rng = np.random.default_rng(seed)
        keep = np.sort(rng.choice(candidates, size=max_points, replace=False))
        grid_x = grid_x[keep]
        grid_y = grid_y[keep]
        logger.debug(f"Downsampled polygon grid from {candidates} to {max_points} points")

    return PolygonGrid(to_geographic_many(grid_x, grid_y), step_m, candidates)
