"""
Elevation and slope assessment of a target geometry.

One entry point, assess_elevation(), dispatches on the target type:

    Point    one sample; elevation and slope rows, single-value chart
    Line     profile sampled at equal fractions of the length; grades,
             ascent/descent, steepest segments and 1:N ratios
    Polygon  grid sample; elevation/slope summary, slope classes and
             elevation/slope histograms

Samples with no elevation are excluded from every statistic and reported in
a "Data Coverage" row. Any failure (raster load or read) is logged and turned
into a single "Failed to read DEM" row so the rest of the analysis proceeds.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import LineString, MultiLineString
from shapely.ops import linemerge

from screening_utils.format_utils import DASH, fmt_fixed, fmt_num, slope_pct_to_ratio
from screening_utils.geo_utils import (
    geodesic_area_perimeter, geodesic_length, project_geometry, to_geographic
)
from .models import (
    ElevationAssessment, HistogramSeries, LineTarget, PointTarget, PolygonTarget, ProfilePoint,
    ProfileSeries, SingleValueSeries, TargetGeometry, rows
)
from .raster_sampler import RasterHandle, RasterProvider, sample_point
from .sampling_planner import build_polygon_grid, plan_line, plan_polygon_step

logger = logging.getLogger(__name__)

HISTOGRAM_BINS = 10

# (label, lower bound inclusive, upper bound exclusive) in degrees
SLOPE_CLASSES = (
    ("0–5° (Gentle)", 0.0, 5.0),
    ("5–15° (Moderate)", 5.0, 15.0),
    ("15–30° (Steep)", 15.0, 30.0),
    (">30° (Very steep)", 30.0, float("inf")),
)

FAILED_TO_READ = "Failed to read DEM"
DEM_UNAVAILABLE = "DEM unavailable"


def unavailable_assessment(reason: str) -> ElevationAssessment:
    return ElevationAssessment(type=DASH, rows=rows(("Elevation", reason)))


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def _min_max_mean(values: Sequence[float]) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    if not values:
        return None, None, None
    arr = np.asarray(values, dtype=float)
    return float(arr.min()), float(arr.max()), float(arr.mean())


def build_histogram(values: Sequence[float], bins: int = HISTOGRAM_BINS,
                    label: Callable[[float, float], str] = lambda a, b: f"{a:.0f}–{b:.0f}",
                    flat_label: Optional[Callable[[float], str]] = None) -> Optional[Tuple[List[str], List[int]]]:
    """
    Equal-width histogram over [min, max].

    All values collapse into one bin when min == max. Counts always sum to
    len(values). Returns None for an empty input.
    """
    if not len(values):
        return None
    arr = np.asarray(values, dtype=float)
    low, high = float(arr.min()), float(arr.max())

    if low == high:
        text = flat_label(low) if flat_label else label(low, low)
        return [text], [int(arr.size)]

    step = (high - low) / bins
    idx = np.clip(np.floor((arr - low) / step).astype(int), 0, bins - 1)
    counts = np.bincount(idx, minlength=bins)
    labels = [label(low + i * step, low + (i + 1) * step) for i in range(bins)]
    return labels, [int(c) for c in counts]


def slope_class_percentages(slopes_deg: Sequence[float]) -> Optional[List[Tuple[str, float]]]:
    values = [s for s in slopes_deg if s >= 0]
    if not values:
        return None
    total = len(values)
    return [(name, sum(1 for s in values if low <= s < high) / total * 100)
            for name, low, high in SLOPE_CLASSES]


def _resolution_row(dx: float, dy: float) -> Tuple[str, str]:
    return "DEM Resolution (approx.)", f"{fmt_num(dx, 2)} m × {fmt_num(dy, 2)} m per pixel"


def _coverage_row(valid: int, total: int) -> Tuple[str, str]:
    return "Data Coverage", f"{valid} of {total} samples with data"


def _grade(value: Optional[float]) -> str:
    return fmt_fixed(value, 2, " %")


# ---------------------------------------------------------------------------
# Point
# ---------------------------------------------------------------------------

async def assess_point(target: PointTarget, raster: RasterHandle) -> ElevationAssessment:
    sample = await sample_point(raster, target.geometry.x, target.geometry.y)
    chart = None
    if sample.elevation is not None:
        chart = SingleValueSeries("Elevation (m)", sample.elevation)
    return ElevationAssessment(
        type="Point",
        rows=rows(
            ("Elevation", fmt_fixed(sample.elevation, 1, " m")),
            ("Slope (degrees)", fmt_fixed(sample.slope_degrees, 1, "°")),
            ("Slope (%)", fmt_fixed(sample.slope_percent, 1, " %")),
        ),
        chart=chart,
        stats={
            "elevation": sample.elevation,
            "slope_degrees": sample.slope_degrees,
            "slope_percent": sample.slope_percent,
        },
    )


# ---------------------------------------------------------------------------
# Line
# ---------------------------------------------------------------------------

class _PathWalker:
    """Walks the projected parts of a line end to end, never across the gap between parts."""

    def __init__(self, geometry):
        projected = project_geometry(geometry)
        if isinstance(projected, MultiLineString):
            merged = linemerge(projected)
            parts = [merged] if isinstance(merged, LineString) else list(projected.geoms)
        else:
            parts = [projected]
        self.parts = [part for part in parts if part.length > 0] or parts[:1]
        self.ends = np.cumsum([part.length for part in self.parts])
        self.length = float(self.ends[-1])

    def interpolate(self, fraction: float):
        """Point at *fraction* of the summed part lengths."""
        distance = fraction * self.length
        idx = min(int(np.searchsorted(self.ends, distance, side="left")), len(self.parts) - 1)
        start = self.ends[idx - 1] if idx > 0 else 0.0
        return self.parts[idx].interpolate(distance - start)


async def assess_line(target: LineTarget, raster: RasterHandle) -> ElevationAssessment:
    length_m = geodesic_length(target.geometry)
    path = _PathWalker(target.geometry)

    mid = path.interpolate(0.5)
    mid_lat, _ = to_geographic(mid.x, mid.y)
    dx, dy = raster.meters_per_cell(mid_lat)
    plan = plan_line(length_m, dx, dy)
    n = plan.sample_count

    profile: List[Tuple[float, Optional[float]]] = []
    for i in range(n):
        fraction = i / (n - 1)
        pt = path.interpolate(fraction)
        lat, lon = to_geographic(pt.x, pt.y)
        sample = await sample_point(raster, lon, lat)
        profile.append((fraction * length_m, sample.elevation))

    valid = [(d, z) for d, z in profile if z is not None]
    z_min, z_max, z_mean = _min_max_mean([z for _, z in valid])

    end_to_end = None
    if valid:
        run = valid[-1][0] - valid[0][0]
        if run > 0:
            end_to_end = (valid[-1][1] - valid[0][1]) / run * 100

    ascent = 0.0
    descent = 0.0
    grades = []
    for (d_a, z_a), (d_b, z_b) in zip(profile, profile[1:]):
        if z_a is None or z_b is None:
            continue
        run = (d_b - d_a) or 1
        rise = z_b - z_a
        grades.append(rise / run * 100)
        if rise > 0:
            ascent += rise
        elif rise < 0:
            descent += -rise

    mean_abs_grade = float(np.mean(np.abs(grades))) if grades else None
    steepest_up = max(grades) if grades else None
    steepest_down = min(grades) if grades else None

    return ElevationAssessment(
        type="Line",
        rows=rows(
            _resolution_row(dx, dy),
            ("Sample Spacing", f"~{fmt_num(plan.step_m, 0)} m ({n} samples)"),
            _coverage_row(len(valid), n),
            ("Min Elevation", fmt_fixed(z_min, 1, " m")),
            ("Max Elevation", fmt_fixed(z_max, 1, " m")),
            ("Average Elevation", fmt_fixed(z_mean, 1, " m")),
            ("End-to-End Grade (start→end)", _grade(end_to_end)),
            ("End-to-End Slope Ratio (1:N)", slope_pct_to_ratio(end_to_end)),
            ("Mean Segment Grade (abs.)", _grade(mean_abs_grade)),
            ("Mean Segment Slope Ratio (1:N)", slope_pct_to_ratio(mean_abs_grade)),
            ("Steepest Uphill Segment", _grade(steepest_up)),
            ("Steepest Uphill Ratio (1:N)", slope_pct_to_ratio(steepest_up)),
            ("Steepest Downhill Segment", _grade(steepest_down)),
            ("Steepest Downhill Ratio (1:N)", slope_pct_to_ratio(steepest_down)),
            ("Total Ascent", fmt_fixed(ascent, 1, " m")),
            ("Total Descent", fmt_fixed(descent, 1, " m")),
        ),
        chart=ProfileSeries(tuple(ProfilePoint(d, z) for d, z in valid)),
        stats={
            "length_m": length_m,
            "step_m": plan.step_m,
            "sample_count": n,
            "valid_count": len(valid),
            "min_elevation": z_min,
            "max_elevation": z_max,
            "mean_elevation": z_mean,
            "end_to_end_grade": end_to_end,
            "mean_abs_segment_grade": mean_abs_grade,
            "steepest_uphill_grade": steepest_up,
            "steepest_downhill_grade": steepest_down,
            "total_ascent": ascent,
            "total_descent": descent,
        },
    )


# ---------------------------------------------------------------------------
# Polygon
# ---------------------------------------------------------------------------

async def assess_polygon(target: PolygonTarget, raster: RasterHandle,
                         seed: Optional[int] = None) -> ElevationAssessment:
    area_m2, _ = geodesic_area_perimeter(target.geometry)
    centroid = target.geometry.centroid
    dx, dy = raster.meters_per_cell(centroid.y)
    step = plan_polygon_step(area_m2, dx, dy)
    grid = build_polygon_grid(target.geometry, step, seed=seed)

    samples = [await sample_point(raster, lon, lat) for lon, lat in grid.points]

    elevations = [s.elevation for s in samples if s.elevation is not None]
    slopes_deg = [s.slope_degrees for s in samples if s.slope_degrees is not None]
    slopes_pct = [s.slope_percent for s in samples if s.slope_percent is not None]

    z_min, z_max, z_mean = _min_max_mean(elevations)
    deg_min, deg_max, deg_mean = _min_max_mean(slopes_deg)
    pct_min, pct_max, pct_mean = _min_max_mean(slopes_pct)

    slope_range_deg = DASH if deg_min is None else f"{deg_min:.1f}° to {deg_max:.1f}°"
    slope_range_pct = DASH if pct_min is None else f"{pct_min:.1f}% to {pct_max:.1f}%"
    ratio_range = DASH if pct_min is None else f"{slope_pct_to_ratio(pct_max)} to {slope_pct_to_ratio(pct_min)}"

    table = [
        _resolution_row(dx, dy),
        ("Grid Spacing", f"~{fmt_num(step, 0)} m ({len(elevations)} samples)"),
        _coverage_row(len(elevations), len(samples)),
        ("Min Elevation", fmt_fixed(z_min, 1, " m")),
        ("Max Elevation", fmt_fixed(z_max, 1, " m")),
        ("Mean Elevation", fmt_fixed(z_mean, 1, " m")),
        ("Mean Slope (degrees)", fmt_fixed(deg_mean, 1, "°")),
        ("Mean Slope (grade %)", fmt_fixed(pct_mean, 1, " %")),
        ("Slope Range (degrees)", slope_range_deg),
        ("Slope Range (grade %)", slope_range_pct),
        ("Mean Slope Ratio (1:N)", slope_pct_to_ratio(pct_mean)),
        ("Slope Ratio Range (1:N)", ratio_range),
    ]

    classes = slope_class_percentages(slopes_deg)
    if classes:
        table.append(("Slope Class Breakdown", DASH))
        table.extend((f"Slope Class % — {name}", f"{fmt_num(pct, 1)} %") for name, pct in classes)

    elevation_hist = build_histogram(elevations, label=lambda a, b: f"{a:.0f}–{b:.0f} m",
                                     flat_label=lambda v: f"{v:.1f} m")
    slope_hist = build_histogram(slopes_deg, label=lambda a, b: f"{a:.0f}–{b:.0f}°")

    chart = None
    if elevation_hist:
        chart = HistogramSeries(tuple(elevation_hist[0]), tuple(elevation_hist[1]),
                                title="Elevation distribution", x_title="Elevation bins (m)")
    slope_chart = None
    if slope_hist:
        slope_chart = HistogramSeries(tuple(slope_hist[0]), tuple(slope_hist[1]),
                                      title="Slope distribution", x_title="Slope bins (degrees)")

    return ElevationAssessment(
        type="Polygon",
        rows=rows(*table),
        chart=chart,
        slope_chart=slope_chart,
        stats={
            "area_m2": area_m2,
            "step_m": step,
            "grid_candidates": grid.candidates,
            "sample_count": len(samples),
            "valid_count": len(elevations),
            "min_elevation": z_min,
            "max_elevation": z_max,
            "mean_elevation": z_mean,
            "mean_slope_degrees": deg_mean,
            "min_slope_degrees": deg_min,
            "max_slope_degrees": deg_max,
            "mean_slope_percent": pct_mean,
            "min_slope_percent": pct_min,
            "max_slope_percent": pct_max,
            "slope_classes": dict(classes) if classes else {},
        },
    )


async def assess_elevation(target: TargetGeometry, provider: Optional[RasterProvider],
                           seed: Optional[int] = None) -> ElevationAssessment:
    """
    Elevation/slope summary for a target.

    Never raises: a missing provider gives "DEM unavailable", and any error
    while loading or reading the raster gives "Failed to read DEM".
    """
    if provider is None:
        return unavailable_assessment(DEM_UNAVAILABLE)
    try:
        raster = await provider.get_raster()
        if isinstance(target, PointTarget):
            return await assess_point(target, raster)
        if isinstance(target, LineTarget):
            return await assess_line(target, raster)
        if isinstance(target, PolygonTarget):
            return await assess_polygon(target, raster, seed=seed)
        raise TypeError(f"Unsupported target type: {type(target).__name__}")
    except Exception as e:
        logger.error(f"Elevation assessment failed: {e}", exc_info=True)
        return unavailable_assessment(FAILED_TO_READ)
