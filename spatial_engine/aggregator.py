"""
Result aggregator: the single entry point for running a screening analysis.

run_analysis() sequences geometry metrics, record proximity and filtering,
sensitive-area proximity, attribute intersection and the elevation
assessment, and returns one immutable AnalysisResult. Buffers and samples
are local to the call; the raster provider is the only shared state.
"""

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional

from screening_utils.format_utils import fmt_area, fmt_meters, fmt_num
from screening_utils.geo_utils import PROJECTED_CRS_LABEL, measure, to_projected
from .config import AnalysisConfig
from .elevation import assess_elevation
from .models import (
    AnalysisResult, LineTarget, MetricsBlock, PointTarget, PolygonTarget, ReferenceLayer,
    TargetGeometry, rows
)
from .proximity import (
    apply_record_filters, find_nearby_areas, find_nearby_records, intersecting_attributes
)
from .raster_sampler import RasterProvider

logger = logging.getLogger(__name__)


def _end_labels(start_en, end_en):
    """Name line ends by the dominant axis of travel (west/east or south/north)."""
    d_e = end_en[0] - start_en[0]
    d_n = end_en[1] - start_en[1]
    if abs(d_e) >= abs(d_n):
        return ("Western End", "Eastern End") if start_en[0] <= end_en[0] else ("Eastern End", "Western End")
    return ("Southern End", "Northern End") if start_en[1] <= end_en[1] else ("Northern End", "Southern End")


def _en(coords) -> str:
    return f"{fmt_num(coords[0], 2)}, {fmt_num(coords[1], 2)}"


def geometry_metrics(target: TargetGeometry) -> MetricsBlock:
    """Type-specific measurement rows, coordinates reported in UTM Zone 20N."""
    m = measure(target.geometry)
    crs_row = ("CRS", PROJECTED_CRS_LABEL)

    if isinstance(target, PointTarget):
        return MetricsBlock("Point", rows(
            crs_row,
            ("Easting", fmt_num(m["easting"], 2)),
            ("Northing", fmt_num(m["northing"], 2)),
        ))

    if isinstance(target, LineTarget):
        if m["start"] is None:
            return MetricsBlock("Line", rows(crs_row, ("Total Length", fmt_meters(m["length_m"]))))
        start = to_projected(m["start"][1], m["start"][0])
        end = to_projected(m["end"][1], m["end"][0])
        start_label, end_label = _end_labels(start, end)
        return MetricsBlock("Line", rows(
            crs_row,
            (f"{start_label} (E,N)", _en(start)),
            (f"{end_label} (E,N)", _en(end)),
            ("Total Length", fmt_meters(m["length_m"])),
        ))

    if isinstance(target, PolygonTarget):
        min_lon, min_lat, max_lon, max_lat = m["bbox"]
        sw = to_projected(min_lat, min_lon)
        ne = to_projected(max_lat, max_lon)
        bbox = f"E: {fmt_num(sw[0], 2)} to {fmt_num(ne[0], 2)}; N: {fmt_num(sw[1], 2)} to {fmt_num(ne[1], 2)}"
        return MetricsBlock("Polygon", rows(
            crs_row,
            ("Bounding Box (UTM)", bbox),
            ("Perimeter", fmt_meters(m["perimeter_m"])),
            ("Area", fmt_area(m["area_m2"])),
        ))

    raise TypeError(f"Unsupported target type: {type(target).__name__}")


async def run_analysis(target: TargetGeometry, config: Optional[AnalysisConfig] = None,
                       records: Iterable[Mapping[str, Any]] = (),
                       layers: Optional[Mapping[str, Optional[ReferenceLayer]]] = None,
                       raster_provider: Optional[RasterProvider] = None) -> AnalysisResult:
    """
    Run a full screening analysis for one target.

    Args:
        target: Validated target geometry
        config: Radii, filters and layer configuration (defaults if None)
        records: Permit records with UTM easting/northing fields
        layers: Reference layers by name; missing or None entries are reported as unavailable
        raster_provider: Shared DEM provider, or None when no DEM is configured

    Returns:
        AnalysisResult with every section populated or marked unavailable
    """
    config = config or AnalysisConfig()
    layers = layers or {}
    logger.info(f"Running analysis for {target.kind} target "
                f"(record buffer {config.record_radius_m} m, area buffer {config.area_radius_m} m)")

    metrics = geometry_metrics(target)

    nearby = find_nearby_records(target, records, config.record_radius_m,
                                 easting_field=config.easting_field,
                                 northing_field=config.northing_field)
    filtered = apply_record_filters(nearby, config.filters)
    logger.info(f"{len(nearby)} records within range, {len(filtered)} after filters")

    areas = find_nearby_areas(target, layers, config.area_radius_m, config.sensitive_layers)
    attributes = intersecting_attributes(target, layers, config.attribute_groups)

    elevation = await assess_elevation(target, raster_provider, seed=config.sampling_seed)

    unavailable = [name for name in config.required_layers() if layers.get(name) is None]
    meta = {
        "record_buffer_m": config.record_radius_m,
        "area_buffer_m": config.area_radius_m,
        "filters": {
            "status": config.filters.status,
            "start_date": config.filters.start_date,
            "end_date": config.filters.end_date,
        },
        "records_before_filters": len(nearby),
        "unavailable_layers": unavailable,
    }

    return AnalysisResult(
        target_type=target.kind,
        records=tuple(filtered),
        sensitive_areas=tuple(areas),
        attributes=tuple(attributes),
        metrics=metrics,
        elevation=elevation,
        meta=meta,
    )


def run_analysis_sync(*args, **kwargs) -> AnalysisResult:
    """Blocking wrapper around run_analysis() for scripts."""
    return asyncio.run(run_analysis(*args, **kwargs))
