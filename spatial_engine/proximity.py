"""
Proximity and intersection analysis against permit records and reference layers.

Three queries share one target geometry:
- records whose UTM coordinate falls inside the target (polygons) or its buffer
- sensitive areas touching the target, or within the buffer with an edge distance
- attribute values of zoning/administrative layers intersecting the target

Reference layers are read through their GeoDataFrame spatial index and never
modified; matched records are returned as the caller's own mappings.
"""

import math
import logging
from typing import Any, Iterable, List, Mapping, Optional

import pandas as pd
from shapely.geometry import Point as ShapelyPoint

from screening_utils.format_utils import fmt_distance
from screening_utils.geo_utils import (
    boundary_intersects, buffer_by, edge_distance_meters, point_in_polygon, to_geographic
)
from .config import RECORD_EASTING_FIELD, RECORD_NORTHING_FIELD, RecordFilters
from .models import AreaRow, AttributeRow, PolygonTarget, ReferenceLayer, TargetGeometry

logger = logging.getLogger(__name__)

WITHIN_BOUNDARIES = "within boundaries"
DISTANCE_UNAVAILABLE = "distance unavailable"
LAYER_UNAVAILABLE = "layer unavailable"
GROUP_LAYER_UNAVAILABLE = "Layer unavailable"
NO_VALUES = "None"

LayerMap = Mapping[str, Optional[ReferenceLayer]]


def _clean_label(value: Any) -> Optional[str]:
    """Attribute value as display text, or None for null/empty/"null"."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    return text


def _record_point(record: Mapping[str, Any], easting_field: str, northing_field: str) -> Optional[ShapelyPoint]:
    try:
        easting = float(record.get(easting_field))
        northing = float(record.get(northing_field))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(easting) and math.isfinite(northing)):
        return None
    lat, lon = to_geographic(easting, northing)
    return ShapelyPoint(lon, lat)


def _candidates(layer: ReferenceLayer, query_geometry) -> List[int]:
    """Positional indices of features whose geometry intersects query_geometry, in layer order."""
    gdf = layer.features
    if gdf is None or gdf.empty:
        return []
    return sorted(int(i) for i in gdf.sindex.query(query_geometry, predicate="intersects"))


def find_nearby_records(target: TargetGeometry, records: Iterable[Mapping[str, Any]], radius_m: Any,
                        easting_field: str = RECORD_EASTING_FIELD,
                        northing_field: str = RECORD_NORTHING_FIELD) -> List[Mapping[str, Any]]:
    """
    Records located inside the target polygon or its buffer.

    Point and line targets only match through the buffer, so with a zero
    radius they never match anything. Records with missing or non-numeric
    coordinates are skipped. Dataset order is preserved.
    """
    buffer = buffer_by(target.geometry, radius_m)
    is_polygon = isinstance(target, PolygonTarget)
    if buffer is None and not is_polygon:
        logger.debug(f"No buffer for {target.kind} target; no records can match")
        return []

    matches = []
    skipped = 0
    for record in records:
        point = _record_point(record, easting_field, northing_field)
        if point is None:
            skipped += 1
            continue
        inside_target = is_polygon and point_in_polygon(point, target.geometry)
        if inside_target or (buffer is not None and point_in_polygon(point, buffer)):
            matches.append(record)

    if skipped:
        logger.debug(f"Skipped {skipped} records without usable coordinates")
    return matches


def _parse_date(value: Any) -> Optional[pd.Timestamp]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts


def apply_record_filters(records: Iterable[Mapping[str, Any]], filters: Optional[RecordFilters]) -> List[Mapping[str, Any]]:
    """
    Narrow matched records by determination status and date range.

    Status is a trimmed, case-insensitive equality test. The date range is
    inclusive at both ends; when either bound is set, records whose date is
    missing or unparsable are dropped.
    """
    output = list(records)
    if filters is None or filters.is_empty():
        return output

    if filters.status and filters.status.strip():
        wanted = filters.status.strip().lower()
        output = [r for r in output
                  if str(r.get(filters.status_field) or "").strip().lower() == wanted]

    if filters.start_date or filters.end_date:
        start = _parse_date(filters.start_date)
        end = _parse_date(filters.end_date)
        if filters.start_date and start is None:
            logger.warning(f"Ignoring unparsable start date {filters.start_date!r}")
        if filters.end_date and end is None:
            logger.warning(f"Ignoring unparsable end date {filters.end_date!r}")

        kept = []
        for record in output:
            when = _parse_date(record.get(filters.date_field))
            if when is None:
                continue
            if start is not None and when < start:
                continue
            if end is not None and when > end:
                continue
            kept.append(record)
        output = kept

    return output


def _area_label(layer_name: str, feature: pd.Series, sub_label_field: Optional[str]) -> str:
    if sub_label_field and sub_label_field in feature.index:
        sub_label = _clean_label(feature[sub_label_field])
        if sub_label:
            return f"{layer_name} - {sub_label}"
    return layer_name


def find_nearby_areas(target: TargetGeometry, layers: Optional[LayerMap], radius_m: Any,
                      area_specs: Mapping[str, Optional[str]]) -> List[AreaRow]:
    """
    Sensitive areas touching the target or within radius_m of it.

    Args:
        target: Target geometry
        layers: Loaded reference layers by name (missing or None = unavailable)
        radius_m: Buffer radius in meters
        area_specs: Layer name -> optional sub-label field, in report order

    Returns:
        Rows de-duplicated by (area, distance), first-seen order
    """
    layers = layers or {}
    geometry = target.geometry
    buffer = buffer_by(geometry, radius_m)
    query_geometry = buffer if buffer is not None else geometry

    rows: List[AreaRow] = []
    seen = set()

    def add(row: AreaRow):
        key = (row.area, row.distance)
        if key not in seen:
            seen.add(key)
            rows.append(row)

    for layer_name, sub_label_field in area_specs.items():
        layer = layers.get(layer_name)
        if layer is None:
            logger.warning(f"Sensitive area layer '{layer_name}' is not available")
            add(AreaRow(layer_name, LAYER_UNAVAILABLE))
            continue

        gdf = layer.features
        for i in _candidates(layer, query_geometry):
            feature_geometry = gdf.geometry.iloc[i]
            if boundary_intersects(geometry, feature_geometry):
                distance = WITHIN_BOUNDARIES
            elif buffer is not None and boundary_intersects(buffer, feature_geometry):
                distance = fmt_distance(edge_distance_meters(geometry, feature_geometry)) or DISTANCE_UNAVAILABLE
            else:
                continue
            add(AreaRow(_area_label(layer_name, gdf.iloc[i], sub_label_field), distance))

    return rows


def intersecting_attributes(target: TargetGeometry, layers: Optional[LayerMap],
                            groups: Mapping[str, Mapping[str, Optional[str]]]) -> List[AttributeRow]:
    """
    Distinct attribute values of features intersecting the target, per group.

    Each group maps layer name -> label field; a field of None, or one the
    layer lacks, falls back to the layer's own label_field. Values keep
    first-seen order and are joined with ", ". An empty set gives "None"
    and a group whose layers are all missing gives "Layer unavailable".
    """
    layers = layers or {}
    rows = []
    for group, mapping in groups.items():
        values: List[str] = []
        available = 0
        for layer_name, field in mapping.items():
            layer = layers.get(layer_name)
            if layer is None:
                logger.warning(f"Attribute layer '{layer_name}' for group '{group}' is not available")
                continue
            available += 1
            gdf = layer.features
            if field not in gdf.columns and layer.label_field in gdf.columns:
                logger.debug(f"Using label field '{layer.label_field}' for layer '{layer_name}'")
                field = layer.label_field
            if field not in gdf.columns:
                logger.warning(f"Layer '{layer_name}' has no field '{field}'")
                continue
            for i in _candidates(layer, target.geometry):
                text = _clean_label(gdf[field].iloc[i])
                if text and text not in values:
                    values.append(text)

        if available == 0:
            rows.append(AttributeRow(group, GROUP_LAYER_UNAVAILABLE))
        else:
            rows.append(AttributeRow(group, ", ".join(values) if values else NO_VALUES))
    return rows
