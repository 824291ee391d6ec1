"""
Data model for the spatial analysis engine.

A target geometry is one of three frozen wrappers (PointTarget, LineTarget,
PolygonTarget); every component dispatches on the wrapper class instead of
on a geometry type string. Result types are immutable and convert to plain
JSON-serialisable dicts for presentation and export.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import geopandas as gpd
from shapely.geometry import LineString, MultiLineString, MultiPolygon, Point, Polygon, shape
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry


class InvalidTargetError(ValueError):
    """Raised when a target geometry is missing, empty or of an unsupported type."""


# ---------------------------------------------------------------------------
# Target geometries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PointTarget:
    geometry: Point

    def __post_init__(self):
        if not isinstance(self.geometry, Point) or self.geometry.is_empty:
            raise InvalidTargetError("PointTarget requires a non-empty Point")
        if not all(math.isfinite(c) for c in (self.geometry.x, self.geometry.y)):
            raise InvalidTargetError("PointTarget coordinates must be finite")

    @property
    def kind(self) -> str:
        return "Point"


@dataclass(frozen=True)
class LineTarget:
    geometry: Union[LineString, MultiLineString]

    def __post_init__(self):
        if not isinstance(self.geometry, (LineString, MultiLineString)) or self.geometry.is_empty:
            raise InvalidTargetError("LineTarget requires a non-empty LineString or MultiLineString")
        if self.geometry.length == 0:
            raise InvalidTargetError("LineTarget has zero length")

    @property
    def kind(self) -> str:
        return "Line"


@dataclass(frozen=True)
class PolygonTarget:
    geometry: Union[Polygon, MultiPolygon]

    def __post_init__(self):
        if not isinstance(self.geometry, (Polygon, MultiPolygon)) or self.geometry.is_empty:
            raise InvalidTargetError("PolygonTarget requires a non-empty Polygon or MultiPolygon")
        if self.geometry.area == 0:
            raise InvalidTargetError("PolygonTarget has zero area")

    @property
    def kind(self) -> str:
        return "Polygon"


TargetGeometry = Union[PointTarget, LineTarget, PolygonTarget]


def target_from_geometry(geometry: Optional[BaseGeometry]) -> TargetGeometry:
    """Wrap a shapely geometry in the matching target type."""
    if geometry is None or geometry.is_empty:
        raise InvalidTargetError("Target geometry is missing or empty")
    if isinstance(geometry, Point):
        return PointTarget(geometry)
    if isinstance(geometry, (LineString, MultiLineString)):
        return LineTarget(geometry)
    if isinstance(geometry, (Polygon, MultiPolygon)):
        return PolygonTarget(geometry)
    raise InvalidTargetError(f"Unsupported target geometry type: {geometry.geom_type}")


def target_from_geojson(obj: Optional[Mapping[str, Any]]) -> TargetGeometry:
    """
    Build a target from a GeoJSON geometry or Feature mapping.

    Raises:
        InvalidTargetError: if the geometry is missing, malformed, empty or unsupported
    """
    if not obj:
        raise InvalidTargetError("Target geometry is missing")
    if not isinstance(obj, Mapping):
        raise InvalidTargetError(f"Target must be a GeoJSON object, got {type(obj).__name__}")
    geometry = obj.get("geometry") if obj.get("type") == "Feature" else obj
    if geometry and not isinstance(geometry, Mapping):
        raise InvalidTargetError(f"Feature geometry must be an object, got {type(geometry).__name__}")
    if not geometry or not geometry.get("coordinates"):
        raise InvalidTargetError("Target geometry has no coordinates")
    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, AttributeError, IndexError) as e:
        raise InvalidTargetError(f"Malformed target geometry: {e}") from e
    return target_from_geometry(geom)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class ReferenceLayer:
    """A named, read-only feature collection in EPSG:4326."""
    name: str
    features: gpd.GeoDataFrame
    label_field: Optional[str] = None

    def __repr__(self):
        return f"ReferenceLayer(name='{self.name}', features={len(self.features)}, label_field={self.label_field!r})"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Row:
    key: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "value": self.value}


@dataclass(frozen=True)
class AreaRow:
    area: str
    distance: str

    def to_dict(self) -> Dict[str, str]:
        return {"area": self.area, "distance": self.distance}


@dataclass(frozen=True)
class AttributeRow:
    group: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"group": self.group, "value": self.value}


@dataclass(frozen=True)
class MetricsBlock:
    type: str
    rows: Tuple[Row, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "rows": [r.to_dict() for r in self.rows]}


@dataclass(frozen=True)
class ElevationSample:
    lon: float
    lat: float
    elevation: Optional[float]
    slope_degrees: Optional[float] = None
    slope_percent: Optional[float] = None


@dataclass(frozen=True)
class ProfilePoint:
    distance_m: float
    elevation: float


@dataclass(frozen=True)
class ProfileSeries:
    points: Tuple[ProfilePoint, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": "profile",
            "points": [{"distance_m": p.distance_m, "elevation": p.elevation} for p in self.points],
        }


@dataclass(frozen=True)
class HistogramSeries:
    labels: Tuple[str, ...]
    counts: Tuple[int, ...]
    title: str
    x_title: str
    y_title: str = "Sample count"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": "histogram",
            "labels": list(self.labels),
            "counts": list(self.counts),
            "title": self.title,
            "x_title": self.x_title,
            "y_title": self.y_title,
        }


@dataclass(frozen=True)
class SingleValueSeries:
    label: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "single", "label": self.label, "value": self.value}


ChartSeries = Union[ProfileSeries, HistogramSeries, SingleValueSeries]


@dataclass(frozen=True)
class ElevationAssessment:
    type: str
    rows: Tuple[Row, ...]
    chart: Optional[ChartSeries] = None
    slope_chart: Optional[HistogramSeries] = None
    stats: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "rows": [r.to_dict() for r in self.rows],
            "chart": self.chart.to_dict() if self.chart else None,
            "slope_chart": self.slope_chart.to_dict() if self.slope_chart else None,
            "stats": dict(self.stats),
        }


@dataclass(frozen=True)
class AnalysisResult:
    target_type: str
    records: Tuple[Mapping[str, Any], ...]
    sensitive_areas: Tuple[AreaRow, ...]
    attributes: Tuple[AttributeRow, ...]
    metrics: MetricsBlock
    elevation: ElevationAssessment
    meta: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_type": self.target_type,
            "meta": dict(self.meta),
            "records": [dict(r) for r in self.records],
            "sensitive_areas": [r.to_dict() for r in self.sensitive_areas],
            "attributes": [r.to_dict() for r in self.attributes],
            "metrics": self.metrics.to_dict(),
            "elevation": self.elevation.to_dict(),
        }


def rows(*pairs: Tuple[str, str]) -> Tuple[Row, ...]:
    """Shorthand for building a row tuple from (key, value) pairs."""
    return tuple(Row(k, v) for k, v in pairs)
