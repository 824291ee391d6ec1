#!/usr/bin/env python3
"""
Geographic utility functions for the siting-risk screening engine.

All geometries handled here are shapely geometries in geographic coordinates
(EPSG:4326, lon/lat order). Metric work (buffers, nearest points) is done in
the fixed projected system, UTM WGS 1984 Zone 20N (EPSG:32620), and converted
back afterwards.
"""

import math
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from pyproj import Geod, Transformer
from shapely.geometry import LineString, MultiLineString, MultiPolygon, Polygon
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry.base import BaseGeometry
from shapely.ops import nearest_points, transform

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"
PROJECTED_CRS = "EPSG:32620"
PROJECTED_CRS_EPSG = 32620
PROJECTED_CRS_LABEL = "UTM WGS 1984 Zone 20N"

# Earth radius in meters
EARTH_RADIUS = 6371000

# Local meters-per-degree approximation used for geographic rasters
METERS_PER_DEGREE_LON_AT_EQUATOR = 111320
METERS_PER_DEGREE_LAT = 110574

_TO_PROJECTED = Transformer.from_crs(GEOGRAPHIC_CRS, PROJECTED_CRS, always_xy=True)
_TO_GEOGRAPHIC = Transformer.from_crs(PROJECTED_CRS, GEOGRAPHIC_CRS, always_xy=True)
_GEOD = Geod(ellps="WGS84")

AREAL_TYPES = ('Polygon', 'MultiPolygon')
LINEAR_TYPES = ('LineString', 'MultiLineString')


class Point:
    """
    Simple class to represent a geographic point with lon/lat coordinates.
    """
    def __init__(self, longitude: float, latitude: float):
        self.longitude = float(longitude)
        self.latitude = float(latitude)

    def to_shapely(self) -> ShapelyPoint:
        """Convert to Shapely Point object"""
        return ShapelyPoint(self.longitude, self.latitude)

    def to_tuple(self) -> Tuple[float, float]:
        """Convert to (lon, lat) tuple"""
        return (self.longitude, self.latitude)

    def __str__(self) -> str:
        return f"Point(lon={self.longitude}, lat={self.latitude})"

    def __repr__(self) -> str:
        return self.__str__()


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points
    on the Earth's surface using the Haversine formula.

    Args:
        lat1: Latitude of first point in decimal degrees
        lon1: Longitude of first point in decimal degrees
        lat2: Latitude of second point in decimal degrees
        lon2: Longitude of second point in decimal degrees

    Returns:
        Distance between points in meters
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat/2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon/2)**2
    c = 2 * math.asin(math.sqrt(a))

    return EARTH_RADIUS * c


def distance_meters(a: Union[Point, ShapelyPoint], b: Union[Point, ShapelyPoint]) -> float:
    """Great-circle distance in meters between two points (geo_utils or shapely)."""
    if isinstance(a, Point):
        a = a.to_shapely()
    if isinstance(b, Point):
        b = b.to_shapely()
    return haversine_distance(a.y, a.x, b.y, b.x)


def to_projected(lat: float, lon: float) -> Tuple[float, float]:
    """
    Convert a WGS84 latitude/longitude to UTM Zone 20N.

    Returns:
        (easting, northing) in meters
    """
    easting, northing = _TO_PROJECTED.transform(lon, lat)
    return float(easting), float(northing)


def to_geographic(easting: float, northing: float) -> Tuple[float, float]:
    """
    Convert a UTM Zone 20N easting/northing to WGS84.

    Returns:
        (lat, lon) in decimal degrees
    """
    lon, lat = _TO_GEOGRAPHIC.transform(easting, northing)
    return float(lat), float(lon)


def to_geographic_many(eastings, northings) -> List[Tuple[float, float]]:
    """Vectorised UTM -> WGS84 conversion; returns a list of (lon, lat)."""
    lons, lats = _TO_GEOGRAPHIC.transform(eastings, northings)
    return [(float(lon), float(lat)) for lon, lat in zip(lons, lats)]


def project_geometry(geometry: BaseGeometry) -> BaseGeometry:
    """Transform a geographic geometry into the projected system."""
    return transform(_TO_PROJECTED.transform, geometry)


def unproject_geometry(geometry: BaseGeometry) -> BaseGeometry:
    """Transform a projected geometry back into geographic coordinates."""
    return transform(_TO_GEOGRAPHIC.transform, geometry)


def normalize_radius(value: Any) -> float:
    """
    Parse a buffer radius in meters.

    Anything that is not a finite, non-negative number becomes 0 (no buffer).
    """
    try:
        radius = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(radius) or radius < 0:
        return 0.0
    return radius


def buffer_by(geometry: BaseGeometry, radius_m: Any, resolution: int = 16) -> Optional[BaseGeometry]:
    """
    Expand a geometry by a radius in meters.

    Args:
        geometry: Geographic shapely geometry
        radius_m: Buffer radius in meters (normalized by normalize_radius)
        resolution: Segments per quarter circle

    Returns:
        Buffered polygon in geographic coordinates, or None when the radius is 0
    """
    radius = normalize_radius(radius_m)
    if radius == 0:
        return None
    return unproject_geometry(project_geometry(geometry).buffer(radius, resolution))


def point_in_polygon(point: Union[Point, ShapelyPoint], polygon: BaseGeometry) -> bool:
    """True if the point lies inside the polygon or on its boundary."""
    if isinstance(point, Point):
        point = point.to_shapely()
    if polygon is None or polygon.is_empty:
        return False
    return polygon.covers(point)


def boundary_intersects(a: BaseGeometry, b: BaseGeometry) -> bool:
    """True if the two geometries share any point."""
    if a is None or b is None or a.is_empty or b.is_empty:
        return False
    return a.intersects(b)


def outline(geometry: BaseGeometry) -> Optional[BaseGeometry]:
    """
    Reduce a geometry to its line representation.

    Polygons become their boundary rings, lines are returned as-is and
    anything else (points) has no line representation.
    """
    if geometry is None or geometry.is_empty:
        return None
    if geometry.geom_type in AREAL_TYPES:
        return geometry.boundary
    if geometry.geom_type in LINEAR_TYPES:
        return geometry
    return None


def nearest_point_on_boundary(geometry: BaseGeometry,
                              reference_point: Union[Point, ShapelyPoint]) -> Optional[ShapelyPoint]:
    """
    Find the point on a geometry's outline closest to a reference point.

    Returns:
        Geographic shapely Point, or None if the geometry has no outline
    """
    if isinstance(reference_point, Point):
        reference_point = reference_point.to_shapely()
    line = outline(geometry)
    if line is None:
        return None
    on_line, _ = nearest_points(project_geometry(line), project_geometry(reference_point))
    return unproject_geometry(on_line)


def edge_distance_meters(a: BaseGeometry, b: BaseGeometry) -> Optional[float]:
    """
    Nearest-edge distance in meters between two geometries.

    Both sides with an outline: distance between the closest points of the
    two outlines. One side a point: the point is projected onto the other
    side's outline. Otherwise the distance is unavailable (None).
    """
    line_a = outline(a)
    line_b = outline(b)

    if line_a is not None and line_b is not None:
        pa, pb = nearest_points(project_geometry(line_a), project_geometry(line_b))
        return distance_meters(unproject_geometry(pa), unproject_geometry(pb))

    if line_b is not None and a is not None and a.geom_type == 'Point':
        return distance_meters(a, nearest_point_on_boundary(b, a))

    if line_a is not None and b is not None and b.geom_type == 'Point':
        return distance_meters(b, nearest_point_on_boundary(a, b))

    return None


def first_and_last_coords(geometry: BaseGeometry) -> Optional[Tuple[Tuple[float, float], Tuple[float, float]]]:
    """First and last (lon, lat) of a LineString or MultiLineString (parts flattened)."""
    if isinstance(geometry, LineString):
        coords = list(geometry.coords)
    elif isinstance(geometry, MultiLineString):
        coords = [c for part in geometry.geoms for c in part.coords]
    else:
        return None
    if len(coords) < 2:
        return None
    return tuple(coords[0][:2]), tuple(coords[-1][:2])


def geodesic_length(geometry: BaseGeometry) -> float:
    """Length of a line (or polygon outline) in meters on the WGS84 ellipsoid."""
    return float(_GEOD.geometry_length(geometry))


def geodesic_area_perimeter(geometry: BaseGeometry) -> Tuple[float, float]:
    """Area (m²) and perimeter (m) of a polygon on the WGS84 ellipsoid."""
    area, perimeter = _GEOD.geometry_area_perimeter(geometry)
    return abs(float(area)), float(perimeter)


def measure(geometry: BaseGeometry) -> Dict[str, Any]:
    """
    Measure a geometry according to its type.

    Returns:
        Point   -> {'geometry_type', 'easting', 'northing'}
        Line    -> {'geometry_type', 'length_m', 'start', 'end'}
        Polygon -> {'geometry_type', 'area_m2', 'perimeter_m', 'bbox'}
        Other   -> {'geometry_type'}
    """
    geom_type = geometry.geom_type

    if geom_type == 'Point':
        easting, northing = to_projected(geometry.y, geometry.x)
        return {'geometry_type': 'Point', 'easting': easting, 'northing': northing}

    if geom_type in LINEAR_TYPES:
        ends = first_and_last_coords(geometry)
        return {
            'geometry_type': 'Line',
            'length_m': geodesic_length(geometry),
            'start': ends[0] if ends else None,
            'end': ends[1] if ends else None,
        }

    if geom_type in AREAL_TYPES:
        area, perimeter = geodesic_area_perimeter(geometry)
        return {
            'geometry_type': 'Polygon',
            'area_m2': area,
            'perimeter_m': perimeter,
            'bbox': tuple(geometry.bounds),
        }

    logger.debug(f"No measurement defined for geometry type {geom_type}")
    return {'geometry_type': geom_type}


def meters_per_degree(latitude: float) -> Tuple[float, float]:
    """Approximate meters per degree of (longitude, latitude) at a latitude."""
    lat_rad = math.radians(latitude)
    return METERS_PER_DEGREE_LON_AT_EQUATOR * math.cos(lat_rad), METERS_PER_DEGREE_LAT


def is_areal(geometry: BaseGeometry) -> bool:
    return isinstance(geometry, (Polygon, MultiPolygon))
