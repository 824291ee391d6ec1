import pytest
from shapely.geometry import GeometryCollection, LineString, MultiLineString, MultiPolygon, Point, Polygon, box

from spatial_engine.models import (
    AnalysisResult, AreaRow, ElevationAssessment, HistogramSeries, InvalidTargetError, LineTarget,
    MetricsBlock, PointTarget, PolygonTarget, ProfilePoint, ProfileSeries, Row, rows,
    target_from_geojson, target_from_geometry,
)

SQUARE = [[[-61.3, 10.5], [-61.29, 10.5], [-61.29, 10.51], [-61.3, 10.51], [-61.3, 10.5]]]


class TestTargetFromGeoJSON:
    @pytest.mark.parametrize("geometry, expected", [
        ({"type": "Point", "coordinates": [-61.3, 10.5]}, PointTarget),
        ({"type": "LineString", "coordinates": [[-61.3, 10.5], [-61.29, 10.5]]}, LineTarget),
        ({"type": "MultiLineString", "coordinates": [[[-61.3, 10.5], [-61.29, 10.5]]]}, LineTarget),
        ({"type": "Polygon", "coordinates": SQUARE}, PolygonTarget),
        ({"type": "MultiPolygon", "coordinates": [SQUARE]}, PolygonTarget),
    ])
    def test_geometry_types(self, geometry, expected):
        target = target_from_geojson(geometry)
        assert isinstance(target, expected)

    def test_feature(self):
        feature = {"type": "Feature", "properties": {"name": "site"},
                   "geometry": {"type": "Point", "coordinates": [-61.3, 10.5]}}
        target = target_from_geojson(feature)
        assert target.kind == "Point"
        assert (target.geometry.x, target.geometry.y) == (-61.3, 10.5)

    @pytest.mark.parametrize("obj", [
        None,
        {},
        {"type": "Feature", "geometry": None},
        {"type": "Point"},
        {"type": "Point", "coordinates": []},
        {"type": "Polygon", "coordinates": [[[0, 0], [1, 1]]]},
        {"type": "LineString", "coordinates": [[-61.3, 10.5], [-61.3, 10.5]]},
        {"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [2, 2], [0, 0]]]},
        {"type": "Hexagon", "coordinates": [[0, 0]]},
        [1, 2],
        "Point",
        {"type": "Feature", "geometry": "x"},
        {"type": "Feature", "geometry": [[-61.3, 10.5]]},
    ])
    def test_invalid_targets(self, obj):
        with pytest.raises(InvalidTargetError):
            target_from_geojson(obj)

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            target_from_geojson({"type": "Point"})


class TestTargetFromGeometry:
    def test_dispatch(self):
        assert target_from_geometry(Point(0, 0)).kind == "Point"
        assert target_from_geometry(LineString([(0, 0), (1, 0)])).kind == "Line"
        assert target_from_geometry(MultiLineString([[(0, 0), (1, 0)]])).kind == "Line"
        assert target_from_geometry(box(0, 0, 1, 1)).kind == "Polygon"
        assert target_from_geometry(MultiPolygon([box(0, 0, 1, 1)])).kind == "Polygon"

    @pytest.mark.parametrize("geometry", [None, Point(), Polygon(), GeometryCollection([Point(0, 0)])])
    def test_rejected(self, geometry):
        with pytest.raises(InvalidTargetError):
            target_from_geometry(geometry)

    def test_non_finite_point(self):
        with pytest.raises(InvalidTargetError):
            PointTarget(Point(float("nan"), 0))

    def test_wrong_wrapper(self):
        with pytest.raises(InvalidTargetError):
            PolygonTarget(LineString([(0, 0), (1, 0)]))

    def test_targets_are_immutable(self):
        target = PointTarget(Point(0, 0))
        with pytest.raises(AttributeError):
            target.geometry = Point(1, 1)


class TestResultTypes:
    def test_rows_helper(self):
        assert rows(("a", "1"), ("b", "2")) == (Row("a", "1"), Row("b", "2"))

    def test_histogram_dict(self):
        series = HistogramSeries(("0–1", "1–2"), (3, 4), title="Slope distribution", x_title="Slope bins (degrees)")
        assert series.to_dict() == {
            "kind": "histogram",
            "labels": ["0–1", "1–2"],
            "counts": [3, 4],
            "title": "Slope distribution",
            "x_title": "Slope bins (degrees)",
            "y_title": "Sample count",
        }

    def test_profile_dict(self):
        series = ProfileSeries((ProfilePoint(0.0, 10.0), ProfilePoint(25.0, 12.5)))
        assert series.to_dict()["points"][1] == {"distance_m": 25.0, "elevation": 12.5}

    def test_analysis_result_dict(self):
        result = AnalysisResult(
            target_type="Point",
            records=({"id": 1},),
            sensitive_areas=(AreaRow("Nariva Swamp", "within boundaries"),),
            attributes=(),
            metrics=MetricsBlock("Point", rows(("CRS", "UTM WGS 1984 Zone 20N"))),
            elevation=ElevationAssessment("—", rows(("Elevation", "DEM unavailable"))),
        )
        payload = result.to_dict()
        assert payload["sensitive_areas"] == [{"area": "Nariva Swamp", "distance": "within boundaries"}]
        assert payload["elevation"] == {
            "type": "—",
            "rows": [{"key": "Elevation", "value": "DEM unavailable"}],
            "chart": None,
            "slope_chart": None,
            "stats": {},
        }
        assert payload["meta"] == {}
