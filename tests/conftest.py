import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import LineString, Point, box

from screening_utils.geo_utils import unproject_geometry

# A reference corner in UTM Zone 20N, central Trinidad
E0 = 680000.0
N0 = 1150000.0


@pytest.fixture
def utm_box():
    """Build a geographic polygon from UTM offsets (meters from E0/N0)."""
    def _box(x0, y0, x1, y1):
        return unproject_geometry(box(E0 + x0, N0 + y0, E0 + x1, N0 + y1))
    return _box


@pytest.fixture
def utm_point():
    def _point(dx, dy):
        return unproject_geometry(Point(E0 + dx, N0 + dy))
    return _point


@pytest.fixture
def utm_line():
    def _line(*offsets):
        return unproject_geometry(LineString([(E0 + dx, N0 + dy) for dx, dy in offsets]))
    return _line


@pytest.fixture
def write_geotiff(tmp_path):
    """Write a single-band float32 GeoTIFF and return its path.

    data is indexed [row, col]; (left, top) is the outer corner of cell (0, 0).
    """
    def _write(data, crs="EPSG:32620", left=E0, top=N0, res=10.0, nodata=None, name="dem.tif"):
        data = np.asarray(data, dtype="float32")
        path = tmp_path / name
        with rasterio.open(
            path, "w", driver="GTiff",
            height=data.shape[0], width=data.shape[1], count=1, dtype="float32",
            crs=crs, transform=from_origin(left, top, res, res), nodata=nodata,
        ) as dst:
            dst.write(data, 1)
        return str(path)
    return _write
