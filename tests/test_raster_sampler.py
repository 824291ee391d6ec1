import asyncio
import math
from unittest import mock

import numpy as np
import pytest

from conftest import E0, N0
from screening_utils.geo_utils import meters_per_degree, to_geographic
from spatial_engine.raster_sampler import (
    RasterHandle, RasterLoadError, RasterProvider, open_dem, sample_elevation,
    sample_point, sample_slope, slope_from_neighbours,
)

WIDTH = 20
HEIGHT = 10
RES = 10.0


def cell_centre(col, row):
    lat, lon = to_geographic(E0 + RES * col + RES / 2, N0 - RES * row - RES / 2)
    return lon, lat


def ramp(width=WIDTH, height=HEIGHT):
    """Elevation equal to the column index: a 10 % grade rising to the east."""
    return np.tile(np.arange(width, dtype="float32"), (height, 1))


@pytest.fixture
def ramp_raster(write_geotiff):
    handle = open_dem(write_geotiff(ramp()))
    yield handle
    handle.close()


class TestRasterHandle:
    def test_grid_properties(self, ramp_raster):
        assert ramp_raster.width == WIDTH
        assert ramp_raster.height == HEIGHT
        assert ramp_raster.is_projected
        assert ramp_raster.bounds == pytest.approx((E0, N0 - RES * HEIGHT, E0 + RES * WIDTH, N0))
        assert ramp_raster.pixel_size_x == pytest.approx(RES)
        assert ramp_raster.meters_per_cell(10.4) == pytest.approx((RES, RES))

    def test_coord_to_cell(self, ramp_raster):
        assert ramp_raster.coord_to_cell(E0 + 35, N0 - 15) == (3, 1)

    @pytest.mark.parametrize("x, y, expected", [
        (E0 - 500, N0 - 15, (0, 1)),
        (E0 + 5000, N0 - 15, (WIDTH - 1, 1)),
        (E0 + 35, N0 + 500, (3, 0)),
        (E0 + 35, N0 - 5000, (3, HEIGHT - 1)),
    ])
    def test_coord_to_cell_clamps_outside_bounds(self, ramp_raster, x, y, expected):
        assert ramp_raster.coord_to_cell(x, y) == expected

    def test_read_cell(self, ramp_raster):
        assert ramp_raster.read_cell(7, 2) == 7.0
        assert ramp_raster.read_cell(-3, 2) == 0.0
        assert ramp_raster.read_cell(WIDTH + 10, 2) == WIDTH - 1

    def test_zero_pixel_size_is_rejected(self):
        dataset = mock.MagicMock()
        dataset.bounds = (0.0, 0.0, 0.0, 0.0)
        dataset.width = 1
        dataset.height = 1
        with pytest.raises(ValueError):
            RasterHandle(dataset)

    def test_empty_grid_is_rejected(self):
        dataset = mock.MagicMock()
        dataset.bounds = (0.0, 0.0, 10.0, 10.0)
        dataset.width = 0
        dataset.height = 5
        with pytest.raises(ValueError):
            RasterHandle(dataset)


class TestOpenDem:
    def test_missing_file(self, tmp_path):
        with pytest.raises(RasterLoadError):
            open_dem(str(tmp_path / "missing.tif"))

    def test_not_a_raster(self, tmp_path):
        path = tmp_path / "junk.tif"
        path.write_text("not a geotiff")
        with pytest.raises(RasterLoadError):
            open_dem(str(path))


class TestSampling:
    def test_sample_point_on_ramp(self, ramp_raster):
        lon, lat = cell_centre(3, 4)
        sample = asyncio.run(sample_point(ramp_raster, lon, lat))
        assert sample.elevation == 3.0
        assert sample.slope_percent == pytest.approx(10.0)
        assert sample.slope_degrees == pytest.approx(math.degrees(math.atan(0.1)))
        assert (sample.lon, sample.lat) == (lon, lat)

    def test_sample_outside_raster_uses_nearest_edge_cell(self, ramp_raster):
        lat, lon = to_geographic(E0 + 10000, N0 - 15)
        assert asyncio.run(sample_elevation(ramp_raster, lon, lat)) == WIDTH - 1

    def test_east_edge_neighbour_is_clamped(self, ramp_raster):
        lon, lat = cell_centre(WIDTH - 1, 0)
        sample = asyncio.run(sample_point(ramp_raster, lon, lat))
        assert sample.elevation == WIDTH - 1
        assert sample.slope_percent == 0.0

    def test_nodata_cell(self, write_geotiff):
        data = ramp()
        data[2, 5] = -9999
        handle = open_dem(write_geotiff(data, nodata=-9999))
        try:
            lon, lat = cell_centre(5, 2)
            sample = asyncio.run(sample_point(handle, lon, lat))
            assert sample.elevation is None
            assert sample.slope_degrees is None
            # west neighbour has a value but no usable east neighbour
            lon, lat = cell_centre(4, 2)
            sample = asyncio.run(sample_point(handle, lon, lat))
            assert sample.elevation == 4.0
            assert sample.slope_degrees is None
            assert asyncio.run(sample_slope(handle, lon, lat)) is None
        finally:
            handle.close()

    def test_nan_cell(self, write_geotiff):
        data = ramp()
        data[0, 0] = np.nan
        handle = open_dem(write_geotiff(data))
        try:
            lon, lat = cell_centre(0, 0)
            assert asyncio.run(sample_elevation(handle, lon, lat)) is None
        finally:
            handle.close()

    def test_geographic_raster(self, write_geotiff):
        res = 0.001
        handle = open_dem(write_geotiff(ramp(), crs="EPSG:4326", left=-61.3, top=10.5, res=res))
        try:
            assert not handle.is_projected
            lon, lat = -61.3 + res * 3 + res / 2, 10.5 - res * 2 - res / 2
            sample = asyncio.run(sample_point(handle, lon, lat))
            assert sample.elevation == 3.0
            dx, _ = meters_per_degree(lat)
            assert sample.slope_percent == pytest.approx(100 / (res * dx), rel=1e-6)
        finally:
            handle.close()

    def test_sample_slope_returns_pair(self, ramp_raster):
        lon, lat = cell_centre(2, 2)
        degrees, percent = asyncio.run(sample_slope(ramp_raster, lon, lat))
        assert percent == pytest.approx(10.0)
        assert degrees == pytest.approx(5.7106, abs=1e-3)


class TestSlopeFromNeighbours:
    def test_missing_neighbour(self):
        assert slope_from_neighbours(1.0, None, 2.0, 10, 10) is None
        assert slope_from_neighbours(1.0, 2.0, None, 10, 10) is None

    def test_combined_gradient(self):
        degrees, percent = slope_from_neighbours(0.0, 3.0, 4.0, 10, 10)
        assert percent == pytest.approx(50.0)
        assert degrees == pytest.approx(math.degrees(math.atan(0.5)))

    def test_zero_cell_size_falls_back_to_unit(self):
        _, percent = slope_from_neighbours(0.0, 1.0, 0.0, 0, 0)
        assert percent == pytest.approx(100.0)


class TestRasterProvider:
    def test_concurrent_requests_share_one_load(self, write_geotiff):
        path = write_geotiff(ramp())
        loader = mock.Mock(side_effect=lambda: open_dem(path))
        provider = RasterProvider(loader)

        async def fetch_twice():
            return await asyncio.gather(provider.get_raster(), provider.get_raster())

        first, second = asyncio.run(fetch_twice())
        try:
            assert first is second
            assert provider.loaded
            assert loader.call_count == 1
            # later calls reuse the cached handle
            assert asyncio.run(provider.get_raster()) is first
            assert loader.call_count == 1
        finally:
            provider.close()
        assert not provider.loaded

    def test_failed_load_is_retried(self, write_geotiff):
        path = write_geotiff(ramp())
        loader = mock.Mock(side_effect=[RasterLoadError("boom"), open_dem(path)])
        provider = RasterProvider(loader)

        with pytest.raises(RasterLoadError):
            asyncio.run(provider.get_raster())
        assert not provider.loaded

        handle = asyncio.run(provider.get_raster())
        try:
            assert handle.width == WIDTH
            assert loader.call_count == 2
        finally:
            provider.close()

    def test_from_path(self, write_geotiff):
        provider = RasterProvider.from_path(write_geotiff(ramp()))
        try:
            handle = asyncio.run(provider.get_raster())
            assert handle.is_projected
        finally:
            provider.close()
