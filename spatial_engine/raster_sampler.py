"""
Raster sampler for the elevation model (DEM).

The DEM is opened once per session through a RasterProvider, which coalesces
concurrent first requests into a single pending load. Cells are addressed by
linear interpolation over the raster bounding box, clamped to the grid, and
read one window at a time with rasterio in a worker thread.

Slope uses forward differences to the east and south neighbours. Cell size in
meters comes straight from the pixel size when the raster is in UTM Zone 20N,
and from a local meters-per-degree approximation otherwise.
"""

import asyncio
import math
import logging
import threading
from typing import Callable, Optional, Tuple

import rasterio
from rasterio.errors import RasterioError
from rasterio.windows import Window

from screening_utils.geo_utils import PROJECTED_CRS_EPSG, meters_per_degree, to_projected
from .models import ElevationSample

logger = logging.getLogger(__name__)


class RasterLoadError(RuntimeError):
    """Raised when the elevation raster cannot be opened."""


class RasterHandle:
    """
    Read-only view of one open elevation raster.

    Attributes:
        bounds: (min_x, min_y, max_x, max_y) in the raster's native CRS
        width, height: grid size in cells
        pixel_size_x, pixel_size_y: cell size in native units
        nodata: no-data sentinel or None
        is_projected: True when the raster is in EPSG:32620
    """

    def __init__(self, dataset, band: int = 1):
        self._dataset = dataset
        self._band = band
        self._lock = threading.Lock()

        left, bottom, right, top = dataset.bounds
        self.bounds = (float(left), float(bottom), float(right), float(top))
        self.width = int(dataset.width)
        self.height = int(dataset.height)
        self.nodata = dataset.nodata

        epsg = dataset.crs.to_epsg() if dataset.crs is not None else None
        self.is_projected = epsg == PROJECTED_CRS_EPSG

        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Raster has an empty grid ({self.width}x{self.height})")
        self.pixel_size_x = (self.bounds[2] - self.bounds[0]) / self.width
        self.pixel_size_y = (self.bounds[3] - self.bounds[1]) / self.height
        for size in (self.pixel_size_x, self.pixel_size_y):
            if not math.isfinite(size) or size == 0:
                raise ValueError(f"Raster pixel size must be non-zero and finite, got {size}")

    def __repr__(self):
        return (f"RasterHandle(width={self.width}, height={self.height}, "
                f"bounds={self.bounds}, projected={self.is_projected})")

    def to_raster_xy(self, lon: float, lat: float) -> Tuple[float, float]:
        """Convert lon/lat into the raster's native coordinates."""
        if self.is_projected:
            return to_projected(lat, lon)
        return lon, lat

    def _clamp(self, col: int, row: int) -> Tuple[int, int]:
        return min(max(col, 0), self.width - 1), min(max(row, 0), self.height - 1)

    def coord_to_cell(self, x: float, y: float) -> Tuple[int, int]:
        """Map native coordinates to a (col, row) index, clamped to the grid."""
        min_x, min_y, max_x, max_y = self.bounds
        col = math.floor((x - min_x) / (max_x - min_x) * self.width)
        row = math.floor((max_y - y) / (max_y - min_y) * self.height)
        return self._clamp(col, row)

    def read_cell(self, col: int, row: int) -> Optional[float]:
        """Read one cell (indices clamped). None for no-data or non-finite values."""
        col, row = self._clamp(col, row)
        with self._lock:
            data = self._dataset.read(self._band, window=Window(col, row, 1, 1))
        value = float(data[0, 0])
        if not math.isfinite(value):
            return None
        if self.nodata is not None and value == float(self.nodata):
            return None
        return value

    def read_neighbourhood(self, col: int, row: int) -> Tuple[Optional[float], Optional[float], Optional[float]]:
        """Read a cell plus its east and south neighbours."""
        z = self.read_cell(col, row)
        if z is None:
            return None, None, None
        return z, self.read_cell(col + 1, row), self.read_cell(col, row + 1)

    def meters_per_cell(self, lat: float) -> Tuple[float, float]:
        """Real-world cell size (dx, dy) in meters at a latitude."""
        if self.is_projected:
            return abs(self.pixel_size_x), abs(self.pixel_size_y)
        m_per_deg_x, m_per_deg_y = meters_per_degree(lat)
        return abs(self.pixel_size_x) * m_per_deg_x, abs(self.pixel_size_y) * m_per_deg_y

    def close(self) -> None:
        with self._lock:
            self._dataset.close()


def open_dem(path: str, band: int = 1) -> RasterHandle:
    """
    Open an elevation raster with rasterio.

    Raises:
        RasterLoadError: if the file cannot be opened or has an unusable grid
    """
    logger.info(f"Opening elevation raster {path}")
    try:
        dataset = rasterio.open(path)
    except (RasterioError, OSError) as e:
        raise RasterLoadError(f"Could not open elevation raster {path}: {e}") from e
    try:
        handle = RasterHandle(dataset, band=band)
    except ValueError as e:
        dataset.close()
        raise RasterLoadError(f"Unusable elevation raster {path}: {e}") from e
    logger.debug(f"Loaded {handle!r}")
    return handle


class RasterProvider:
    """
    Lazily loads and caches one RasterHandle per session.

    Concurrent first calls to get_raster() await the same pending load. A
    failed load is not cached, so a later call will try again.
    """

    def __init__(self, loader: Callable[[], RasterHandle]):
        self._loader = loader
        self._handle: Optional[RasterHandle] = None
        self._pending: Optional[asyncio.Future] = None

    @classmethod
    def from_path(cls, path: str) -> "RasterProvider":
        return cls(lambda: open_dem(path))

    @property
    def loaded(self) -> bool:
        return self._handle is not None

    async def get_raster(self) -> RasterHandle:
        if self._handle is not None:
            return self._handle
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._load())
        pending = self._pending
        try:
            return await pending
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise

    async def _load(self) -> RasterHandle:
        handle = await asyncio.to_thread(self._loader)
        self._handle = handle
        return handle

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self._pending = None


def slope_from_neighbours(z: float, z_east: Optional[float], z_south: Optional[float],
                          dx: float, dy: float) -> Optional[Tuple[float, float]]:
    """
    Slope (degrees, percent) from forward differences.

    Returns None when either neighbour is missing.
    """
    if z_east is None or z_south is None:
        return None
    dzdx = (z_east - z) / (dx or 1)
    dzdy = (z_south - z) / (dy or 1)
    magnitude = math.sqrt(dzdx * dzdx + dzdy * dzdy)
    return math.degrees(math.atan(magnitude)), magnitude * 100


async def sample_point(raster: RasterHandle, lon: float, lat: float) -> ElevationSample:
    """Sample elevation and slope at a geographic location."""
    x, y = raster.to_raster_xy(lon, lat)
    col, row = raster.coord_to_cell(x, y)
    z, z_east, z_south = await asyncio.to_thread(raster.read_neighbourhood, col, row)
    if z is None:
        return ElevationSample(lon, lat, None)

    dx, dy = raster.meters_per_cell(lat)
    slope = slope_from_neighbours(z, z_east, z_south, dx, dy)
    if slope is None:
        return ElevationSample(lon, lat, z)
    return ElevationSample(lon, lat, z, slope[0], slope[1])


async def sample_elevation(raster: RasterHandle, lon: float, lat: float) -> Optional[float]:
    x, y = raster.to_raster_xy(lon, lat)
    col, row = raster.coord_to_cell(x, y)
    return await asyncio.to_thread(raster.read_cell, col, row)


async def sample_slope(raster: RasterHandle, lon: float, lat: float) -> Optional[Tuple[float, float]]:
    """(slope_degrees, slope_percent) at a location, or None."""
    sample = await sample_point(raster, lon, lat)
    if sample.slope_degrees is None:
        return None
    return sample.slope_degrees, sample.slope_percent
