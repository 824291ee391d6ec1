"""
Layer processors for different file formats.

Each processor turns a raw downloaded file into what the engine consumes:
a GeoDataFrame in EPSG:4326 for vector layers, a verified path for rasters.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import geopandas as gpd
import rasterio
from rasterio.errors import RasterioError

from .sources import LayerSource


logger = logging.getLogger(__name__)

TARGET_CRS = "EPSG:4326"


class BaseProcessor(ABC):
    """Abstract base class for layer processors"""

    @abstractmethod
    def process(self, source: LayerSource, input_path: str) -> Any:
        """Process data from input_path according to source configuration"""
        pass


class GeoJSONProcessor(BaseProcessor):
    """Processor for GeoJSON format"""

    def process(self, source: LayerSource, input_path: str) -> gpd.GeoDataFrame:
        """Load GeoJSON into a GeoDataFrame in EPSG:4326"""
        try:
            gdf = gpd.read_file(input_path)
        except Exception as e:
            logger.error(f"Error processing GeoJSON {source.name}: {e}")
            raise ValueError(str(e)) from e

        if gdf.empty:
            raise ValueError(f"GeoJSON file for {source.name} is empty.")

        if gdf.crs is None:
            logger.warning(f"No CRS found for {source.name}, assuming {TARGET_CRS}")
            gdf = gdf.set_crs(TARGET_CRS)
        elif gdf.crs != TARGET_CRS:
            logger.info(f"Reprojecting {source.name} from {gdf.crs} to {TARGET_CRS}")
            gdf = gdf.to_crs(TARGET_CRS)

        # Drop features without geometry; they can never intersect anything
        missing = gdf.geometry.isna() | gdf.geometry.is_empty
        if missing.any():
            logger.warning(f"Dropping {int(missing.sum())} features without geometry from {source.name}")
            gdf = gdf[~missing].reset_index(drop=True)

        return gdf


class GeoTIFFProcessor(BaseProcessor):
    """Processor for GeoTIFF rasters; checks the file opens and has a CRS"""

    def process(self, source: LayerSource, input_path: str) -> str:
        try:
            with rasterio.open(input_path) as src:
                if src.crs is None:
                    raise ValueError(f"Raster {source.name} has no CRS")
                logger.debug(f"{source.name}: {src.width}x{src.height} cells, CRS {src.crs}")
        except RasterioError as e:
            logger.error(f"Error processing GeoTIFF {source.name}: {e}")
            raise ValueError(str(e)) from e
        return input_path


class ProcessorFactory:
    """Factory for creating appropriate processors"""

    _processors = {
        'geojson': GeoJSONProcessor,
        'json': GeoJSONProcessor,
        'geotiff': GeoTIFFProcessor,
        'tif': GeoTIFFProcessor,
    }

    @classmethod
    def get_processor(cls, format_type: str) -> BaseProcessor:
        """Get appropriate processor for format type"""
        processor_class = cls._processors.get(format_type.lower())
        if not processor_class:
            raise ValueError(f"No processor available for format: {format_type}")
        return processor_class()
