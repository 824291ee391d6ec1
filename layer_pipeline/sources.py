"""
Layer source definitions for the layer pipeline.

A LayerSource encapsulates everything needed to acquire one reference layer
or raster: where to get it, what format it is in and how it is labelled.
"""

from typing import Optional
from dataclasses import dataclass

SOURCE_TYPES = ('https', 'http', 'file')
FORMATS = ('geojson', 'geotiff')


@dataclass
class LayerSource:
    """
    Represents a reference layer (vector) or elevation raster source.
    """
    name: str
    source_type: str  # 'https', 'http' or 'file'
    format: str       # 'geojson' or 'geotiff'

    url: Optional[str] = None
    path: Optional[str] = None
    label_field: Optional[str] = None
    category: Optional[str] = None      # e.g. 'protected', 'watershed', 'policy'
    metadata_url: Optional[str] = None
    description: Optional[str] = None
    cache_key: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("LayerSource name cannot be empty.")
        self.source_type = self.source_type.lower()
        if self.source_type not in SOURCE_TYPES:
            raise ValueError(f"Invalid source_type: {self.source_type}")

        self.format = self.format.lower()
        if self.format not in FORMATS:
            raise ValueError(f"Invalid format: {self.format}")

        if self.source_type in ('https', 'http') and not self.url:
            raise ValueError(f"URL must be provided for source_type '{self.source_type}'.")
        if self.source_type == 'file' and not self.path:
            raise ValueError("path must be provided for a 'file' source.")

        if not self.cache_key:
            self.cache_key = self.name

    @property
    def is_raster(self) -> bool:
        return self.format == 'geotiff'

    @property
    def is_remote(self) -> bool:
        return self.source_type in ('https', 'http')

    def __repr__(self):
        return f"LayerSource(name='{self.name}', type='{self.source_type}', format='{self.format}')"
