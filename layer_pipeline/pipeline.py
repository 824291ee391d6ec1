"""
Layer pipeline orchestrator.

LayerPipeline resolves registered sources to local files (downloading remote
ones through the shared raw cache), processes them, and keeps the resulting
reference layers for the rest of the session.
"""

import os
import logging
from typing import Dict, Iterable, Optional

from spatial_engine.models import ReferenceLayer
from .registry import REGISTRY, LayerRegistry
from .sources import LayerSource
from .loaders import LoaderFactory
from .processors import ProcessorFactory
from .download_cache import RawDownloadCache
from .layer_sources import DEM_SOURCE_NAME


logger = logging.getLogger(__name__)


class LayerPipeline:
    """Loads reference layers and the elevation raster once per session"""

    def __init__(self, registry: Optional[LayerRegistry] = None,
                 download_cache: Optional[RawDownloadCache] = None):
        self.registry = registry or REGISTRY
        self._download_cache = download_cache
        self._layers: Dict[str, ReferenceLayer] = {}
        self._raster_paths: Dict[str, str] = {}

    @property
    def download_cache(self) -> RawDownloadCache:
        if self._download_cache is None:
            self._download_cache = RawDownloadCache()
        return self._download_cache

    def _get_source(self, name: str) -> LayerSource:
        source = self.registry.get(name)
        if not source:
            raise ValueError(f"Unknown layer source: {name}")
        return source

    def load_layer(self, name: str, force_reload: bool = False) -> ReferenceLayer:
        """
        Load a vector reference layer by name.

        Raises:
            ValueError: unknown name, raster source or unreadable file
            RuntimeError: the raw data could not be acquired
        """
        source = self._get_source(name)
        if source.is_raster:
            raise ValueError(f"Layer source '{name}' is a raster; use resolve_raster_path()")

        if not force_reload and name in self._layers:
            logger.debug(f"Session cache hit for {name}")
            return self._layers[name]

        raw_path = self._acquire_data(source)
        if not raw_path:
            raise RuntimeError(f"Failed to acquire data for {name}")

        gdf = ProcessorFactory.get_processor(source.format).process(source, raw_path)
        _ = gdf.sindex  # build the spatial index once, up front
        layer = ReferenceLayer(name=name, features=gdf, label_field=source.label_field)
        self._layers[name] = layer
        logger.info(f"Loaded {len(gdf)} features for {name}")
        return layer

    def load_layers(self, names: Iterable[str]) -> Dict[str, Optional[ReferenceLayer]]:
        """Load several layers; a layer that fails is logged and mapped to None."""
        layers: Dict[str, Optional[ReferenceLayer]] = {}
        for name in names:
            try:
                layers[name] = self.load_layer(name)
            except Exception as e:
                logger.error(f"Failed to load layer {name}: {e}")
                layers[name] = None
        loaded = sum(1 for layer in layers.values() if layer is not None)
        logger.info(f"Loaded {loaded} of {len(layers)} reference layers")
        return layers

    def resolve_raster_path(self, name: str = DEM_SOURCE_NAME) -> str:
        """Local path of a raster source, downloading it if needed."""
        if name in self._raster_paths:
            return self._raster_paths[name]

        source = self._get_source(name)
        if not source.is_raster:
            raise ValueError(f"Layer source '{name}' is not a raster")

        raw_path = self._acquire_data(source)
        if not raw_path:
            raise RuntimeError(f"Failed to acquire data for {name}")
        path = ProcessorFactory.get_processor(source.format).process(source, raw_path)
        self._raster_paths[name] = path
        return path

    def _acquire_data(self, source: LayerSource) -> Optional[str]:
        """Local path of the raw file for *source*"""
        if source.source_type == 'file':
            if os.path.exists(source.path):
                return source.path
            logger.error(f"Local file not found: {source.path}")
            return None

        def _download(target_fp: str) -> bool:
            loader = LoaderFactory.for_source(source)
            return loader.load(source, target_fp)

        return self.download_cache.ensure(source.url, source.name, _download)

    def clear(self, name: Optional[str] = None) -> None:
        """Forget session-cached layers (one or all)"""
        if name:
            self._layers.pop(name, None)
            self._raster_paths.pop(name, None)
        else:
            self._layers.clear()
            self._raster_paths.clear()
