"""
Layer pipeline for the siting screening engine.

Declares the reference layers and the elevation model as LayerSources,
downloads them once into a shared raw cache and serves them as
ReferenceLayers for analysis runs.
"""

import logging

from .registry import LayerRegistry
from .pipeline import LayerPipeline
from .sources import LayerSource

# Import layer sources to register them to the singleton REGISTRY
from . import layer_sources

from .registry import REGISTRY as registry

logger = logging.getLogger(__name__)


def load_layers(names, pipeline: LayerPipeline = None):
    """Load reference layers by name from the global registry"""
    pipeline = pipeline or LayerPipeline(registry)
    return pipeline.load_layers(names)


def add_local_layer(name: str, local_path: str, format: str = 'geojson',
                    label_field: str = None, description: str = ''):
    """
    Point a layer at a local file instead of its remote source.

    Example:
        add_local_layer('Municipality', '/data/Municipality.geojson', label_field='NAME_1')
    """
    return registry.add_local_source(name, local_path, format, label_field, description)


def prefetch_all(pipeline: LayerPipeline = None):
    """Download and process every registered source.

    Errors are logged and the loop continues. Returns the names that failed.
    """
    pipeline = pipeline or LayerPipeline(registry)
    vector_names = pipeline.registry.list_vector_sources()
    failed = [name for name, layer in pipeline.load_layers(vector_names).items() if layer is None]
    for name in pipeline.registry.list_sources():
        if name in vector_names:
            continue
        try:
            pipeline.resolve_raster_path(name)
        except Exception as exc:
            logger.error("Prefetch failed for %s: %s", name, exc)
            failed.append(name)
    return failed


__all__ = ['LayerRegistry', 'LayerPipeline', 'LayerSource', 'registry', 'layer_sources',
           'load_layers', 'add_local_layer', 'prefetch_all']
