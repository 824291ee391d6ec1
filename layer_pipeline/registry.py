"""
Registry for layer sources.

The registry provides a central place to register and retrieve layer sources
by name, so layers are declared once and looked up everywhere else.
"""

from typing import Dict, List, Optional
from .sources import LayerSource


class LayerRegistry:
    """Central registry for all layer sources"""

    def __init__(self):
        self._sources: Dict[str, LayerSource] = {}

    def register(self, source: LayerSource) -> None:
        """Register a layer source"""
        if source.name in self._sources:
            raise ValueError(f"Layer source '{source.name}' already registered")

        self._sources[source.name] = source

    def add_local_source(self, name: str, local_path: str, format: str = 'geojson',
                         label_field: Optional[str] = None, description: str = '') -> LayerSource:
        """
        Register a layer stored on the local filesystem.

        Registering under an existing name replaces that source, so a local
        copy can stand in for a remote layer.
        """
        source = LayerSource(
            name=name,
            source_type='file',
            format=format,
            path=local_path,
            label_field=label_field,
            description=description,
        )
        self._sources[name] = source
        return source

    def get(self, name: str) -> Optional[LayerSource]:
        """Get a layer source by name"""
        return self._sources.get(name)

    def list_sources(self) -> List[str]:
        """List all registered source names"""
        return list(self._sources.keys())

    def list_vector_sources(self) -> List[str]:
        return [name for name, source in self._sources.items() if not source.is_raster]

    def get_all_sources(self) -> Dict[str, LayerSource]:
        """Return a shallow copy of all sources for inspection."""
        return dict(self._sources)

    def clear(self) -> None:
        """Clear all registered sources (mainly for testing)"""
        self._sources.clear()

# Global singleton registry used throughout the pipeline
REGISTRY = LayerRegistry()
