"""
Spatial analysis engine for siting-risk screening of environmental permits.

Callers build a target with target_from_geojson(), then await run_analysis()
(or call run_analysis_sync()) with records, reference layers and a shared
RasterProvider.
"""

from .aggregator import geometry_metrics, run_analysis, run_analysis_sync
from .config import AnalysisConfig, RecordFilters
from .models import (
    AnalysisResult, InvalidTargetError, LineTarget, PointTarget, PolygonTarget, ReferenceLayer,
    target_from_geojson, target_from_geometry
)
from .raster_sampler import RasterLoadError, RasterProvider, open_dem

__all__ = [
    'AnalysisConfig', 'AnalysisResult', 'InvalidTargetError', 'LineTarget', 'PointTarget',
    'PolygonTarget', 'RasterLoadError', 'RasterProvider', 'RecordFilters', 'ReferenceLayer',
    'geometry_metrics', 'open_dem', 'run_analysis', 'run_analysis_sync', 'target_from_geojson',
    'target_from_geometry',
]
