#!/usr/bin/env python3
"""
Command-line entry point for a siting-risk screening analysis.

Reads a target geometry (GeoJSON geometry or Feature) and an optional permit
record file, loads reference layers and the DEM through the layer pipeline,
runs the analysis and prints the result as JSON.

Example:
    siting-analysis --target site.geojson --records cecs.csv --record-buffer 1000
"""

import sys
import asyncio
import json
import argparse
import logging
from typing import Any, Dict, List, Mapping, Optional

from screening_utils import file_utils
from layer_pipeline import LayerPipeline, add_local_layer, prefetch_all, registry
from layer_pipeline.layer_sources import DEM_SOURCE_NAME
from .aggregator import run_analysis
from .config import DEFAULT_BUFFER_METERS, AnalysisConfig, RecordFilters
from .models import InvalidTargetError, target_from_geojson
from .raster_sampler import RasterProvider, open_dem

logger = logging.getLogger(__name__)


def build_raster_provider(pipeline: LayerPipeline, dem_path: Optional[str] = None) -> RasterProvider:
    """Provider for an explicit DEM file, or for the registered DEM source."""
    if dem_path:
        return RasterProvider.from_path(dem_path)
    return RasterProvider(lambda: open_dem(pipeline.resolve_raster_path(DEM_SOURCE_NAME)))


async def screen_target(target_obj: Mapping[str, Any], records: List[Mapping[str, Any]],
                        config: AnalysisConfig, pipeline: LayerPipeline,
                        raster_provider: Optional[RasterProvider]) -> Dict[str, Any]:
    """
    Validate the target, load the configured layers and run the analysis.

    Raises:
        InvalidTargetError: for a missing or unusable target geometry
    """
    target = target_from_geojson(target_obj)
    layers = pipeline.load_layers(config.required_layers())
    result = await run_analysis(target, config, records=records, layers=layers,
                                raster_provider=raster_provider)
    return result.to_dict()


def _parse_layer_overrides(values: List[str]) -> None:
    for value in values or []:
        name, sep, path = value.partition("=")
        if not sep or not name or not path:
            raise ValueError(f"Expected NAME=PATH for --layer, got {value!r}")
        source = registry.get(name)
        label_field = source.label_field if source else None
        add_local_layer(name, path, label_field=label_field)
        logger.info(f"Using local file {path} for layer {name}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Run a siting-risk screening analysis for one geometry.')
    parser.add_argument('--target', help='GeoJSON file with the target geometry or feature')
    parser.add_argument('--records', help='Permit records (JSON array or CSV) with Easting/Northing fields')
    parser.add_argument('--record-buffer', type=float, default=DEFAULT_BUFFER_METERS,
                        help='Record search radius in meters')
    parser.add_argument('--area-buffer', type=float, default=DEFAULT_BUFFER_METERS,
                        help='Sensitive area search radius in meters')
    parser.add_argument('--status', help='Only keep records with this determination status')
    parser.add_argument('--start-date', help='Earliest determination date (inclusive)')
    parser.add_argument('--end-date', help='Latest determination date (inclusive)')
    parser.add_argument('--dem', help='Local DEM GeoTIFF (default: registered DEM source)')
    parser.add_argument('--no-dem', action='store_true', help='Skip the elevation assessment')
    parser.add_argument('--layer', action='append', metavar='NAME=PATH',
                        help='Use a local GeoJSON file for a reference layer (repeatable)')
    parser.add_argument('--prefetch', action='store_true',
                        help='Download every registered layer into the cache and exit')
    parser.add_argument('--seed', type=int, help='Seed for polygon sample downsampling')
    parser.add_argument('--output', type=str, help='Output file for results (JSON)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output')

    args = parser.parse_args(argv)
    if not args.target and not args.prefetch:
        parser.error('--target is required unless --prefetch is given')

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                        stream=sys.stderr)

    try:
        _parse_layer_overrides(args.layer)
    except ValueError as e:
        logger.error(f"Bad layer override: {e}")
        print(json.dumps({"error": str(e)}))
        return 1

    if args.prefetch:
        failed = prefetch_all(LayerPipeline(registry))
        print(json.dumps({"prefetched": registry.list_sources(), "failed": failed}, indent=2))
        return 1 if failed else 0

    try:
        target_obj = file_utils.read_json(args.target)
        records = file_utils.read_records(args.records) if args.records else []
    except (OSError, ValueError) as e:
        logger.error(f"Could not read inputs: {e}")
        print(json.dumps({"error": str(e)}))
        return 1

    config = AnalysisConfig(
        record_radius_m=args.record_buffer,
        area_radius_m=args.area_buffer,
        filters=RecordFilters(status=args.status, start_date=args.start_date, end_date=args.end_date),
        sampling_seed=args.seed,
    )
    pipeline = LayerPipeline(registry)
    provider = None if args.no_dem else build_raster_provider(pipeline, args.dem)

    try:
        results = asyncio.run(screen_target(target_obj, records, config, pipeline, provider))
    except InvalidTargetError as e:
        logger.error(f"Invalid target: {e}")
        print(json.dumps({"error": str(e)}))
        return 1
    finally:
        if provider is not None:
            provider.close()

    if args.output:
        file_utils.json_to_file(results, args.output)

    print(json.dumps(results, indent=2, ensure_ascii=False, default=str))
    logger.info("Screening analysis finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
