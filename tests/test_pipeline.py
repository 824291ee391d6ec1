import pytest
import json
from unittest import mock

import numpy as np

from layer_pipeline import layer_sources, load_layers, prefetch_all
from layer_pipeline.download_cache import RawDownloadCache
from layer_pipeline.pipeline import LayerPipeline
from layer_pipeline.registry import LayerRegistry, REGISTRY
from layer_pipeline.sources import LayerSource
from spatial_engine.config import ATTRIBUTE_GROUPS, AnalysisConfig
from spatial_engine.models import ReferenceLayer

MUNICIPALITY = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"NAME_1": "Couva/Tabaquite/Talparo"},
            "geometry": {"type": "Polygon", "coordinates": [[
                [-61.4, 10.4], [-61.3, 10.4], [-61.3, 10.5], [-61.4, 10.5], [-61.4, 10.4]
            ]]}
        }
    ]
}


@pytest.fixture
def municipality_file(tmp_path):
    path = tmp_path / "Municipality.geojson"
    path.write_text(json.dumps(MUNICIPALITY))
    return str(path)

@pytest.fixture
def registry(municipality_file):
    reg = LayerRegistry()
    reg.add_local_source("Municipality", municipality_file, label_field="NAME_1")
    return reg

@pytest.fixture
def pipeline(registry, tmp_path):
    return LayerPipeline(registry, download_cache=RawDownloadCache(str(tmp_path / "raw_cache")))


class TestLayerSource:
    def test_defaults(self):
        source = LayerSource(name="Hydrogeology", source_type="HTTPS", format="GeoJSON",
                             url="https://example.org/Hydrogeology.geojson")
        assert source.source_type == "https"
        assert source.format == "geojson"
        assert source.cache_key == "Hydrogeology"
        assert source.is_remote
        assert not source.is_raster

    @pytest.mark.parametrize("kwargs", [
        dict(name="", source_type="file", format="geojson", path="/x"),
        dict(name="a", source_type="ftp", format="geojson", url="ftp://x"),
        dict(name="a", source_type="file", format="shapefile", path="/x"),
        dict(name="a", source_type="https", format="geojson"),
        dict(name="a", source_type="file", format="geojson"),
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            LayerSource(**kwargs)


class TestLayerRegistry:
    def test_register_duplicate(self):
        reg = LayerRegistry()
        source = LayerSource(name="a", source_type="file", format="geojson", path="/a.geojson")
        reg.register(source)
        with pytest.raises(ValueError, match="already registered"):
            reg.register(source)

    def test_local_source_replaces_remote(self):
        reg = LayerRegistry()
        reg.register(LayerSource(name="a", source_type="https", format="geojson", url="https://x/a.geojson"))
        reg.add_local_source("a", "/data/a.geojson", label_field="NAME")
        assert reg.get("a").source_type == "file"
        assert reg.get("a").label_field == "NAME"
        assert reg.list_sources() == ["a"]

    def test_vector_sources_exclude_rasters(self):
        reg = LayerRegistry()
        layer_sources.register_all(reg)
        assert "DEM" in reg.list_sources()
        assert "DEM" not in reg.list_vector_sources()
        assert len(reg.list_vector_sources()) == 14

    def test_register_all_is_idempotent(self):
        reg = LayerRegistry()
        layer_sources.register_all(reg)
        layer_sources.register_all(reg)
        assert len(reg.get_all_sources()) == len(layer_sources.ALL_SOURCES)


class TestLayerSources:
    def test_every_configured_layer_is_registered(self):
        for name in AnalysisConfig().required_layers():
            assert REGISTRY.get(name) is not None, name

    def test_label_fields_match_attribute_groups(self):
        sources = {s.name: s for s in layer_sources.ALL_SOURCES}
        for mapping in ATTRIBUTE_GROUPS.values():
            for layer_name, field in mapping.items():
                assert sources[layer_name].label_field == field

    def test_forest_reserve_url_is_quoted(self):
        assert layer_sources.forest_reserve.url.endswith("/Forest%20Reserves.geojson")
        assert layer_sources.forest_reserve.label_field == "NAME"

    def test_dem_is_a_remote_raster(self):
        assert layer_sources.dem.is_raster
        assert layer_sources.dem.url == layer_sources.DEM_URL


class TestLayerPipeline:
    def test_load_local_layer(self, pipeline):
        layer = pipeline.load_layer("Municipality")
        assert isinstance(layer, ReferenceLayer)
        assert layer.name == "Municipality"
        assert layer.label_field == "NAME_1"
        assert len(layer.features) == 1
        assert layer.features.crs == "EPSG:4326"

    def test_session_cache(self, pipeline):
        first = pipeline.load_layer("Municipality")
        assert pipeline.load_layer("Municipality") is first
        assert pipeline.load_layer("Municipality", force_reload=True) is not first

    def test_clear(self, pipeline):
        first = pipeline.load_layer("Municipality")
        pipeline.clear("Municipality")
        assert pipeline.load_layer("Municipality") is not first

    def test_unknown_layer(self, pipeline):
        with pytest.raises(ValueError, match="Unknown layer source"):
            pipeline.load_layer("Atlantis")

    def test_missing_local_file(self, pipeline, registry, tmp_path):
        registry.add_local_source("Hydrogeology", str(tmp_path / "nope.geojson"))
        with pytest.raises(RuntimeError):
            pipeline.load_layer("Hydrogeology")

    def test_load_layers_maps_failures_to_none(self, pipeline):
        layers = pipeline.load_layers(["Municipality", "Atlantis"])
        assert list(layers) == ["Municipality", "Atlantis"]
        assert layers["Municipality"] is not None
        assert layers["Atlantis"] is None

    def test_load_layers_helper(self, pipeline):
        layers = load_layers(["Municipality"], pipeline=pipeline)
        assert layers["Municipality"].name == "Municipality"

    def test_remote_layer_is_downloaded_once(self, registry, tmp_path):
        registry.register(LayerSource(name="Remote Municipality", source_type="https", format="geojson",
                                      url="https://example.org/layers/Municipality.geojson",
                                      label_field="NAME_1"))
        cache = RawDownloadCache(str(tmp_path / "shared_cache"))
        response = mock.MagicMock()
        response.iter_content.return_value = [json.dumps(MUNICIPALITY).encode()]

        with mock.patch('layer_pipeline.loaders.requests.get', return_value=response) as mock_get:
            first = LayerPipeline(registry, download_cache=cache).load_layer("Remote Municipality")
            second = LayerPipeline(registry, download_cache=cache).load_layer("Remote Municipality")

        assert mock_get.call_count == 1
        assert first.features.iloc[0]["NAME_1"] == second.features.iloc[0]["NAME_1"]

    def test_raster_source(self, pipeline, registry, write_geotiff):
        path = write_geotiff(np.ones((4, 4)))
        registry.add_local_source("DEM", path, format="geotiff")

        assert pipeline.resolve_raster_path("DEM") == path
        assert pipeline.resolve_raster_path() == path
        with pytest.raises(ValueError, match="is a raster"):
            pipeline.load_layer("DEM")

    def test_vector_source_is_not_a_raster(self, pipeline):
        with pytest.raises(ValueError, match="is not a raster"):
            pipeline.resolve_raster_path("Municipality")

    def test_prefetch_all_reports_failures(self, pipeline, registry, write_geotiff, tmp_path):
        registry.add_local_source("DEM", write_geotiff(np.ones((4, 4))), format="geotiff")
        registry.add_local_source("Hydrogeology", str(tmp_path / "nope.geojson"))
        registry.add_local_source("Old DEM", str(tmp_path / "nope.tif"), format="geotiff")

        assert prefetch_all(pipeline) == ["Hydrogeology", "Old DEM"]
        assert pipeline.load_layer("Municipality").name == "Municipality"
