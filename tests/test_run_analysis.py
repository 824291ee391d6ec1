import json
from unittest import mock

import numpy as np
import pytest

from conftest import E0, N0
from screening_utils.geo_utils import to_geographic
from spatial_engine.run_analysis import main


def _lonlat(dx, dy):
    lat, lon = to_geographic(E0 + dx, N0 + dy)
    return [lon, lat]


@pytest.fixture
def target_file(tmp_path):
    ring = [_lonlat(100, -1100), _lonlat(1100, -1100), _lonlat(1100, -100), _lonlat(100, -100)]
    ring.append(ring[0])
    feature = {"type": "Feature", "properties": {"name": "site"},
               "geometry": {"type": "Polygon", "coordinates": [ring]}}
    path = tmp_path / "site.geojson"
    path.write_text(json.dumps(feature))
    return str(path)


@pytest.fixture
def records_file(tmp_path):
    path = tmp_path / "records.csv"
    path.write_text(
        "Ref,Easting,Northing,Application Determination,Determination Date\n"
        f"CEC-1,{E0 + 500},{N0 - 500},Approved,2023-02-01\n"
        f"CEC-2,{E0 + 1300},{N0 - 500},Refused,2023-03-01\n"
        f"CEC-3,{E0 + 9000},{N0 - 9000},Approved,2023-04-01\n"
    )
    return str(path)


@pytest.fixture
def mock_pipeline():
    with mock.patch('spatial_engine.run_analysis.LayerPipeline') as MockPipeline:
        MockPipeline.return_value.load_layers.return_value = {}
        yield MockPipeline.return_value


def _run(argv, capsys):
    code = main(argv)
    return code, json.loads(capsys.readouterr().out)


class TestMain:
    def test_polygon_without_dem(self, target_file, records_file, mock_pipeline, capsys):
        code, payload = _run(["--target", target_file, "--records", records_file, "--no-dem"], capsys)

        assert code == 0
        assert payload["target_type"] == "Polygon"
        assert [r["Ref"] for r in payload["records"]] == ["CEC-1", "CEC-2"]
        assert payload["elevation"]["rows"] == [{"key": "Elevation", "value": "DEM unavailable"}]
        assert payload["meta"]["record_buffer_m"] == 500.0
        mock_pipeline.load_layers.assert_called_once()

    def test_filters_and_buffers(self, target_file, records_file, mock_pipeline, capsys):
        code, payload = _run([
            "--target", target_file, "--records", records_file, "--no-dem",
            "--record-buffer", "0", "--area-buffer", "250", "--status", "approved",
            "--start-date", "2023-01-01", "--end-date", "2023-12-31",
        ], capsys)

        assert code == 0
        assert [r["Ref"] for r in payload["records"]] == ["CEC-1"]
        assert payload["meta"]["area_buffer_m"] == 250.0
        assert payload["meta"]["filters"]["status"] == "approved"

    def test_local_dem_and_output_file(self, target_file, mock_pipeline, write_geotiff, tmp_path, capsys):
        dem = write_geotiff(np.full((130, 130), 20.0))
        output = tmp_path / "out" / "result.json"

        code, payload = _run(["--target", target_file, "--dem", dem, "--seed", "3",
                              "--output", str(output)], capsys)

        assert code == 0
        rows = {r["key"]: r["value"] for r in payload["elevation"]["rows"]}
        assert rows["Mean Elevation"] == "20.0 m"
        assert json.loads(output.read_text()) == payload

    def test_invalid_target(self, tmp_path, mock_pipeline, capsys):
        path = tmp_path / "bad.geojson"
        path.write_text(json.dumps({"type": "Point", "coordinates": []}))

        code, payload = _run(["--target", str(path), "--no-dem"], capsys)

        assert code == 1
        assert "error" in payload

    def test_unreadable_target(self, tmp_path, mock_pipeline, capsys):
        code, payload = _run(["--target", str(tmp_path / "missing.geojson"), "--no-dem"], capsys)
        assert code == 1
        assert "error" in payload

    def test_malformed_layer_override(self, target_file, mock_pipeline, capsys):
        code, payload = _run(["--target", target_file, "--layer", "Municipality", "--no-dem"], capsys)
        assert code == 1
        assert "NAME=PATH" in payload["error"]

    def test_prefetch(self, capsys):
        with mock.patch('spatial_engine.run_analysis.prefetch_all', return_value=["DEM"]) as mock_prefetch:
            code, payload = _run(["--prefetch"], capsys)

        assert code == 1
        assert payload["failed"] == ["DEM"]
        assert "Municipality" in payload["prefetched"]
        mock_prefetch.assert_called_once()

    def test_target_required_without_prefetch(self, capsys):
        with pytest.raises(SystemExit):
            main(["--no-dem"])

    @pytest.mark.parametrize("content", [
        [1, 2],
        "Point",
        {"type": "Feature", "geometry": "x"},
    ])
    def test_target_that_is_not_an_object(self, tmp_path, mock_pipeline, capsys, content):
        path = tmp_path / "odd.geojson"
        path.write_text(json.dumps(content))

        code, payload = _run(["--target", str(path), "--no-dem"], capsys)

        assert code == 1
        assert "error" in payload
