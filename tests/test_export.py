from __future__ import annotations

import csv
import io
import json
import zipfile

import pytest

from astrosonify.analysis import DEFAULT_ANALYSIS
from astrosonify.api.io_export import build_zip_bundle, export_analysis


def test_json_export_matches_record() -> None:
    artifact = export_analysis(DEFAULT_ANALYSIS, "json", extra={"fallback": True})
    payload = json.loads(artifact.content)
    assert artifact.media_type == "application/json"
    assert payload["image_type"] == "deep-sky"
    assert payload["stars"] == 200
    assert payload["color_profile"] == {"red": 0.55, "green": 0.45, "blue": 0.65}
    assert payload["fallback"] is True


def test_csv_export_rows() -> None:
    artifact = export_analysis(DEFAULT_ANALYSIS, "CSV", extra={"width": 0})
    rows = list(csv.reader(io.StringIO(artifact.content.decode("utf-8"))))
    assert rows[0] == ["field", "value"]
    table = dict(rows[1:])
    assert table["image_type"] == "deep-sky"
    assert table["solar_flares"] == "2"
    assert table["color_blue"] == "0.65"
    assert table["harmonic_structure"] == "2;3;4;5"
    assert table["rhythm_pattern"] == "1;0.5;0.5;0.25"
    assert table["width"] == "0"
    assert artifact.columns[0] == "image_type"


def test_unsupported_format() -> None:
    with pytest.raises(ValueError, match="Unsupported export format"):
        export_analysis(DEFAULT_ANALYSIS, "fits")


def test_zip_bundle_contents() -> None:
    artifact = export_analysis(DEFAULT_ANALYSIS, "json")
    blob = build_zip_bundle(b"RIFFfake", artifact, metadata={"image_type": "deep-sky"}, filename_stem="demo")
    with zipfile.ZipFile(io.BytesIO(blob)) as zf:
        assert sorted(zf.namelist()) == ["analysis.json", "demo.wav", "metadata.json"]
        meta = json.loads(zf.read("metadata.json"))
        assert zf.read("demo.wav") == b"RIFFfake"
    assert meta["audio_bytes"] == 8
    assert meta["image_type"] == "deep-sky"


def test_export_layout_is_fixed() -> None:
    artifact = export_analysis(DEFAULT_ANALYSIS, "json")
    assert artifact.content.startswith(b'{\n  "')
    with pytest.raises(TypeError):
        export_analysis(DEFAULT_ANALYSIS, "csv", csv_delimiter=";")
    with pytest.raises(TypeError):
        build_zip_bundle(b"", artifact, metadata={}, filename_stem="demo", extra_files=[("x.txt", b"x")])
