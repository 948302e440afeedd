from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from astrosonify import cli
from astrosonify.wav import decode_wav


@pytest.fixture(autouse=True)
def _fast_audio(monkeypatch) -> None:
    monkeypatch.setenv("ASTRO_SAMPLE_RATE", "8000")
    monkeypatch.setenv("ASTRO_DURATION_SECONDS", "0.25")
    monkeypatch.setenv("ASTRO_SYNTH_WORKERS", "1")


def _write_test_image(tmp_path: Path, name: str = "frame.png") -> Path:
    from PIL import Image

    data = np.linspace(0, 255, num=64, dtype=np.uint8).reshape(8, 8)
    image = Image.fromarray(data, mode="L")
    path = tmp_path / name
    with path.open("wb") as fh:
        image.save(fh, format="PNG")
    return path


def test_render_dry_run(tmp_path: Path, capsys) -> None:
    image_path = _write_test_image(tmp_path)
    rc = cli.main(["--dry-run", "render", "--file", str(image_path), "--duration", "2", "--hint", "Deep Sky"])
    captured = capsys.readouterr()
    assert rc == 0
    assert f"render {image_path}" in captured.out
    assert "Hint: deep-sky" in captured.out
    assert '"duration": 2.0' in captured.out
    assert '"sample_rate": 8000' in captured.out


def test_unknown_hint_exits(tmp_path: Path) -> None:
    image_path = _write_test_image(tmp_path)
    with pytest.raises(SystemExit):
        cli.main(["analyze", "--file", str(image_path), "--hint", "quasar"])


def test_analyze_prints_json(tmp_path: Path, capsys) -> None:
    image_path = _write_test_image(tmp_path)
    rc = cli.main(["analyze", "--file", str(image_path), "--hint", "lunar"])
    payload = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert payload["image_type"] == "lunar"
    assert payload["moons"] == 1
    assert (payload["width"], payload["height"]) == (8, 8)


def test_render_writes_wav_and_analysis(tmp_path: Path, capsys) -> None:
    image_path = _write_test_image(tmp_path)
    out = tmp_path / "out.wav"
    analysis_path = tmp_path / "analysis.json"
    rc = cli.main(
        ["render", "--file", str(image_path), "--output", str(out), "--analysis", str(analysis_path)]
    )
    assert rc == 0
    data = out.read_bytes()
    assert data[:4] == b"RIFF"
    assert decode_wav(data).frames == 2000
    assert json.loads(analysis_path.read_text())["fallback"] is False
    assert str(out.resolve()) in capsys.readouterr().out


def test_render_default_output_name(tmp_path: Path, monkeypatch) -> None:
    image_path = _write_test_image(tmp_path, "moon_crater.png")
    monkeypatch.chdir(tmp_path)
    assert cli.main(["render", "--file", str(image_path)]) == 0
    assert (tmp_path / "astronomy-sonification-lunar.wav").exists()


def test_missing_file_reports_error(tmp_path: Path, capsys) -> None:
    rc = cli.main(["analyze", "--file", str(tmp_path / "nope.png")])
    assert rc == 2
    assert capsys.readouterr().err.startswith("astrosonify: ")


def test_invalid_duration_reports_error(tmp_path: Path, capsys) -> None:
    image_path = _write_test_image(tmp_path)
    rc = cli.main(["render", "--file", str(image_path), "--duration", "0.00001"])
    assert rc == 2
    assert "astrosonify:" in capsys.readouterr().err
