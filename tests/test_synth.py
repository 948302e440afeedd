from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from astrosonify import synth
from astrosonify.analysis import DEFAULT_ANALYSIS
from astrosonify.classifier import ImageType
from astrosonify.errors import SynthesisError
from astrosonify.synth import render_audio


def test_sample_count_and_range() -> None:
    audio = render_audio(DEFAULT_ANALYSIS, sample_rate=8000, duration=0.5)
    assert audio.frames == 4000
    assert audio.left.shape == audio.right.shape == (4000,)
    assert audio.channels == 2
    assert np.all(np.abs(audio.left) <= 1.0)
    assert np.all(np.abs(audio.right) <= 1.0)
    # envelope starts at zero
    assert audio.left[0] == 0.0 and audio.right[0] == 0.0
    assert np.abs(audio.left).max() > 0.0


def test_panning_differs_between_channels() -> None:
    audio = render_audio(DEFAULT_ANALYSIS, sample_rate=8000, duration=0.25)
    assert not np.allclose(audio.left, audio.right)


def test_zero_brightness_is_silent() -> None:
    dark = dataclasses.replace(DEFAULT_ANALYSIS, brightness=0.0)
    audio = render_audio(dark, sample_rate=8000, duration=0.25)
    assert not audio.left.any() and not audio.right.any()


@pytest.mark.parametrize("image_type", [ImageType.SOLAR, ImageType.PLANETARY, ImageType.LUNAR])
def test_type_modulation_stays_in_range(image_type) -> None:
    analysis = dataclasses.replace(DEFAULT_ANALYSIS, image_type=image_type, brightness=1.0, contrast=1.0)
    audio = render_audio(analysis, sample_rate=4000, duration=1.0, headroom=1.0)
    assert np.all(np.abs(audio.interleaved()) <= 1.0)


def test_threaded_chunks_match_single_pass(monkeypatch) -> None:
    single = render_audio(DEFAULT_ANALYSIS, sample_rate=8000, duration=1.0, workers=1)
    monkeypatch.setattr(synth, "CHUNK_SAMPLES", 700)
    threaded = render_audio(DEFAULT_ANALYSIS, sample_rate=8000, duration=1.0, workers=4)
    assert threaded.frames == single.frames == 8000
    assert np.allclose(threaded.left, single.left, atol=1e-12)
    assert np.allclose(threaded.right, single.right, atol=1e-12)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(sample_rate=0, duration=1.0),
        dict(sample_rate=8000, duration=-1.0),
        dict(sample_rate=8000, duration=float("nan")),
        dict(sample_rate=44100, duration=0.00001),
        dict(sample_rate=8000, duration=1.0, workers=0),
        dict(sample_rate=8000, duration=1.0, headroom=0.0),
    ],
)
def test_invalid_settings_raise(kwargs) -> None:
    with pytest.raises(SynthesisError):
        render_audio(DEFAULT_ANALYSIS, **kwargs)


def test_empty_frequency_list_raises() -> None:
    silent = dataclasses.replace(DEFAULT_ANALYSIS, dominant_frequencies=())
    with pytest.raises(SynthesisError):
        render_audio(silent, sample_rate=8000, duration=1.0)
