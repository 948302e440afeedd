from __future__ import annotations

import pytest

from astrosonify.basic_objects import ObjectCounts, estimate_basic_objects
from astrosonify.classifier import ImageType
from astrosonify.frequencies import DEFAULT_HARMONICS, DEFAULT_RHYTHM, MAX_FREQUENCIES, map_frequencies
from astrosonify.statistics import ImageAggregates


def _aggregates(**counts) -> ImageAggregates:
    values = dict(bright_pixels=0, dark_regions=0, colorful_regions=0, circular_features=0, linear_features=0)
    values.update(counts)
    return ImageAggregates(
        brightness=0.5,
        contrast=0.5,
        saturation=0.1,
        red=0.5,
        green=0.5,
        blue=0.5,
        sampled_pixels=1000,
        **values,
    )


def _map(counts: ObjectCounts, image_type: ImageType = ImageType.MIXED, **scalars):
    values = dict(red=0.0, green=0.0, blue=0.0, brightness=0.0, contrast=0.0, saturation=0.0)
    values.update(scalars)
    return map_frequencies(counts, image_type=image_type, **values)


def test_empty_counts_use_defaults() -> None:
    profile = _map(ObjectCounts())
    assert profile.dominant_frequencies == pytest.approx((110.0, 220.0, 440.0, 220.0, 1100.0))
    assert profile.harmonic_structure == DEFAULT_HARMONICS
    assert profile.rhythm_pattern == DEFAULT_RHYTHM


def test_stars_add_partial_and_rhythm() -> None:
    profile = _map(ObjectCounts(stars=4), brightness=0.5)
    assert profile.dominant_frequencies[3] == pytest.approx(220.0 * 4.0 * 1.5)
    assert profile.rhythm_pattern == (0.5, 0.25, 0.25)
    assert profile.harmonic_structure == DEFAULT_HARMONICS


def test_harmonics_accumulate_in_order() -> None:
    profile = _map(ObjectCounts(nebulae=1, galaxies=1), ImageType.DEEP_SKY)
    assert profile.harmonic_structure == (2, 3, 5, 4, 6, 8)
    assert profile.dominant_frequencies[-2:] == pytest.approx((110.0, 1540.0))


def test_every_category_fills_twelve_slots() -> None:
    counts = ObjectCounts(stars=1, nebulae=1, galaxies=1, planets=2, moons=1, sunspots=4, solar_flares=1)
    profile = _map(counts, ImageType.SOLAR)
    assert len(profile.dominant_frequencies) == MAX_FREQUENCIES
    assert profile.dominant_frequencies[-1] == pytest.approx(220.0 * 12.0)
    assert profile.dominant_frequencies[6] == pytest.approx(220.0 * 3.0 * 1.2)
    assert profile.rhythm_pattern[:3] == (0.5, 0.25, 0.25)
    assert profile.rhythm_pattern[-2:] == (0.1, 0.9)


@pytest.mark.parametrize("image_type", list(ImageType))
def test_frequency_count_bounds(image_type) -> None:
    profile = _map(ObjectCounts(), image_type)
    assert 1 <= len(profile.dominant_frequencies) <= MAX_FREQUENCIES
    assert all(f > 0 for f in profile.dominant_frequencies)


def test_solar_estimates_are_clamped() -> None:
    counts = estimate_basic_objects(ImageType.SOLAR, _aggregates(dark_regions=300_000, bright_pixels=10_000))
    assert counts == ObjectCounts(sunspots=50, solar_flares=5)


def test_lunar_estimate_is_a_single_moon() -> None:
    assert estimate_basic_objects(ImageType.LUNAR, _aggregates(bright_pixels=99_999)) == ObjectCounts(moons=1)


def test_planetary_estimate() -> None:
    counts = estimate_basic_objects(ImageType.PLANETARY, _aggregates(circular_features=12_000, bright_pixels=500))
    assert counts == ObjectCounts(planets=5, moons=2)


def test_mixed_estimate() -> None:
    counts = estimate_basic_objects(
        ImageType.MIXED,
        _aggregates(bright_pixels=250, colorful_regions=3500, linear_features=25_000, circular_features=4100),
    )
    assert counts == ObjectCounts(stars=2, nebulae=3, galaxies=2, planets=2)


def test_deep_sky_coarse_estimate() -> None:
    counts = estimate_basic_objects(
        ImageType.DEEP_SKY,
        _aggregates(bright_pixels=1_000_000, colorful_regions=1000, linear_features=8000),
    )
    assert counts == ObjectCounts(stars=3000, nebulae=2, galaxies=2)
