"""Map detection counts and colour statistics to the audio description.

The result is a list of at most 12 frequencies, a set of integer harmonic
ratios and a rhythm pattern of duration weights, all built in a fixed
insertion order so the mapping is fully deterministic.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from astrosonify.basic_objects import ObjectCounts
from astrosonify.classifier import ImageType

__all__ = [
    "FrequencyProfile",
    "map_frequencies",
    "BASE_FREQUENCY",
    "MAX_FREQUENCIES",
    "DEFAULT_HARMONICS",
    "DEFAULT_RHYTHM",
    "TYPE_MULTIPLIERS",
]

BASE_FREQUENCY = 220.0
MAX_FREQUENCIES = 12
DEFAULT_HARMONICS: Tuple[int, ...] = (2, 3, 4)
DEFAULT_RHYTHM: Tuple[float, ...] = (1.0, 0.5, 0.5)

TYPE_MULTIPLIERS: Dict[ImageType, Tuple[float, float]] = {
    ImageType.SOLAR: (6.0, 12.0),
    ImageType.PLANETARY: (1.25, 2.5),
    ImageType.DEEP_SKY: (0.5, 7.0),
    ImageType.LUNAR: (1.5, 3.0),
    ImageType.MIXED: (1.0, 5.0),
}


@dataclass(frozen=True)
class FrequencyProfile:
    dominant_frequencies: Tuple[float, ...]
    harmonic_structure: Tuple[int, ...]
    rhythm_pattern: Tuple[float, ...]


def map_frequencies(
    counts: ObjectCounts,
    *,
    red: float,
    green: float,
    blue: float,
    brightness: float,
    contrast: float,
    saturation: float,
    image_type: ImageType,
) -> FrequencyProfile:
    base = BASE_FREQUENCY
    frequencies: List[float] = [base * (0.5 + red), base * (1.0 + green), base * (2.0 + blue)]
    harmonics: List[int] = []
    rhythm: List[float] = []

    if counts.stars > 0:
        frequencies.append(base * 4.0 * (1.0 + brightness))
        rhythm.extend((0.5, 0.25, 0.25))
    if counts.nebulae > 0:
        frequencies.append(base * 0.75 * (1.0 + saturation))
        harmonics.extend((2, 3, 5))
    if counts.galaxies > 0:
        frequencies.append(base * 1.5 * (1.0 + contrast))
        harmonics.extend((4, 6, 8))
    if counts.planets > 0:
        frequencies.append(base * 3.0 * (1.0 + counts.planets / 10.0))
        rhythm.extend((1.0, 0.5, 1.0))
    if counts.moons > 0:
        frequencies.append(base * 2.0 * (1.0 + counts.moons / 10.0))
        rhythm.extend((0.75, 0.25))
    if counts.sunspots > 0:
        frequencies.append(base * 0.25 * (1.0 + counts.sunspots / 20.0))
        rhythm.extend((0.25, 0.125, 0.125, 0.25))
    if counts.solar_flares > 0:
        frequencies.append(base * 8.0 * (1.0 + brightness))
        rhythm.extend((0.1, 0.9))

    low, high = TYPE_MULTIPLIERS[image_type]
    frequencies.extend((base * low, base * high))

    return FrequencyProfile(
        dominant_frequencies=tuple(frequencies[:MAX_FREQUENCIES]),
        harmonic_structure=tuple(harmonics) if harmonics else DEFAULT_HARMONICS,
        rhythm_pattern=tuple(rhythm) if rhythm else DEFAULT_RHYTHM,
    )
