from __future__ import annotations

from dataclasses import asdict, dataclass

from astrosonify.classifier import ImageType
from astrosonify.statistics import ImageAggregates

__all__ = ["ObjectCounts", "estimate_basic_objects"]


@dataclass(frozen=True)
class ObjectCounts:
    stars: int = 0
    nebulae: int = 0
    galaxies: int = 0
    planets: int = 0
    moons: int = 0
    sunspots: int = 0
    solar_flares: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def _scaled(value: int, scale: int, maximum: int) -> int:
    return min(int(value) // scale, maximum)


def estimate_basic_objects(image_type: ImageType, aggregates: ImageAggregates) -> ObjectCounts:
    """Coarse, count-based object estimates from image-wide aggregates; no masks."""
    bright = aggregates.bright_pixels
    dark = aggregates.dark_regions
    colorful = aggregates.colorful_regions
    circular = aggregates.circular_features
    linear = aggregates.linear_features

    if image_type is ImageType.SOLAR:
        return ObjectCounts(sunspots=_scaled(dark, 5000, 50), solar_flares=_scaled(bright, 2000, 20))
    if image_type is ImageType.LUNAR:
        return ObjectCounts(moons=1)
    if image_type is ImageType.PLANETARY:
        return ObjectCounts(planets=_scaled(circular, 1000, 5), moons=_scaled(circular, 5000, 10))
    if image_type is ImageType.MIXED:
        return ObjectCounts(
            stars=_scaled(bright, 100, 1000),
            nebulae=_scaled(colorful, 1000, 50),
            galaxies=_scaled(linear, 10000, 20),
            planets=_scaled(circular, 2000, 3),
        )
    if image_type is ImageType.DEEP_SKY:
        return ObjectCounts(
            stars=_scaled(bright, 25, 3000),
            nebulae=_scaled(colorful, 500, 150),
            galaxies=_scaled(linear, 4000, 80),
        )
    raise ValueError(f"Unhandled image type: {image_type!r}")
