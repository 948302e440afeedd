from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from astrosonify.basic_objects import ObjectCounts
from astrosonify.classifier import ImageType

__all__ = ["ColorProfile", "AnalysisResult", "DEFAULT_ANALYSIS"]


@dataclass(frozen=True)
class ColorProfile:
    red: float
    green: float
    blue: float


@dataclass(frozen=True)
class AnalysisResult:
    """Aggregate analysis record consumed by the synthesizer and by callers."""

    stars: int
    nebulae: int
    galaxies: int
    planets: int
    moons: int
    sunspots: int
    solar_flares: int
    brightness: float
    contrast: float
    saturation: float
    image_type: ImageType
    color_profile: ColorProfile
    dominant_frequencies: Tuple[float, ...]
    harmonic_structure: Tuple[int, ...]
    rhythm_pattern: Tuple[float, ...]

    @property
    def counts(self) -> ObjectCounts:
        return ObjectCounts(
            stars=self.stars,
            nebulae=self.nebulae,
            galaxies=self.galaxies,
            planets=self.planets,
            moons=self.moons,
            sunspots=self.sunspots,
            solar_flares=self.solar_flares,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stars": int(self.stars),
            "nebulae": int(self.nebulae),
            "galaxies": int(self.galaxies),
            "planets": int(self.planets),
            "moons": int(self.moons),
            "sunspots": int(self.sunspots),
            "solar_flares": int(self.solar_flares),
            "brightness": float(self.brightness),
            "contrast": float(self.contrast),
            "saturation": float(self.saturation),
            "image_type": self.image_type.value,
            "color_profile": {
                "red": float(self.color_profile.red),
                "green": float(self.color_profile.green),
                "blue": float(self.color_profile.blue),
            },
            "dominant_frequencies": [float(f) for f in self.dominant_frequencies],
            "harmonic_structure": [int(h) for h in self.harmonic_structure],
            "rhythm_pattern": [float(r) for r in self.rhythm_pattern],
        }


# Substituted when the input bytes cannot be decoded.
DEFAULT_ANALYSIS = AnalysisResult(
    stars=200,
    nebulae=14,
    galaxies=6,
    planets=1,
    moons=1,
    sunspots=5,
    solar_flares=2,
    brightness=0.6,
    contrast=0.5,
    saturation=0.35,
    image_type=ImageType.DEEP_SKY,
    color_profile=ColorProfile(red=0.55, green=0.45, blue=0.65),
    dominant_frequencies=(220.0, 440.0, 660.0, 880.0, 330.0, 550.0, 770.0, 1100.0),
    harmonic_structure=(2, 3, 4, 5),
    rhythm_pattern=(1.0, 0.5, 0.5, 0.25),
)
