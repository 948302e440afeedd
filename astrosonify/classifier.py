from __future__ import annotations

import enum
import logging
import os
from typing import Optional

__all__ = ["ImageType", "classify_image", "PLANET_NAMES"]

logger = logging.getLogger("astrosonify.classifier")

PLANET_NAMES = ("mercury", "venus", "mars", "jupiter", "saturn", "uranus", "neptune")


class ImageType(str, enum.Enum):
    DEEP_SKY = "deep-sky"
    PLANETARY = "planetary"
    SOLAR = "solar"
    LUNAR = "lunar"
    MIXED = "mixed"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | ImageType") -> "ImageType":
        """Accept ``deep-sky``, ``Deep Sky``, ``deep_sky``, ``DEEP_SKY``...; raise ValueError otherwise."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "-").replace(" ", "-")
        if key == "deepsky":
            key = "deep-sky"
        for member in cls:
            if member.value == key:
                return member
        allowed = ", ".join(member.value for member in cls)
        raise ValueError(f"Unknown image type {value!r}; expected one of: {allowed}")


def _type_from_filename(filename: Optional[str]) -> Optional[ImageType]:
    if not filename:
        return None
    name = os.path.basename(filename).lower()
    if "sun" in name or "solar" in name:
        return ImageType.SOLAR
    if "moon" in name or "lunar" in name:
        return ImageType.LUNAR
    if "planet" in name or any(planet in name for planet in PLANET_NAMES):
        return ImageType.PLANETARY
    return None


def classify_image(
    *,
    hint: "str | ImageType | None" = None,
    filename: Optional[str] = None,
    brightness: float,
    contrast: float,
    circular: int,
    linear: int,
) -> ImageType:
    """Fixed decision tree: explicit hint, then filename keywords, then image heuristics.

    Branches are evaluated in order and the first match wins; no scores are
    compared between categories.
    """
    if hint is not None and str(hint).strip():
        return ImageType.parse(hint)

    by_name = _type_from_filename(filename)
    if by_name is not None:
        logger.debug("Image type %s inferred from filename %r", by_name.value, filename)
        return by_name

    if brightness > 0.7 and circular > 1000:
        return ImageType.SOLAR
    if brightness > 0.5 and contrast > 0.6:
        return ImageType.LUNAR
    if circular > 500 and brightness > 0.3:
        return ImageType.PLANETARY
    if linear > 2 * circular:
        return ImageType.DEEP_SKY
    return ImageType.MIXED if brightness > 0.4 else ImageType.DEEP_SKY
