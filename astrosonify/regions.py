"""Region-growing detectors for extended objects (nebulae and galaxies).

Both detectors scan seed pixels in row-major order and grow 4-connected
regions with an explicit stack. Pixels already claimed by an earlier
detector are excluded, so the masks of all detectors stay disjoint.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from astrosonify.statistics import ImageMaps

__all__ = [
    "DetectionResult",
    "grow_region",
    "detect_nebulae",
    "detect_galaxies",
    "aspect_ratio",
    "compactness",
    "REGION_PIXEL_CAP",
]

logger = logging.getLogger("astrosonify.regions")

REGION_PIXEL_CAP = 10_000

NEBULA_MARGIN = 5
NEBULA_SEED_COLOR_VARIANCE = 30.0
NEBULA_SEED_TEXTURE = (0.1, 0.8)
NEBULA_GROW_COLOR_VARIANCE = 20.0
NEBULA_GROW_TEXTURE = 0.05
NEBULA_SIZE = (100, 50_000)

GALAXY_MARGIN = 10
GALAXY_SEED_GRADIENT = 15.0
GALAXY_SEED_ELLIPTICITY = 0.3
GALAXY_GROW_GRADIENT = 8.0
GALAXY_GROW_LUMINANCE = (50.0, 200.0)
GALAXY_SIZE = (500, 20_000)
GALAXY_ASPECT = (1.2, 8.0)
GALAXY_MIN_COMPACTNESS = 0.4


@dataclass(frozen=True)
class DetectionResult:
    """Object count plus a flat ``width*height`` boolean mask of claimed pixels."""

    count: int
    mask: np.ndarray

    @classmethod
    def empty(cls, pixel_count: int) -> "DetectionResult":
        return cls(count=0, mask=np.zeros(pixel_count, dtype=bool))


def grow_region(
    width: int,
    height: int,
    seed: Tuple[int, int],
    visited: np.ndarray,
    exclude: np.ndarray,
    admit: np.ndarray,
    cap: int = REGION_PIXEL_CAP,
) -> np.ndarray:
    """Grow a 4-connected region from ``seed`` and return its flat pixel indices.

    ``visited`` is updated in place; ``exclude`` and ``admit`` are read-only
    flat boolean maps. Growth stops once the region holds ``cap`` pixels.
    """
    pixels = []
    stack = [seed]
    while stack and len(pixels) < cap:
        x, y = stack.pop()
        if x < 0 or x >= width or y < 0 or y >= height:
            continue
        idx = y * width + x
        if visited[idx] or exclude[idx] or not admit[idx]:
            continue
        visited[idx] = True
        pixels.append(idx)
        stack.append((x + 1, y))
        stack.append((x - 1, y))
        stack.append((x, y + 1))
        stack.append((x, y - 1))
    return np.asarray(pixels, dtype=np.intp)


def _interior(shape, margin: int) -> np.ndarray:
    inside = np.zeros(shape, dtype=bool)
    h, w = shape
    if h > 2 * margin and w > 2 * margin:
        inside[margin:h - margin, margin:w - margin] = True
    return inside


def _bounds(indices: np.ndarray, width: int):
    xs = indices % width
    ys = indices // width
    return int(xs.min()), int(xs.max()), int(ys.min()), int(ys.max())


def aspect_ratio(indices: np.ndarray, width: int) -> float:
    """Longer ÷ shorter side of the region's bounding box (1 for an empty region)."""
    if indices.size == 0:
        return 1.0
    x0, x1, y0, y1 = _bounds(indices, width)
    box_w = x1 - x0 + 1
    box_h = y1 - y0 + 1
    return max(box_w, box_h) / float(min(box_w, box_h))


def compactness(indices: np.ndarray, width: int) -> float:
    """4π·area / perimeter², where perimeter pixels have fewer than 8 region neighbours."""
    if indices.size == 0:
        return 0.0
    x0, x1, y0, y1 = _bounds(indices, width)
    patch = np.zeros((y1 - y0 + 3, x1 - x0 + 3), dtype=bool)
    patch[indices // width - y0 + 1, indices % width - x0 + 1] = True

    neighbours = np.zeros(patch.shape, dtype=np.int8)
    ph, pw = patch.shape
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dy == 0 and dx == 0:
                continue
            neighbours[1:ph - 1, 1:pw - 1] += patch[1 + dy:ph - 1 + dy, 1 + dx:pw - 1 + dx]
    perimeter = int(np.count_nonzero(patch & (neighbours < 8)))
    if perimeter == 0:
        return 0.0
    return (4.0 * math.pi * indices.size) / float(perimeter * perimeter)


def _scan(
    seeds: np.ndarray,
    width: int,
    height: int,
    exclude: np.ndarray,
    admit: np.ndarray,
    accept,
) -> DetectionResult:
    visited = np.zeros(width * height, dtype=bool)
    mask = np.zeros(width * height, dtype=bool)
    count = 0
    for idx in np.flatnonzero(seeds):
        if visited[idx]:
            continue
        seed = (int(idx % width), int(idx // width))
        region = grow_region(width, height, seed, visited, exclude, admit)
        if accept(region):
            count += 1
            mask[region] = True
    return DetectionResult(count=count, mask=mask)


def detect_nebulae(maps: ImageMaps, star_mask: np.ndarray) -> DetectionResult:
    height, width = maps.shape
    color_variance = maps.color_variance
    texture = maps.texture
    exclude = np.asarray(star_mask, dtype=bool).ravel()

    low, high = NEBULA_SEED_TEXTURE
    seeds = (
        _interior(maps.shape, NEBULA_MARGIN)
        & (color_variance > NEBULA_SEED_COLOR_VARIANCE)
        & (texture > low)
        & (texture < high)
    ).ravel() & ~exclude
    admit = ((color_variance > NEBULA_GROW_COLOR_VARIANCE) & (texture > NEBULA_GROW_TEXTURE)).ravel()

    min_size, max_size = NEBULA_SIZE
    result = _scan(seeds, width, height, exclude, admit, lambda region: min_size < region.size < max_size)
    logger.debug("Nebula detector: %d regions, %d pixels", result.count, int(result.mask.sum()))
    return result


def detect_galaxies(maps: ImageMaps, star_mask: np.ndarray, nebula_mask: np.ndarray) -> DetectionResult:
    height, width = maps.shape
    exclude = np.asarray(star_mask, dtype=bool).ravel() | np.asarray(nebula_mask, dtype=bool).ravel()

    seeds = (
        _interior(maps.shape, GALAXY_MARGIN)
        & (maps.gradient > GALAXY_SEED_GRADIENT)
        & (maps.ellipticity > GALAXY_SEED_ELLIPTICITY)
    ).ravel() & ~exclude
    lum_low, lum_high = GALAXY_GROW_LUMINANCE
    admit = (
        (maps.gradient > GALAXY_GROW_GRADIENT) & (maps.luminance > lum_low) & (maps.luminance < lum_high)
    ).ravel()

    min_size, max_size = GALAXY_SIZE
    min_aspect, max_aspect = GALAXY_ASPECT

    def accept(region: np.ndarray) -> bool:
        if not min_size < region.size < max_size:
            return False
        if not min_aspect < aspect_ratio(region, width) < max_aspect:
            return False
        return compactness(region, width) > GALAXY_MIN_COMPACTNESS

    result = _scan(seeds, width, height, exclude, admit, accept)
    logger.debug("Galaxy detector: %d regions, %d pixels", result.count, int(result.mask.sum()))
    return result
