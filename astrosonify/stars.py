from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from astrosonify.regions import DetectionResult
from astrosonify.statistics import ImageMaps, ImageStats

__all__ = [
    "StarCandidate",
    "StarDetectionResult",
    "adaptive_threshold",
    "detect_stars",
    "star_size",
    "non_maximum_suppression",
]

logger = logging.getLogger("astrosonify.stars")

STAR_MARGIN = 2
STAR_MAX_SIZE = 50
STAR_GROWTH_FRACTION = 0.7
STAR_SUPPRESSION_RADIUS = 3.0
STAR_MAX_MARK_RADIUS = 3

# Neighbour order used while measuring star size: dx outer, dy inner.
_SIZE_NEIGHBOURS: Tuple[Tuple[int, int], ...] = tuple(
    (dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)
)


@dataclass(frozen=True)
class StarCandidate:
    x: int
    y: int
    intensity: float
    size: int


@dataclass(frozen=True)
class StarDetectionResult(DetectionResult):
    stars: Tuple[StarCandidate, ...] = ()
    threshold: float = 0.0


def adaptive_threshold(stats: ImageStats) -> float:
    return max(stats.median + 3.0 * stats.mad, stats.mean + 2.0 * stats.std)


def star_size(lum: np.ndarray, x: int, y: int, threshold: float, limit: int = STAR_MAX_SIZE) -> int:
    """Size of the 8-connected blob above ``threshold`` around (x, y).

    Returns ``limit + 1`` as soon as the blob outgrows ``limit``; the fill
    never leaves a ``limit``-pixel radius, so visited pixels are tracked in a
    local patch rather than a full-frame array.
    """
    height, width = lum.shape
    reach = limit + 1
    x0, y0 = max(0, x - reach), max(0, y - reach)
    x1, y1 = min(width, x + reach + 1), min(height, y + reach + 1)
    visited = np.zeros((y1 - y0, x1 - x0), dtype=bool)

    size = 0
    stack = [(x, y)]
    while stack:
        cx, cy = stack.pop()
        if cx < x0 or cx >= x1 or cy < y0 or cy >= y1:
            continue
        if visited[cy - y0, cx - x0]:
            continue
        visited[cy - y0, cx - x0] = True
        if lum[cy, cx] > threshold:
            size += 1
            if size > limit:
                break
            for dx, dy in _SIZE_NEIGHBOURS:
                stack.append((cx + dx, cy + dy))
    return size


def non_maximum_suppression(candidates: Sequence[StarCandidate], radius: float) -> List[StarCandidate]:
    """Greedy suppression: brightest first, drop anything closer than ``radius`` to a kept star."""
    kept: List[StarCandidate] = []
    limit_sq = radius * radius
    for candidate in sorted(candidates, key=lambda c: -c.intensity):
        if all((candidate.x - k.x) ** 2 + (candidate.y - k.y) ** 2 >= limit_sq for k in kept):
            kept.append(candidate)
    return kept


def _mark_disk(mask: np.ndarray, cx: int, cy: int, radius: int) -> None:
    height, width = mask.shape
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            x, y = cx + dx, cy + dy
            if 0 <= x < width and 0 <= y < height and dx * dx + dy * dy <= radius * radius:
                mask[y, x] = True


def detect_stars(maps: ImageMaps, stats: ImageStats) -> StarDetectionResult:
    lum = maps.luminance
    height, width = lum.shape
    threshold = adaptive_threshold(stats)
    mask = np.zeros((height, width), dtype=bool)

    m = STAR_MARGIN
    if height <= 2 * m or width <= 2 * m:
        return StarDetectionResult(count=0, mask=mask.ravel(), threshold=threshold)

    center = lum[m:height - m, m:width - m]
    local_max = center > threshold
    neighbour_sum = np.zeros_like(center)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dy == 0 and dx == 0:
                continue
            neighbour = lum[m + dy:height - m + dy, m + dx:width - m + dx]
            local_max &= ~(neighbour > center)
            neighbour_sum += neighbour
    contrast = center - neighbour_sum / 8.0
    qualified = local_max & (contrast > 2.0 * stats.mad)

    growth_threshold = STAR_GROWTH_FRACTION * threshold
    candidates: List[StarCandidate] = []
    for row, col in np.argwhere(qualified):
        y, x = int(row) + m, int(col) + m
        size = star_size(lum, x, y, growth_threshold)
        if 1 <= size <= STAR_MAX_SIZE:
            candidates.append(StarCandidate(x=x, y=y, intensity=float(lum[y, x]), size=size))

    kept = non_maximum_suppression(candidates, STAR_SUPPRESSION_RADIUS)
    for star in kept:
        radius = min(int(math.ceil(math.sqrt(star.size))), STAR_MAX_MARK_RADIUS)
        _mark_disk(mask, star.x, star.y, radius)

    logger.debug(
        "Star detector: threshold=%.2f candidates=%d kept=%d", threshold, len(candidates), len(kept)
    )
    return StarDetectionResult(count=len(kept), mask=mask.ravel(), stars=tuple(kept), threshold=threshold)
