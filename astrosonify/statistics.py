"""Global statistics and per-pixel maps shared by every detector.

All maps are ``(height, width)`` float64 arrays, computed once per image and
marked read-only. Pixels closer to the border than a map's neighborhood
radius are 0.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from astrosonify.api.loader import PixelBuffer

__all__ = [
    "ImageStats",
    "ImageMaps",
    "ImageAggregates",
    "luminance",
    "compute_image_stats",
    "compute_maps",
    "compute_aggregates",
    "GRADIENT_EVIDENCE_THRESHOLD",
    "LINEAR_EVIDENCE_RATIO",
]

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)

# Sobel magnitude a directional gradient must exceed to count as shape evidence.
GRADIENT_EVIDENCE_THRESHOLD = 20.0
# Dominant/weak directional gradient ratio that marks a linear feature.
LINEAR_EVIDENCE_RATIO = 3.0

BRIGHT_PIXEL_LEVEL = 200.0
DARK_PIXEL_LEVEL = 30.0
COLORFUL_LEVEL = 60.0


@dataclass(frozen=True)
class ImageStats:
    mean: float
    std: float
    median: float
    mad: float


@dataclass(frozen=True)
class ImageMaps:
    luminance: np.ndarray
    color_variance: np.ndarray
    texture: np.ndarray
    gradient: np.ndarray
    gradient_x: np.ndarray
    gradient_y: np.ndarray
    ellipticity: np.ndarray

    @property
    def shape(self):
        return self.luminance.shape


@dataclass(frozen=True)
class ImageAggregates:
    """Image-wide scalars and pixel counts used by the classifier and the basic estimator."""

    brightness: float
    contrast: float
    saturation: float
    red: float
    green: float
    blue: float
    bright_pixels: int
    dark_regions: int
    colorful_regions: int
    circular_features: int
    linear_features: int
    sampled_pixels: int


def luminance(rgba: np.ndarray) -> np.ndarray:
    return rgba[..., :3].astype(np.float64) @ LUMA_WEIGHTS


def _upper_median(values: np.ndarray) -> float:
    k = values.size // 2
    return float(np.partition(values, k)[k])


def compute_image_stats(lum: np.ndarray) -> ImageStats:
    """Mean/std plus robust median and MAD of the luminance values."""
    flat = np.asarray(lum, dtype=np.float64).ravel()
    if flat.size == 0:
        return ImageStats(mean=0.0, std=0.0, median=0.0, mad=0.0)
    median = _upper_median(flat)
    mad = _upper_median(np.abs(flat - median))
    return ImageStats(mean=float(flat.mean()), std=float(flat.std()), median=median, mad=mad)


def _window(arr: np.ndarray, radius: int, dy: int, dx: int) -> np.ndarray:
    """Slice of ``arr`` aligned so index (0, 0) is interior pixel (radius, radius) offset by (dy, dx)."""
    h, w = arr.shape[:2]
    return arr[radius + dy:h - radius + dy, radius + dx:w - radius + dx]


def _embed(interior: np.ndarray, shape, radius: int) -> np.ndarray:
    out = np.zeros(shape, dtype=np.float64)
    if interior.size:
        out[radius:shape[0] - radius, radius:shape[1] - radius] = interior
    return out


def _has_interior(shape, radius: int) -> bool:
    return shape[0] > 2 * radius and shape[1] > 2 * radius


def _color_variance(rgb: np.ndarray) -> np.ndarray:
    shape = rgb.shape[:2]
    if not _has_interior(shape, 1):
        return np.zeros(shape, dtype=np.float64)
    total = np.zeros(_window(rgb, 1, 0, 0).shape, dtype=np.float64)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            total += _window(rgb, 1, dy, dx)
    local_mean = total / 9.0
    variance = np.abs(_window(rgb, 1, 0, 0) - local_mean).sum(axis=-1)
    return _embed(variance, shape, 1)


def _texture(lum: np.ndarray) -> np.ndarray:
    shape = lum.shape
    if not _has_interior(shape, 2):
        return np.zeros(shape, dtype=np.float64)
    total = np.zeros(_window(lum, 2, 0, 0).shape, dtype=np.float64)
    total_sq = np.zeros_like(total)
    for dy in range(-2, 3):
        for dx in range(-2, 3):
            win = _window(lum, 2, dy, dx)
            total += win
            total_sq += win * win
    mean = total / 25.0
    variance = np.maximum(total_sq / 25.0 - mean * mean, 0.0)
    return _embed(np.sqrt(variance) / 255.0, shape, 2)


def _sobel(lum: np.ndarray):
    shape = lum.shape
    if not _has_interior(shape, 1):
        zeros = np.zeros(shape, dtype=np.float64)
        return zeros, zeros.copy()

    def s(dy: int, dx: int) -> np.ndarray:
        return _window(lum, 1, dy, dx)

    gx = (s(-1, 1) - s(-1, -1)) + 2.0 * (s(0, 1) - s(0, -1)) + (s(1, 1) - s(1, -1))
    gy = (s(1, -1) - s(-1, -1)) + 2.0 * (s(1, 0) - s(-1, 0)) + (s(1, 1) - s(-1, 1))
    return _embed(gx, shape, 1), _embed(gy, shape, 1)


def _ellipticity(lum: np.ndarray) -> np.ndarray:
    shape = lum.shape
    if not _has_interior(shape, 2):
        return np.zeros(shape, dtype=np.float64)
    inner = _window(lum, 2, 0, 0).shape
    m00 = np.zeros(inner, dtype=np.float64)
    m20 = np.zeros(inner, dtype=np.float64)
    m02 = np.zeros(inner, dtype=np.float64)
    m11 = np.zeros(inner, dtype=np.float64)
    for dy in range(-2, 3):
        for dx in range(-2, 3):
            win = _window(lum, 2, dy, dx)
            m00 += win
            m20 += (dx * dx) * win
            m02 += (dy * dy) * win
            m11 += (dx * dy) * win

    valid = m00 > 0
    safe = np.where(valid, m00, 1.0)
    m20 /= safe
    m02 /= safe
    m11 /= safe
    a = 0.5 * (m20 + m02)
    b = np.sqrt(4.0 * m11 * m11 + (m20 - m02) ** 2)
    lambda1 = a + 0.5 * b
    lambda2 = a - 0.5 * b
    valid &= lambda1 > 0
    ratio = np.divide(lambda2, lambda1, out=np.ones_like(lambda1), where=valid)
    ellipticity = np.where(valid, np.clip(1.0 - ratio, 0.0, 1.0), 0.0)
    return _embed(ellipticity, shape, 2)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


def compute_maps(pixels: PixelBuffer) -> ImageMaps:
    lum = luminance(pixels.rgba)
    rgb = pixels.rgb.astype(np.float64)
    gx, gy = _sobel(lum)
    gradient = np.sqrt(gx * gx + gy * gy)
    return ImageMaps(
        luminance=_readonly(lum),
        color_variance=_readonly(_color_variance(rgb)),
        texture=_readonly(_texture(lum)),
        gradient=_readonly(gradient),
        gradient_x=_readonly(gx),
        gradient_y=_readonly(gy),
        ellipticity=_readonly(_ellipticity(lum)),
    )


def _gradient_evidence(maps: ImageMaps):
    ax = np.abs(maps.gradient_x)
    ay = np.abs(maps.gradient_y)
    circular = (ax > GRADIENT_EVIDENCE_THRESHOLD) & (ay > GRADIENT_EVIDENCE_THRESHOLD)
    strong = np.maximum(ax, ay)
    weak = np.minimum(ax, ay)
    linear = (strong > GRADIENT_EVIDENCE_THRESHOLD) & (strong > LINEAR_EVIDENCE_RATIO * weak)
    return int(np.count_nonzero(circular)), int(np.count_nonzero(linear))


def _unit(value: float) -> float:
    return float(min(max(value, 0.0), 1.0))


def compute_aggregates(pixels: PixelBuffer, maps: ImageMaps, *, sample_limit: int = 100_000) -> ImageAggregates:
    """Colour/brightness aggregates over a strided pixel sample plus gradient shape evidence."""
    flat = pixels.rgb.reshape(-1, 3)
    stride = max(1, flat.shape[0] // max(1, sample_limit))
    sampled = flat[::stride].astype(np.float64)

    channel_means = sampled.mean(axis=0) / 255.0
    per_pixel = sampled.mean(axis=1)
    r, g, b = sampled[:, 0], sampled[:, 1], sampled[:, 2]
    spread = np.abs(r - g) + np.abs(g - b) + np.abs(r - b)
    circular, linear = _gradient_evidence(maps)

    return ImageAggregates(
        brightness=_unit(float(per_pixel.mean()) / 255.0),
        contrast=_unit(float(per_pixel.max() - per_pixel.min()) / 255.0),
        saturation=_unit(float(channel_means.max() - channel_means.min())),
        red=_unit(float(channel_means[0])),
        green=_unit(float(channel_means[1])),
        blue=_unit(float(channel_means[2])),
        bright_pixels=int(np.count_nonzero(per_pixel > BRIGHT_PIXEL_LEVEL)),
        dark_regions=int(np.count_nonzero(per_pixel < DARK_PIXEL_LEVEL)),
        colorful_regions=int(np.count_nonzero(spread > COLORFUL_LEVEL)),
        circular_features=circular,
        linear_features=linear,
        sampled_pixels=int(sampled.shape[0]),
    )
