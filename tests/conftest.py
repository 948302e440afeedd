from __future__ import annotations

import io
import math
from pathlib import Path
import sys
from typing import Callable, Sequence, Tuple

import numpy as np
import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(scope="session")
def star_field() -> Callable[..., np.ndarray]:
    """Return a factory that builds deterministic RGB star fields (uint8, HxWx3)."""

    def _factory(
        size: int = 96,
        centers: Sequence[Tuple[float, float]] = ((24.0, 24.0), (70.0, 30.0), (48.0, 72.0)),
        fwhm: float = 2.0,
        amplitude: float = 220.0,
        background: float = 10.0,
        noise: float = 0.0,
    ) -> np.ndarray:
        ys, xs = np.indices((size, size), dtype=np.float64)
        image = np.full((size, size), background, dtype=np.float64)
        sigma = float(fwhm) / (2.0 * math.sqrt(2.0 * math.log(2.0)))
        for cx, cy in centers:
            image += amplitude * np.exp(-((xs - cx) ** 2 + (ys - cy) ** 2) / (2.0 * sigma**2))
        if noise > 0.0:
            rng = np.random.default_rng(seed=12345)
            image += rng.normal(0.0, noise, size=image.shape)
        gray = np.clip(image, 0, 255).astype(np.uint8)
        return np.stack([gray, gray, gray], axis=-1)

    return _factory


@pytest.fixture(scope="session")
def png_bytes_from_array() -> Callable[[np.ndarray], bytes]:
    """Encode an 8-bit RGB/RGBA/L array into PNG bytes."""

    def _factory(array: np.ndarray) -> bytes:
        image = Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8))
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    return _factory


@pytest.fixture(scope="session")
def solid_png() -> Callable[..., bytes]:
    def _factory(w: int = 64, h: int = 64, color=(255, 255, 255)) -> bytes:
        im = Image.new("RGB", (w, h), color)
        bio = io.BytesIO()
        im.save(bio, format="PNG")
        return bio.getvalue()

    return _factory


@pytest.fixture
def pixels_from_array():
    """Wrap an RGB uint8 array as a PixelBuffer without going through a codec."""
    from astrosonify.api.loader import PixelBuffer

    def _factory(rgb: np.ndarray) -> PixelBuffer:
        h, w = rgb.shape[:2]
        rgba = np.empty((h, w, 4), dtype=np.uint8)
        rgba[..., :3] = rgb
        rgba[..., 3] = 255
        rgba.flags.writeable = False
        return PixelBuffer(width=w, height=h, rgba=rgba)

    return _factory
