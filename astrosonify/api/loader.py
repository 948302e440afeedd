"""Image decoding for the sonification pipeline.

Encoded bytes (PNG, JPEG, GIF, BMP, TIFF, WebP) are decoded with Pillow into a
fixed-format :class:`PixelBuffer`: interleaved 8-bit RGBA, row-major, never
larger than ``max_dimension`` on either side.

>>> from astrosonify.api.loader import load_pixels
>>> pixels = load_pixels(open("m42.jpg", "rb").read(), max_dimension=2048)
>>> pixels.width, pixels.height, pixels.rgba.shape
(2048, 1365, (1365, 2048, 4))

Any failure to decode raises :class:`~astrosonify.errors.DecodeError`; an image
that collapses to zero area while being downsampled raises
:class:`~astrosonify.errors.DimensionError`. A decode slower than
``decode_timeout`` raises :class:`~astrosonify.errors.DecodeTimeoutError`.
"""
from __future__ import annotations

import io
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from PIL.Image import DecompressionBombError

from astrosonify.errors import DecodeError, DecodeTimeoutError, DimensionError

__all__ = [
    "PixelBuffer",
    "ImageProbe",
    "probe_image_bytes",
    "load_pixels",
    "DEFAULT_MAX_DIMENSION",
]

logger = logging.getLogger("astrosonify.loader")

DEFAULT_MAX_DIMENSION = 2048

try:  # Pillow >=9.1
    RESAMPLE_LANCZOS = Image.Resampling.LANCZOS
except AttributeError:  # pragma: no cover - older Pillow
    RESAMPLE_LANCZOS = Image.LANCZOS  # type: ignore[attr-defined]


@dataclass(frozen=True)
class PixelBuffer:
    """Decoded RGBA pixels, shape ``(height, width, 4)``, read-only."""

    width: int
    height: int
    rgba: np.ndarray

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def rgb(self) -> np.ndarray:
        return self.rgba[..., :3]


@dataclass(frozen=True)
class ImageProbe:
    format: str
    mime: str
    width: int
    height: int


_SIGNATURES: Tuple[Tuple[str, str, bytes, int], ...] = (
    ("png", "image/png", b"\x89PNG\r\n\x1a\n", 0),
    ("jpeg", "image/jpeg", b"\xff\xd8\xff", 0),
    ("gif", "image/gif", b"GIF87a", 0),
    ("gif", "image/gif", b"GIF89a", 0),
    ("bmp", "image/bmp", b"BM", 0),
    ("tiff", "image/tiff", b"II*\x00", 0),
    ("tiff", "image/tiff", b"MM\x00*", 0),
    ("webp", "image/webp", b"WEBP", 8),
)


def _sniff_format(data: bytes) -> Tuple[str, str]:
    for fmt, mime, magic, offset in _SIGNATURES:
        if data[offset:offset + len(magic)] == magic:
            if fmt == "webp" and data[:4] != b"RIFF":
                continue
            return fmt, mime
    raise DecodeError("File signature does not match supported image formats.")


def probe_image_bytes(data: bytes, filename: Optional[str] = None) -> ImageProbe:
    """Validate the signature and read dimensions from the header without decoding pixels."""
    if not data:
        raise DecodeError("Image data is empty.")
    fmt, mime = _sniff_format(bytes(data[:16]))
    try:
        with Image.open(io.BytesIO(data)) as im:
            width, height = im.size
    except DecompressionBombError as exc:
        raise DecodeError("Image is too large to process safely.") from exc
    except Exception as exc:
        label = os.path.basename(filename) if filename else fmt.upper()
        raise DecodeError(f"Unreadable {label} header: {exc}") from exc
    return ImageProbe(format=fmt, mime=mime, width=int(width), height=int(height))


def _scaled_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    if width <= max_dimension and height <= max_dimension:
        return width, height
    scale = max_dimension / float(max(width, height))
    return int(round(width * scale)), int(round(height * scale))


def load_pixels(
    data: bytes,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    filename: Optional[str] = None,
    decode_timeout: float = 3.0,
) -> PixelBuffer:
    """Decode ``data`` into a :class:`PixelBuffer`, downsampling to ``max_dimension``."""
    probe = probe_image_bytes(data, filename=filename)

    decode_start = time.perf_counter()
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            rgba_image = im.convert("RGBA")
    except DecompressionBombError as exc:
        raise DecodeError("Image is too large to process safely.") from exc
    except Exception as exc:
        raise DecodeError(f"Failed to decode image: {exc}") from exc
    elapsed = time.perf_counter() - decode_start
    if elapsed > decode_timeout:
        raise DecodeTimeoutError(f"Image decoding exceeded {decode_timeout:.1f}s safety limit.")

    width, height = rgba_image.size
    target_w, target_h = _scaled_size(width, height, max_dimension)
    if target_w <= 0 or target_h <= 0:
        raise DimensionError(
            f"Image of {width}x{height} collapses to {target_w}x{target_h} at max dimension {max_dimension}."
        )
    if (target_w, target_h) != (width, height):
        logger.debug("Downsampling %s image %dx%d -> %dx%d", probe.format, width, height, target_w, target_h)
        rgba_image = rgba_image.resize((target_w, target_h), RESAMPLE_LANCZOS)

    rgba = np.array(rgba_image, dtype=np.uint8)
    if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.size == 0:
        raise DimensionError(f"Decoded image has no pixels (shape {rgba.shape}).")
    rgba.flags.writeable = False
    return PixelBuffer(width=int(rgba.shape[1]), height=int(rgba.shape[0]), rgba=rgba)
