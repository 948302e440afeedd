from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from astrosonify.api.loader import load_pixels, probe_image_bytes
from astrosonify.errors import DecodeError, DecodeTimeoutError


def _encode(image: Image.Image, fmt: str) -> bytes:
    bio = io.BytesIO()
    image.save(bio, format=fmt)
    return bio.getvalue()


@pytest.mark.parametrize(
    "fmt, expected",
    [("PNG", "png"), ("JPEG", "jpeg"), ("GIF", "gif"), ("BMP", "bmp"), ("TIFF", "tiff")],
)
def test_probe_reads_header(fmt, expected) -> None:
    probe = probe_image_bytes(_encode(Image.new("RGB", (20, 10), (1, 2, 3)), fmt))
    assert probe.format == expected
    assert (probe.width, probe.height) == (20, 10)


@pytest.mark.parametrize("data", [b"", b"hello world", b"\x89PNG\r\n\x1a\n" + b"\x00" * 8])
def test_bad_bytes_raise_decode_error(data) -> None:
    with pytest.raises(DecodeError):
        load_pixels(data)


def test_grayscale_is_converted_to_rgba() -> None:
    gray = np.arange(64, dtype=np.uint8).reshape(8, 8)
    pixels = load_pixels(_encode(Image.fromarray(gray), "PNG"))
    assert (pixels.width, pixels.height) == (8, 8)
    assert pixels.rgba.shape == (8, 8, 4)
    assert pixels.rgba[0, 5].tolist() == [5, 5, 5, 255]
    assert not pixels.rgba.flags.writeable
    assert pixels.pixel_count == 64


def test_downsampling_keeps_aspect_ratio() -> None:
    pixels = load_pixels(_encode(Image.new("RGB", (400, 100), (9, 9, 9)), "PNG"), max_dimension=200)
    assert (pixels.width, pixels.height) == (200, 50)


def test_decompression_bomb_is_rejected(monkeypatch) -> None:
    data = _encode(Image.new("RGB", (64, 64)), "PNG")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    with pytest.raises(DecodeError):
        load_pixels(data)


def test_slow_decode_is_not_a_decode_error() -> None:
    data = _encode(Image.new("RGB", (64, 64), (40, 50, 60)), "PNG")
    with pytest.raises(DecodeTimeoutError) as excinfo:
        load_pixels(data, decode_timeout=1e-9)
    assert not isinstance(excinfo.value, DecodeError)
