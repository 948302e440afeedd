from __future__ import annotations

__all__ = [
    "SonificationError",
    "DecodeError",
    "DimensionError",
    "DecodeTimeoutError",
    "SynthesisError",
    "WavFormatError",
]


class SonificationError(Exception):
    """Base class for every error raised by the sonification pipeline."""


class DecodeError(SonificationError):
    """Raised when input bytes are not a decodable raster image."""


class DimensionError(SonificationError):
    """Raised when an image has zero area after resampling."""


class DecodeTimeoutError(SonificationError):
    """Raised when decoding a readable image exceeds ``decode_timeout``; never recovered."""


class SynthesisError(SonificationError):
    """Raised for invalid audio rendering settings."""


class WavFormatError(SonificationError):
    """Raised when a byte buffer is not a 16-bit PCM RIFF/WAVE container."""
