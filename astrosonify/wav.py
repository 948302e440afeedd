"""16-bit PCM WAV encoding through libsndfile (``soundfile``)."""
from __future__ import annotations

import io
import logging

import numpy as np
import soundfile as sf

from astrosonify.errors import WavFormatError
from astrosonify.synth import AudioBuffer

__all__ = ["encode_wav", "decode_wav", "WAV_SUBTYPE"]

logger = logging.getLogger("astrosonify.wav")

WAV_SUBTYPE = "PCM_16"


def _quantize(samples: np.ndarray) -> np.ndarray:
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.clip(np.rint(scaled), -32768, 32767).astype("<i2")


def encode_wav(buffer: AudioBuffer) -> bytes:
    frames = np.empty((buffer.frames, buffer.channels), dtype="<i2")
    frames[:, 0] = _quantize(buffer.left)
    frames[:, 1] = _quantize(buffer.right)

    bio = io.BytesIO()
    sf.write(bio, frames, buffer.sample_rate, format="WAV", subtype=WAV_SUBTYPE)
    return bio.getvalue()


def decode_wav(data: bytes) -> AudioBuffer:
    """Read a 16-bit PCM stereo or mono WAV back into an :class:`AudioBuffer`.

    Mono input is duplicated into both channels.
    """
    try:
        with sf.SoundFile(io.BytesIO(data)) as snd:
            if snd.format != "WAV" or snd.subtype != WAV_SUBTYPE:
                raise WavFormatError(f"Only 16-bit PCM WAV is supported (format={snd.format}, subtype={snd.subtype}).")
            if snd.channels not in (1, 2):
                raise WavFormatError(f"Unsupported channel layout: channels={snd.channels}.")
            sample_rate = int(snd.samplerate)
            channels = int(snd.channels)
            raw = snd.read(dtype="int16", always_2d=True)
    except RuntimeError as exc:
        raise WavFormatError(f"Unreadable WAV data: {exc}") from exc

    samples = raw.astype(np.float64)
    samples = np.where(samples < 0, samples / 32768.0, samples / 32767.0)
    left = samples[:, 0]
    right = samples[:, 1] if channels == 2 else samples[:, 0].copy()
    logger.debug("Decoded %d frames at %d Hz (%d channels)", left.shape[0], sample_rate, channels)
    return AudioBuffer(
        sample_rate=sample_rate,
        duration=left.shape[0] / float(sample_rate),
        left=left,
        right=right,
    )
