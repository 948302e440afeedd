"""Additive stereo synthesis driven by an :class:`AnalysisResult`.

Each dominant frequency contributes a sine partial plus its harmonic series,
alternately panned left and right, gated by the rhythm pattern (two steps per
second) and shaped by a single half-sine envelope over the whole recording.
Disjoint time ranges are rendered on a thread pool and concatenated in order.
"""
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from astrosonify.analysis import AnalysisResult
from astrosonify.classifier import ImageType
from astrosonify.errors import SynthesisError

__all__ = ["AudioBuffer", "render_audio", "CHUNK_SAMPLES", "DEFAULT_HEADROOM"]

logger = logging.getLogger("astrosonify.synth")

CHUNK_SAMPLES = 1 << 16
DEFAULT_HEADROOM = 0.4
TOTAL_AMPLITUDE = 0.08
PAN_WIDTH = 0.3
RHYTHM_STEPS_PER_SECOND = 2.0


@dataclass(frozen=True)
class AudioBuffer:
    sample_rate: int
    duration: float
    left: np.ndarray
    right: np.ndarray

    @property
    def channels(self) -> int:
        return 2

    @property
    def frames(self) -> int:
        return int(self.left.shape[0])

    def interleaved(self) -> np.ndarray:
        """Samples as a ``(frames, 2)`` array."""
        return np.stack([self.left, self.right], axis=1)


def _validate(sample_rate: int, duration: float, headroom: float, workers: int, frequencies) -> int:
    if isinstance(sample_rate, bool) or not math.isfinite(sample_rate) or sample_rate <= 0 or int(sample_rate) != sample_rate:
        raise SynthesisError(f"sample_rate must be a positive integer, got {sample_rate!r}")
    if not math.isfinite(duration) or duration <= 0:
        raise SynthesisError(f"duration must be positive, got {duration!r}")
    total = sample_rate * duration
    if abs(total - round(total)) > 1e-6:
        raise SynthesisError(f"sample_rate * duration must be a whole number of samples, got {total!r}")
    if not math.isfinite(headroom) or not 0.0 < headroom <= 1.0:
        raise SynthesisError(f"headroom must lie in (0, 1], got {headroom!r}")
    if workers < 1:
        raise SynthesisError(f"workers must be >= 1, got {workers!r}")
    if len(frequencies) == 0:
        raise SynthesisError("Cannot render audio without at least one frequency.")
    if any(not math.isfinite(f) or f <= 0 for f in frequencies):
        raise SynthesisError(f"Frequencies must be finite and positive, got {list(frequencies)!r}")
    return int(round(total))


def _render_chunk(
    start: int,
    stop: int,
    *,
    analysis: AnalysisResult,
    sample_rate: int,
    duration: float,
    headroom: float,
) -> Tuple[np.ndarray, np.ndarray]:
    t = np.arange(start, stop, dtype=np.float64) / float(sample_rate)
    frequencies = analysis.dominant_frequencies
    harmonics = analysis.harmonic_structure
    rhythm = np.asarray(analysis.rhythm_pattern, dtype=np.float64)

    steps = np.floor(np.mod(t * RHYTHM_STEPS_PER_SECOND, rhythm.size)).astype(np.intp)
    rhythm_gain = rhythm[np.clip(steps, 0, rhythm.size - 1)]

    amplitude = TOTAL_AMPLITUDE / len(frequencies)
    left = np.zeros_like(t)
    right = np.zeros_like(t)
    for k, freq in enumerate(frequencies):
        phase = 2.0 * math.pi * freq * t
        wave = np.sin(phase)
        for ratio in harmonics:
            wave += np.sin(phase * ratio) * (amplitude / (2.0 * ratio))
        if analysis.image_type is ImageType.SOLAR and k < 2:
            wave *= 1.0 + 0.3 * np.sin(0.5 * t)
        elif analysis.image_type is ImageType.PLANETARY and k < 3:
            wave *= 1.0 + 0.2 * np.sin(0.2 * t + k)
        wave *= rhythm_gain
        pan = -PAN_WIDTH if k % 2 == 0 else PAN_WIDTH
        left += wave * (amplitude * (1.0 + pan))
        right += wave * (amplitude * (1.0 - pan))

    envelope = np.sin(math.pi * t / duration) * analysis.brightness * (1.0 + 0.5 * analysis.contrast)
    gain = envelope * headroom
    return np.clip(left * gain, -1.0, 1.0), np.clip(right * gain, -1.0, 1.0)


def render_audio(
    analysis: AnalysisResult,
    *,
    sample_rate: int,
    duration: float,
    headroom: float = DEFAULT_HEADROOM,
    workers: int = 1,
) -> AudioBuffer:
    """Render ``sample_rate * duration`` stereo frames for ``analysis``."""
    duration = float(duration)
    total = _validate(sample_rate, duration, float(headroom), int(workers), analysis.dominant_frequencies)
    sample_rate = int(sample_rate)

    bounds: List[Tuple[int, int]] = [
        (start, min(start + CHUNK_SAMPLES, total)) for start in range(0, total, CHUNK_SAMPLES)
    ]

    def render(span: Tuple[int, int]) -> Tuple[np.ndarray, np.ndarray]:
        return _render_chunk(
            span[0],
            span[1],
            analysis=analysis,
            sample_rate=sample_rate,
            duration=duration,
            headroom=float(headroom),
        )

    if int(workers) == 1 or len(bounds) <= 1:
        parts = [render(span) for span in bounds]
    else:
        with ThreadPoolExecutor(max_workers=int(workers)) as executor:
            parts = list(executor.map(render, bounds))

    left = np.concatenate([p[0] for p in parts]) if parts else np.zeros(0)
    right = np.concatenate([p[1] for p in parts]) if parts else np.zeros(0)
    logger.debug(
        "Rendered %d frames at %d Hz from %d partials (%d chunks, %d workers)",
        total,
        sample_rate,
        len(analysis.dominant_frequencies),
        len(bounds),
        workers,
    )
    return AudioBuffer(sample_rate=sample_rate, duration=duration, left=left, right=right)
