"""End-to-end orchestration: bytes in, analysis record and WAV bytes out.

Stages run strictly in order (decode, statistics, classification, detection,
frequency mapping, synthesis, encoding) and every stage is wrapped in a trace
span. A decode failure is not fatal: the fixed :data:`DEFAULT_ANALYSIS` is
substituted and the result is flagged ``fallback=True``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from astrosonify.analysis import DEFAULT_ANALYSIS, AnalysisResult, ColorProfile
from astrosonify.api.loader import PixelBuffer, load_pixels
from astrosonify.basic_objects import ObjectCounts, estimate_basic_objects
from astrosonify.classifier import ImageType, classify_image
from astrosonify.config import SonificationConfig
from astrosonify.errors import DecodeError
from astrosonify.frequencies import map_frequencies
from astrosonify.observability import get_tracer
from astrosonify.regions import DetectionResult, detect_galaxies, detect_nebulae
from astrosonify.stars import detect_stars
from astrosonify.statistics import compute_aggregates, compute_image_stats, compute_maps
from astrosonify.synth import render_audio
from astrosonify.wav import encode_wav

__all__ = [
    "AnalysisReport",
    "SonificationResult",
    "analyze_image",
    "inspect_image",
    "sonify",
]

logger = logging.getLogger("astrosonify.pipeline")


@dataclass(frozen=True)
class AnalysisReport:
    """An :class:`AnalysisResult` plus the facts about how it was produced."""

    analysis: AnalysisResult
    fallback: bool
    width: int = 0
    height: int = 0
    masks: Dict[str, DetectionResult] = field(default_factory=dict)
    elapsed: float = 0.0


@dataclass(frozen=True)
class SonificationResult:
    analysis: AnalysisResult
    wav: bytes
    sample_rate: int
    channels: int
    duration: float
    fallback: bool
    width: int = 0
    height: int = 0
    timings: Dict[str, float] = field(default_factory=dict)


def _unit(value: float) -> float:
    return float(min(max(value, 0.0), 1.0))


def _detect_deep_sky(pixels: PixelBuffer, maps, lum_stats) -> tuple:
    tracer = get_tracer("astrosonify.pipeline")
    with tracer.start_as_current_span("astrosonify.detect.stars"):
        stars = detect_stars(maps, lum_stats)
    with tracer.start_as_current_span("astrosonify.detect.nebulae"):
        nebulae = detect_nebulae(maps, stars.mask)
    with tracer.start_as_current_span("astrosonify.detect.galaxies"):
        galaxies = detect_galaxies(maps, stars.mask, nebulae.mask)
    counts = ObjectCounts(stars=stars.count, nebulae=nebulae.count, galaxies=galaxies.count)
    logger.debug(
        "Deep-sky detection on %dx%d: stars=%d nebulae=%d galaxies=%d",
        pixels.width,
        pixels.height,
        stars.count,
        nebulae.count,
        galaxies.count,
    )
    return counts, {"stars": stars, "nebulae": nebulae, "galaxies": galaxies}


def inspect_image(
    data: bytes,
    hint: "str | ImageType | None" = None,
    *,
    filename: Optional[str] = None,
    config: Optional[SonificationConfig] = None,
) -> AnalysisReport:
    """Analyse ``data`` and report dimensions, detector masks and the fallback flag.

    An unknown ``hint`` raises ``ValueError`` before any decoding happens.
    """
    cfg = config or SonificationConfig()
    if hint is not None and str(hint).strip():
        hint = ImageType.parse(hint)
    else:
        hint = None

    tracer = get_tracer("astrosonify.pipeline")
    start = time.perf_counter()

    with tracer.start_as_current_span("astrosonify.decode"):
        try:
            pixels = load_pixels(
                data,
                max_dimension=cfg.max_dimension,
                filename=filename,
                decode_timeout=cfg.decode_timeout,
            )
        except DecodeError as exc:
            logger.warning("Image decode failed (%s); using default analysis.", exc)
            return AnalysisReport(
                analysis=DEFAULT_ANALYSIS,
                fallback=True,
                elapsed=time.perf_counter() - start,
            )

    with tracer.start_as_current_span("astrosonify.statistics"):
        maps = compute_maps(pixels)
        lum_stats = compute_image_stats(maps.luminance)
        aggregates = compute_aggregates(pixels, maps, sample_limit=cfg.aggregate_sample_limit)

    with tracer.start_as_current_span("astrosonify.classify"):
        image_type = classify_image(
            hint=hint,
            filename=filename,
            brightness=aggregates.brightness,
            contrast=aggregates.contrast,
            circular=aggregates.circular_features,
            linear=aggregates.linear_features,
        )

    masks: Dict[str, DetectionResult] = {}
    if image_type is ImageType.DEEP_SKY and cfg.deep_sky_detection == "full":
        counts, masks = _detect_deep_sky(pixels, maps, lum_stats)
    else:
        with tracer.start_as_current_span("astrosonify.detect.basic"):
            counts = estimate_basic_objects(image_type, aggregates)

    brightness = _unit(aggregates.brightness)
    contrast = _unit(aggregates.contrast)
    saturation = _unit(aggregates.saturation)
    color = ColorProfile(red=_unit(aggregates.red), green=_unit(aggregates.green), blue=_unit(aggregates.blue))

    with tracer.start_as_current_span("astrosonify.frequencies"):
        profile = map_frequencies(
            counts,
            red=color.red,
            green=color.green,
            blue=color.blue,
            brightness=brightness,
            contrast=contrast,
            saturation=saturation,
            image_type=image_type,
        )

    analysis = AnalysisResult(
        stars=counts.stars,
        nebulae=counts.nebulae,
        galaxies=counts.galaxies,
        planets=counts.planets,
        moons=counts.moons,
        sunspots=counts.sunspots,
        solar_flares=counts.solar_flares,
        brightness=brightness,
        contrast=contrast,
        saturation=saturation,
        image_type=image_type,
        color_profile=color,
        dominant_frequencies=profile.dominant_frequencies,
        harmonic_structure=profile.harmonic_structure,
        rhythm_pattern=profile.rhythm_pattern,
    )
    elapsed = time.perf_counter() - start
    logger.info(
        "Analysed %dx%d image as %s in %.3fs (stars=%d nebulae=%d galaxies=%d)",
        pixels.width,
        pixels.height,
        image_type.value,
        elapsed,
        analysis.stars,
        analysis.nebulae,
        analysis.galaxies,
    )
    return AnalysisReport(
        analysis=analysis,
        fallback=False,
        width=pixels.width,
        height=pixels.height,
        masks=masks,
        elapsed=elapsed,
    )


def analyze_image(
    data: bytes,
    hint: "str | ImageType | None" = None,
    *,
    filename: Optional[str] = None,
    config: Optional[SonificationConfig] = None,
) -> AnalysisResult:
    return inspect_image(data, hint, filename=filename, config=config).analysis


def sonify(
    data: bytes,
    hint: "str | ImageType | None" = None,
    *,
    filename: Optional[str] = None,
    config: Optional[SonificationConfig] = None,
) -> SonificationResult:
    """Analyse ``data`` and render it to a stereo 16-bit PCM WAV."""
    cfg = config or SonificationConfig()
    tracer = get_tracer("astrosonify.pipeline")

    report = inspect_image(data, hint, filename=filename, config=cfg)

    t0 = time.perf_counter()
    with tracer.start_as_current_span("astrosonify.synthesis"):
        audio = render_audio(
            report.analysis,
            sample_rate=cfg.sample_rate,
            duration=cfg.duration,
            headroom=cfg.headroom,
            workers=cfg.workers,
        )
    t1 = time.perf_counter()
    with tracer.start_as_current_span("astrosonify.encoding"):
        wav = encode_wav(audio)
    t2 = time.perf_counter()

    return SonificationResult(
        analysis=report.analysis,
        wav=wav,
        sample_rate=audio.sample_rate,
        channels=audio.channels,
        duration=audio.duration,
        fallback=report.fallback,
        width=report.width,
        height=report.height,
        timings={"analysis": report.elapsed, "synthesis": t1 - t0, "encoding": t2 - t1},
    )
