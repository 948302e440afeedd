"""Runtime configuration for the sonification pipeline.

Every value has a default and can be overridden through ``ASTRO_*`` environment
variables (see :meth:`SonificationConfig.from_env`). Audio settings that cannot
be rendered raise :class:`~astrosonify.errors.SynthesisError`; other invalid
values raise ``ValueError``.
"""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, fields, replace as _dc_replace
from typing import Any, Mapping, Optional

from astrosonify.errors import SynthesisError

__all__ = ["SonificationConfig", "DEEP_SKY_MODES"]

DEEP_SKY_MODES = ("full", "coarse")


def _default_workers() -> int:
    return max(1, min(4, os.cpu_count() or 1))


@dataclass(frozen=True)
class SonificationConfig:
    max_dimension: int = 2048
    sample_rate: int = 44100
    duration: float = 30.0
    headroom: float = 0.4
    workers: int = field(default_factory=_default_workers)
    aggregate_sample_limit: int = 100_000
    decode_timeout: float = 3.0
    deep_sky_detection: str = "full"

    def __post_init__(self) -> None:
        if isinstance(self.sample_rate, bool) or not isinstance(self.sample_rate, int) or self.sample_rate <= 0:
            raise SynthesisError(f"sample_rate must be a positive integer, got {self.sample_rate!r}")
        if not math.isfinite(float(self.duration)) or float(self.duration) <= 0:
            raise SynthesisError(f"duration must be a positive number of seconds, got {self.duration!r}")
        total = self.sample_rate * float(self.duration)
        if abs(total - round(total)) > 1e-6:
            raise SynthesisError(
                f"sample_rate * duration must be a whole number of samples ({self.sample_rate} * {self.duration})"
            )
        if not math.isfinite(float(self.headroom)) or not 0.0 < float(self.headroom) <= 1.0:
            raise SynthesisError(f"headroom must lie in (0, 1], got {self.headroom!r}")
        if int(self.workers) < 1:
            raise SynthesisError(f"workers must be >= 1, got {self.workers!r}")
        if int(self.max_dimension) < 1:
            raise ValueError(f"max_dimension must be >= 1, got {self.max_dimension!r}")
        if int(self.aggregate_sample_limit) < 1:
            raise ValueError(f"aggregate_sample_limit must be >= 1, got {self.aggregate_sample_limit!r}")
        if float(self.decode_timeout) <= 0:
            raise ValueError(f"decode_timeout must be positive, got {self.decode_timeout!r}")
        if self.deep_sky_detection not in DEEP_SKY_MODES:
            raise ValueError(
                f"deep_sky_detection must be one of {', '.join(DEEP_SKY_MODES)}, got {self.deep_sky_detection!r}"
            )

    @property
    def total_samples(self) -> int:
        return int(round(self.sample_rate * float(self.duration)))

    def replace(self, **changes: Any) -> "SonificationConfig":
        """Return a validated copy with ``changes`` applied; ``None`` values are ignored."""
        cleaned = {key: value for key, value in changes.items() if value is not None}
        return _dc_replace(self, **cleaned)

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SonificationConfig":
        env = os.environ if environ is None else environ
        kwargs: dict = {}
        if env.get("ASTRO_MAX_DIMENSION"):
            kwargs["max_dimension"] = int(env["ASTRO_MAX_DIMENSION"])
        if env.get("ASTRO_SAMPLE_RATE"):
            kwargs["sample_rate"] = int(env["ASTRO_SAMPLE_RATE"])
        if env.get("ASTRO_DURATION_SECONDS"):
            kwargs["duration"] = float(env["ASTRO_DURATION_SECONDS"])
        if env.get("ASTRO_HEADROOM"):
            kwargs["headroom"] = float(env["ASTRO_HEADROOM"])
        if env.get("ASTRO_SYNTH_WORKERS"):
            kwargs["workers"] = int(env["ASTRO_SYNTH_WORKERS"])
        if env.get("ASTRO_AGGREGATE_SAMPLES"):
            kwargs["aggregate_sample_limit"] = int(env["ASTRO_AGGREGATE_SAMPLES"])
        if env.get("ASTRO_IMAGE_DECODE_SECONDS"):
            kwargs["decode_timeout"] = float(env["ASTRO_IMAGE_DECODE_SECONDS"])
        if env.get("ASTRO_DEEP_SKY_DETECTION"):
            kwargs["deep_sky_detection"] = env["ASTRO_DEEP_SKY_DETECTION"].strip().lower()
        return cls(**kwargs)
