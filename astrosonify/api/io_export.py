from __future__ import annotations

import csv
import io
import json
import math
import zipfile
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

import numpy as np

from astrosonify.analysis import AnalysisResult

LIST_SEPARATOR = ";"
FLOAT_FORMAT = ".6g"

# Row order of the ``field,value`` CSV export.
SCALAR_FIELDS: Tuple[str, ...] = (
    "image_type",
    "stars",
    "nebulae",
    "galaxies",
    "planets",
    "moons",
    "sunspots",
    "solar_flares",
    "brightness",
    "contrast",
    "saturation",
)
COLOR_FIELDS: Tuple[str, ...] = ("red", "green", "blue")
LIST_FIELDS: Tuple[str, ...] = ("dominant_frequencies", "harmonic_structure", "rhythm_pattern")


@dataclass
class ExportArtifact:
    content: bytes
    media_type: str
    extension: str
    columns: List[str]


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        return format(value, FLOAT_FORMAT)
    return str(value)


def _rows(payload: Mapping[str, Any]) -> List[Tuple[str, str]]:
    rows: List[Tuple[str, str]] = []
    for name in SCALAR_FIELDS:
        rows.append((name, _format_value(payload[name])))
    color = payload["color_profile"]
    for name in COLOR_FIELDS:
        rows.append((f"color_{name}", _format_value(color[name])))
    for name in LIST_FIELDS:
        rows.append((name, LIST_SEPARATOR.join(_format_value(v) for v in payload[name])))
    return rows


def export_analysis(
    analysis: AnalysisResult,
    fmt: str,
    *,
    extra: Optional[Mapping[str, Any]] = None,
) -> ExportArtifact:
    """Serialise an analysis record as ``json`` or ``csv``.

    ``extra`` fields (e.g. ``fallback``, ``width``) are merged into the JSON
    object and appended as trailing CSV rows.
    """
    fmt = fmt.lower()
    payload = analysis.to_dict()
    extras = dict(extra or {})

    if fmt == "csv":
        rows = _rows(payload)
        rows.extend((key, _format_value(value)) for key, value in extras.items())
        sio = io.StringIO()
        writer = csv.writer(sio)
        writer.writerow(["field", "value"])
        writer.writerows(rows)
        return ExportArtifact(
            content=sio.getvalue().encode("utf-8"),
            media_type="text/csv",
            extension="csv",
            columns=[name for name, _ in rows],
        )

    if fmt == "json":
        payload.update(extras)
        content = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        return ExportArtifact(content=content, media_type="application/json", extension="json", columns=list(payload))

    raise ValueError(f"Unsupported export format: {fmt}")


def build_zip_bundle(
    wav: bytes,
    artifact: ExportArtifact,
    *,
    metadata: Mapping[str, Any],
    filename_stem: str,
) -> bytes:
    """Zip the WAV, the analysis export and a ``metadata.json`` describing both."""
    zip_buf = io.BytesIO()
    with zipfile.ZipFile(zip_buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(f"{filename_stem}.wav", wav)
        zf.writestr(f"analysis.{artifact.extension}", artifact.content)
        meta = dict(metadata)
        meta.setdefault("audio_file", f"{filename_stem}.wav")
        meta.setdefault("audio_bytes", len(wav))
        meta.setdefault("analysis_file", f"analysis.{artifact.extension}")
        zf.writestr("metadata.json", json.dumps(meta, ensure_ascii=False, indent=2))
    zip_buf.seek(0)
    return zip_buf.getvalue()
