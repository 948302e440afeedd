# astrosonify/api/main.py
from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from PIL import Image
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)

from astrosonify.api.io_export import build_zip_bundle, export_analysis
from astrosonify.classifier import ImageType
from astrosonify.config import SonificationConfig
from astrosonify.errors import DecodeTimeoutError, DimensionError, SynthesisError
from astrosonify.observability import configure_observability, ensure_logging_filter, get_tracer
from astrosonify.pipeline import AnalysisReport, SonificationResult, inspect_image, sonify

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger("astrosonify")
logging.basicConfig(
    level=os.environ.get("LOGLEVEL", "INFO"),
    format="%(asctime)s | %(levelname)s | %(name)s | trace=%(trace_id)s span=%(span_id)s | %(message)s",
)
ensure_logging_filter()

# -----------------------------------------------------------------------------
# Limits / validation constants
# -----------------------------------------------------------------------------
MAX_UPLOAD_BYTES = int(os.environ.get("ASTRO_MAX_UPLOAD_BYTES") or str(64 * 1024 * 1024))  # 64 MB
MAX_IMAGE_PIXELS = int(os.environ.get("ASTRO_MAX_IMAGE_PIXELS", str(80_000_000)))  # 80 MP
Image.MAX_IMAGE_PIXELS = MAX_IMAGE_PIXELS

BASE_CONFIG = SonificationConfig.from_env()


def _astro_error(status: int, code: str, message: str, hint: Optional[str] = None) -> HTTPException:
    payload: Dict[str, Any] = {"code": code, "message": message}
    if hint:
        payload["hint"] = hint
    return HTTPException(status_code=status, detail=payload)


def _validation_error(message: str, *, hint: Optional[str] = None, code: str = "ASTRO_4001") -> HTTPException:
    return _astro_error(400, code, message, hint)


def _service_error(message: str, *, hint: Optional[str] = None, code: str = "ASTRO_5001") -> HTTPException:
    return _astro_error(500, code, message, hint)


def _validate_upload_size(data: bytes) -> None:
    if not data:
        raise _validation_error("Uploaded file is empty", hint="Provide a non-empty image.")
    if len(data) > MAX_UPLOAD_BYTES:
        raise _validation_error(
            "Uploaded file exceeds size limit",
            hint=f"Reduce file size below {MAX_UPLOAD_BYTES} bytes.",
            code="ASTRO_4002",
        )


def _parse_hint(hint: Optional[str]) -> Optional[ImageType]:
    if hint is None or not hint.strip():
        return None
    try:
        return ImageType.parse(hint)
    except ValueError as exc:
        raise _validation_error(
            str(exc),
            hint=f"Use one of: {', '.join(t.value for t in ImageType)}.",
            code="ASTRO_4004",
        ) from exc


def _request_config(duration: Optional[float], sample_rate: Optional[int]) -> SonificationConfig:
    try:
        return BASE_CONFIG.replace(duration=duration, sample_rate=sample_rate)
    except SynthesisError as exc:
        raise _validation_error(
            str(exc),
            hint="Pick a duration that is a whole number of samples at the requested sample rate.",
            code="ASTRO_4006",
        ) from exc


_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _filename_root(filename: Optional[str]) -> str:
    if not filename:
        return "upload"
    stem = os.path.splitext(os.path.basename(filename))[0]
    return _SAFE_NAME.sub("_", stem).strip("._") or "upload"


# -----------------------------------------------------------------------------
# FastAPI app
# -----------------------------------------------------------------------------
app = FastAPI(title="AstroSonify API", version="0.1.0")
API_PREFIX = "/v1"
router = APIRouter(prefix=API_PREFIX)

configure_observability(app)
TRACER = get_tracer("astrosonify.api")


def _versioned(path: str) -> str:
    if path.startswith(API_PREFIX):
        return path
    return f"{API_PREFIX}{path}"


@app.middleware("http")
async def _version_header(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-AstroSonify-API"] = "1"
    return response


@app.exception_handler(HTTPException)
async def _astro_http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    payload: Dict[str, Any]
    if isinstance(detail, dict):
        payload = detail.copy()
        message = payload.get("message", "Request failed")
    else:
        message = str(detail) if detail else "Request failed"
        payload = {"message": message}

    if "code" not in payload:
        payload["code"] = "ASTRO_4001" if 400 <= exc.status_code < 500 else "ASTRO_5000"

    payload.setdefault("hint", "See message for details.")
    payload["message"] = message
    return JSONResponse(status_code=exc.status_code, content=payload)


# -----------------------------------------------------------------------------
# Prometheus registry (multiprocess-aware)
# -----------------------------------------------------------------------------
def _build_registry() -> CollectorRegistry:
    registry = CollectorRegistry()
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        multiprocess.MultiProcessCollector(registry)
    return registry


PROM_REGISTRY = _build_registry()

REQ_COUNTER = Counter(
    "astro_requests_total",
    "Total requests per endpoint and status",
    ["endpoint", "status"],
    registry=PROM_REGISTRY,
)
LATENCY_HIST = Histogram(
    "astro_request_latency_seconds",
    "Request latency per endpoint",
    ["endpoint"],
    registry=PROM_REGISTRY,
)
STAGE_SECONDS = Histogram(
    "astro_sonify_seconds",
    "Pipeline stage duration",
    ["stage"],
    registry=PROM_REGISTRY,
)
OBJECTS_COUNTER = Counter(
    "astro_objects_detected_total",
    "Objects detected by category",
    ["category"],
    registry=PROM_REGISTRY,
)
IMAGE_TYPE_COUNTER = Counter(
    "astro_image_type_total",
    "Analysed images by resolved type",
    ["image_type"],
    registry=PROM_REGISTRY,
)
FALLBACK_COUNTER = Counter(
    "astro_decode_fallback_total",
    "Requests answered with the default analysis after a decode failure",
    registry=PROM_REGISTRY,
)
AUDIO_BYTES_COUNTER = Counter(
    "astro_audio_bytes_total",
    "Total bytes of WAV audio produced",
    registry=PROM_REGISTRY,
)

# Pre-register baseline label values for visibility in /metrics
for _endpoint in ("health", "metrics", "analyze", "sonify"):
    for _status in ("200", "400", "500"):
        REQ_COUNTER.labels(endpoint=_versioned(f"/{_endpoint}"), status=_status)
for _stage in ("analysis", "synthesis", "encoding"):
    STAGE_SECONDS.labels(stage=_stage)
for _image_type in ImageType:
    IMAGE_TYPE_COUNTER.labels(image_type=_image_type.value)


def _track(endpoint: str, method: str):
    start = time.perf_counter()

    class _Tracker:
        def ok(self, status: int = 200):
            LATENCY_HIST.labels(endpoint=endpoint).observe(time.perf_counter() - start)
            REQ_COUNTER.labels(endpoint=endpoint, status=str(status)).inc()

        def fail(self, status: int):
            LATENCY_HIST.labels(endpoint=endpoint).observe(time.perf_counter() - start)
            REQ_COUNTER.labels(endpoint=endpoint, status=str(status)).inc()

    return _Tracker()


def _record_analysis(analysis, fallback: bool) -> None:
    IMAGE_TYPE_COUNTER.labels(image_type=analysis.image_type.value).inc()
    if fallback:
        FALLBACK_COUNTER.inc()
        return
    for category, count in analysis.counts.as_dict().items():
        if count:
            OBJECTS_COUNTER.labels(category=category).inc(count)


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------
@router.get("/health")
def health() -> Dict[str, str]:
    t = _track(_versioned("/health"), "GET")
    t.ok()
    return {"status": "ok"}


# Backwards compatibility: expose unversioned /health
app.add_api_route("/health", health, methods=["GET"])


@router.get("/metrics")
def metrics():
    data = generate_latest(PROM_REGISTRY)
    return PlainTextResponse(content=data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)


app.add_api_route("/metrics", metrics, methods=["GET"])


@router.post("/analyze")
async def analyze(
    file: UploadFile = File(...),
    hint: Optional[str] = Query(None, description="deep-sky, planetary, solar, lunar or mixed"),
    format: str = Query("json", description="json or csv"),
):
    endpoint = _versioned("/analyze")
    t = _track(endpoint, "POST")
    try:
        image_type = _parse_hint(hint)
        fmt = format.lower()
        if fmt not in ("json", "csv"):
            raise _validation_error("Unsupported format", hint="Use format=json or format=csv.", code="ASTRO_4005")
        data = await file.read()
        _validate_upload_size(data)

        with TRACER.start_as_current_span("api.analyze"):
            report: AnalysisReport = await run_in_threadpool(
                inspect_image, data, image_type, filename=file.filename, config=BASE_CONFIG
            )
        STAGE_SECONDS.labels(stage="analysis").observe(report.elapsed)
        _record_analysis(report.analysis, report.fallback)

        extra = {"fallback": report.fallback, "width": report.width, "height": report.height}
        t.ok()
        if fmt == "csv":
            artifact = export_analysis(report.analysis, "csv", extra=extra)
            return Response(content=artifact.content, media_type=artifact.media_type)
        payload = report.analysis.to_dict()
        payload.update(extra)
        return payload
    except HTTPException as exc:
        t.fail(exc.status_code)
        raise
    except DimensionError as exc:
        t.fail(400)
        raise _validation_error(str(exc), hint="Upload an image with a non-degenerate aspect ratio.", code="ASTRO_4003") from exc
    except DecodeTimeoutError as exc:
        t.fail(400)
        raise _validation_error(str(exc), hint="Upload a smaller or simpler image.", code="ASTRO_4007") from exc
    except Exception as exc:
        logger.exception("analyze failed")
        t.fail(500)
        raise _service_error("Analysis failed", hint=str(exc), code="ASTRO_5000") from exc


@router.post("/sonify")
async def sonify_endpoint(
    file: UploadFile = File(...),
    hint: Optional[str] = Query(None, description="deep-sky, planetary, solar, lunar or mixed"),
    duration: Optional[float] = Query(None, gt=0, le=600, description="Seconds of audio"),
    sample_rate: Optional[int] = Query(None, ge=8000, le=192000),
    bundle: str = Query("none", description="none or zip"),
    download: bool = Query(False, description="Force attachment Content-Disposition when true"),
):
    endpoint = _versioned("/sonify")
    t = _track(endpoint, "POST")
    try:
        image_type = _parse_hint(hint)
        bundle_mode = bundle.lower()
        if bundle_mode not in ("none", "zip"):
            raise _validation_error("Unsupported bundle mode", hint="Use bundle=none or bundle=zip.", code="ASTRO_4005")
        data = await file.read()
        _validate_upload_size(data)

        config = _request_config(duration, sample_rate)
        with TRACER.start_as_current_span("api.sonify") as span:
            result: SonificationResult = await run_in_threadpool(
                sonify, data, image_type, filename=file.filename, config=config
            )
            if span is not None:
                span.set_attribute("astro.image_type", result.analysis.image_type.value)
                span.set_attribute("astro.fallback", result.fallback)
                span.set_attribute("astro.audio.bytes", len(result.wav))
        for stage, seconds in result.timings.items():
            STAGE_SECONDS.labels(stage=stage).observe(seconds)
        _record_analysis(result.analysis, result.fallback)
        AUDIO_BYTES_COUNTER.inc(len(result.wav))

        type_label = result.analysis.image_type.value
        filename_stem = f"astronomy-sonification-{type_label}"
        headers = {
            "X-Astro-Image-Type": type_label,
            "X-Astro-Sample-Rate": str(result.sample_rate),
            "X-Astro-Channels": str(result.channels),
            "X-Astro-Duration": f"{result.duration:g}",
            "X-Astro-Fallback": "1" if result.fallback else "0",
        }

        if bundle_mode == "zip":
            artifact = export_analysis(
                result.analysis,
                "json",
                extra={"fallback": result.fallback, "width": result.width, "height": result.height},
            )
            metadata = {
                "endpoint": endpoint,
                "filename": file.filename,
                "source": _filename_root(file.filename),
                "image_type": type_label,
                "sample_rate": result.sample_rate,
                "channels": result.channels,
                "duration": result.duration,
                "fallback": result.fallback,
            }
            zip_bytes = build_zip_bundle(result.wav, artifact, metadata=metadata, filename_stem=filename_stem)
            headers["Content-Disposition"] = f'attachment; filename="{filename_stem}.zip"'
            t.ok()
            return Response(content=zip_bytes, media_type="application/zip", headers=headers)

        if download:
            headers["Content-Disposition"] = f'attachment; filename="{filename_stem}.wav"'
        t.ok()
        return Response(content=result.wav, media_type="audio/wav", headers=headers)
    except HTTPException as exc:
        t.fail(exc.status_code)
        raise
    except DimensionError as exc:
        t.fail(400)
        raise _validation_error(str(exc), hint="Upload an image with a non-degenerate aspect ratio.", code="ASTRO_4003") from exc
    except DecodeTimeoutError as exc:
        t.fail(400)
        raise _validation_error(str(exc), hint="Upload a smaller or simpler image.", code="ASTRO_4007") from exc
    except SynthesisError as exc:
        logger.warning("sonify rejected audio settings: %s", exc)
        t.fail(500)
        raise _service_error("Audio synthesis failed", hint=str(exc)) from exc
    except Exception as exc:
        logger.exception("sonify failed")
        t.fail(500)
        raise _service_error("Sonification failed", hint=str(exc), code="ASTRO_5000") from exc


app.include_router(router)
