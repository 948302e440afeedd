from __future__ import annotations

import logging
import os
from contextlib import nullcontext
from typing import Dict, Optional, Tuple

logger = logging.getLogger("astrosonify.observability")

try:  # pragma: no cover - optional dependency
    from opentelemetry import trace  # type: ignore
    from opentelemetry.sdk.resources import Resource  # type: ignore
    from opentelemetry.sdk.trace import TracerProvider  # type: ignore
    from opentelemetry.sdk.trace.export import BatchSpanProcessor  # type: ignore
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter  # type: ignore
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor  # type: ignore
    from opentelemetry.trace import Tracer as _Tracer  # type: ignore

    _OTEL_AVAILABLE = True
except ImportError:  # pragma: no cover - optional dependency missing
    trace = None  # type: ignore
    Resource = None  # type: ignore
    TracerProvider = None  # type: ignore
    BatchSpanProcessor = None  # type: ignore
    OTLPSpanExporter = None  # type: ignore
    FastAPIInstrumentor = None  # type: ignore
    _Tracer = None  # type: ignore
    _OTEL_AVAILABLE = False

_NO_TRACE = ("0" * 32, "0" * 16)
DEFAULT_OTLP_ENDPOINT = "http://localhost:4318/v1/traces"

_LOG_FILTER_ATTACHED = False
_CONFIGURED = False


class TraceContextFilter(logging.Filter):
    """Inject trace/span ids into every log record for formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        trace_id, span_id = current_trace_ids()
        record.trace_id = trace_id
        record.span_id = span_id
        return True


def ensure_logging_filter() -> None:
    """Attach the trace-id filter to the root logger and its handlers (idempotent)."""
    global _LOG_FILTER_ATTACHED
    if _LOG_FILTER_ATTACHED:
        return
    root = logging.getLogger()
    flt = TraceContextFilter()
    root.addFilter(flt)
    for handler in root.handlers:
        handler.addFilter(flt)
    _LOG_FILTER_ATTACHED = True


def current_trace_ids() -> Tuple[str, str]:
    """Return (trace_id, span_id) as hex strings; zeroed if no active span."""
    if not _OTEL_AVAILABLE or trace is None:
        return _NO_TRACE
    span = trace.get_current_span()
    ctx = span.get_span_context() if span is not None else None
    if ctx is None or not ctx.is_valid:
        return _NO_TRACE
    return f"{ctx.trace_id:032x}", f"{ctx.span_id:016x}"


def parse_otlp_headers(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``key=value,key2=value2`` into a dict, skipping malformed parts."""
    if not raw:
        return {}
    headers: Dict[str, str] = {}
    for part in raw.split(","):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        key = key.strip()
        if key:
            headers[key] = value.strip()
    return headers


def otlp_endpoint(environ=None) -> str:
    env = os.environ if environ is None else environ
    endpoint = env.get("ASTRO_OTLP_ENDPOINT") or env.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return DEFAULT_OTLP_ENDPOINT
    endpoint = endpoint.rstrip("/")
    if not endpoint.endswith("/v1/traces"):
        endpoint = f"{endpoint}/v1/traces"
    return endpoint


def _build_otlp_exporter():
    if not _OTEL_AVAILABLE or OTLPSpanExporter is None:
        return None

    kwargs = {"endpoint": otlp_endpoint()}
    headers = parse_otlp_headers(
        os.environ.get("ASTRO_OTLP_HEADERS") or os.environ.get("OTEL_EXPORTER_OTLP_HEADERS")
    )
    if headers:
        kwargs["headers"] = headers
    try:
        return OTLPSpanExporter(**kwargs)
    except (TypeError, ValueError) as exc:  # pragma: no cover - exporter misconfiguration
        logger.warning("OTLP exporter initialization failed: %s", exc)
        return None


async def _trace_headers_middleware(request, call_next):
    response = await call_next(request)
    trace_id, span_id = current_trace_ids()
    response.headers.setdefault("x-trace-id", trace_id)
    response.headers.setdefault("x-span-id", span_id)
    response.headers.setdefault("traceparent", f"00-{trace_id}-{span_id}-01")
    return response


class _NoopTracer:
    """Fallback tracer when OpenTelemetry is unavailable."""

    def start_as_current_span(self, name: str, **kwargs):
        return nullcontext(None)


def get_tracer(name: str = "astrosonify") -> "_Tracer | _NoopTracer":
    if not _OTEL_AVAILABLE or trace is None:
        return _NoopTracer()
    return trace.get_tracer(name)


def _install_tracer_provider() -> None:
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return
    resource = Resource.create(
        {
            "service.name": os.environ.get("OTEL_SERVICE_NAME") or "astrosonify-api",
            "service.namespace": "astrosonify",
            "service.version": os.environ.get("ASTRO_API_VERSION") or "unknown",
        }
    )
    provider = TracerProvider(resource=resource)
    exporter = _build_otlp_exporter()
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


def configure_observability(app) -> None:
    """Wire trace ids into logs and response headers; export spans when OpenTelemetry is installed."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    ensure_logging_filter()
    if _OTEL_AVAILABLE:
        _install_tracer_provider()
        FastAPIInstrumentor().instrument_app(app, tracer_provider=trace.get_tracer_provider())
    else:  # pragma: no cover - optional dependency
        logger.info("OpenTelemetry packages not installed; tracing disabled.")
    app.middleware("http")(_trace_headers_middleware)
    _CONFIGURED = True
