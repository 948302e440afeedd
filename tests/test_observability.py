from __future__ import annotations

import io
import logging

from astrosonify import observability


def test_parse_otlp_headers() -> None:
    assert observability.parse_otlp_headers(None) == {}
    assert observability.parse_otlp_headers("a=1, b = two ,junk,=x") == {"a": "1", "b": "two"}


def test_otlp_endpoint_normalisation() -> None:
    assert observability.otlp_endpoint({}) == observability.DEFAULT_OTLP_ENDPOINT
    assert observability.otlp_endpoint({"ASTRO_OTLP_ENDPOINT": "http://collector:4318/"}) == (
        "http://collector:4318/v1/traces"
    )
    assert observability.otlp_endpoint({"OTEL_EXPORTER_OTLP_ENDPOINT": "http://x/v1/traces"}) == "http://x/v1/traces"


def test_tracer_spans_are_context_managers() -> None:
    tracer = observability.get_tracer("astrosonify.tests")
    with tracer.start_as_current_span("unit"):
        trace_id, span_id = observability.current_trace_ids()
    assert len(trace_id) == 32 and len(span_id) == 16


def test_filter_injects_ids() -> None:
    record = logging.LogRecord("astrosonify", logging.INFO, __file__, 1, "msg", None, None)
    assert observability.TraceContextFilter().filter(record)
    assert len(record.trace_id) == 32
    assert len(record.span_id) == 16


def test_child_logger_records_are_formatted(monkeypatch) -> None:
    monkeypatch.setattr(observability, "_LOG_FILTER_ATTACHED", False)
    root = logging.getLogger()
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(trace_id)s|%(span_id)s|%(message)s"))
    root.addHandler(handler)
    try:
        observability.ensure_logging_filter()
        logging.getLogger("astrosonify.pipeline").warning("decoded")
    finally:
        root.removeHandler(handler)
        for flt in list(root.filters):
            if isinstance(flt, observability.TraceContextFilter):
                root.removeFilter(flt)
    trace_id, span_id, message = stream.getvalue().strip().split("|")
    assert (len(trace_id), len(span_id), message) == (32, 16, "decoded")
