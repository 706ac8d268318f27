"""OpenTelemetry + Prometheus fallback wiring for the sessionboard backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from sessionboard import config

logger = logging.getLogger("sessionboard.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_ingestion_counter: Any | None = None
_ingestion_latency_hist: Any | None = None
_parser_failure_counter: Any | None = None
_cache_lookup_counter: Any | None = None

_prom_enabled = False
_prom_ingestion_counter: Any | None = None
_prom_ingestion_latency_hist: Any | None = None
_prom_parser_failure_counter: Any | None = None
_prom_cache_lookup_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _label(value: str) -> str:
    return (value or "").strip() or "unknown"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _ingestion_counter, _ingestion_latency_hist, _parser_failure_counter, _cache_lookup_counter
    global _prom_enabled
    global _prom_ingestion_counter, _prom_ingestion_latency_hist, _prom_parser_failure_counter
    global _prom_cache_lookup_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (SESSIONBOARD_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "sessionboard-backend"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "sessionboard",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("sessionboard.backend")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("sessionboard.backend")

    _ingestion_counter = meter.create_counter(
        "sessionboard_ingestion_events_total",
        unit="1",
        description="Count of scan and parse operations",
    )
    _ingestion_latency_hist = meter.create_histogram(
        "sessionboard_ingestion_latency_ms",
        unit="ms",
        description="Latency for scan and parse operations",
    )
    _parser_failure_counter = meter.create_counter(
        "sessionboard_parser_failures_total",
        unit="1",
        description="Count of whole-file parser failures",
    )
    _cache_lookup_counter = meter.create_counter(
        "sessionboard_stats_cache_lookups_total",
        unit="1",
        description="Stats cache lookups by tier and outcome",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_ingestion_counter = Counter(
                "sessionboard_ingestion_events_total",
                "Count of scan and parse operations",
                ["entity", "result"],
            )
            _prom_ingestion_latency_hist = Histogram(
                "sessionboard_ingestion_latency_ms",
                "Latency for scan and parse operations",
                ["entity", "result"],
            )
            _prom_parser_failure_counter = Counter(
                "sessionboard_parser_failures_total",
                "Count of whole-file parser failures",
                ["parser"],
            )
            _prom_cache_lookup_counter = Counter(
                "sessionboard_stats_cache_lookups_total",
                "Stats cache lookups by tier and outcome",
                ["tier", "result"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    for provider in (_meter_provider, _trace_provider):
        try:
            if provider is not None:
                provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_ingestion(entity: str, result: str, duration_ms: float) -> None:
    labels = {"entity": _label(entity), "result": _label(result)}
    if _enabled and _ingestion_counter is not None:
        _ingestion_counter.add(1, labels)
    if _enabled and _ingestion_latency_hist is not None:
        _ingestion_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _prom_enabled and _prom_ingestion_counter is not None:
        _prom_ingestion_counter.labels(**labels).inc()
    if _prom_enabled and _prom_ingestion_latency_hist is not None:
        _prom_ingestion_latency_hist.labels(**labels).observe(max(0.0, float(duration_ms)))


def record_parser_failure(parser: str) -> None:
    labels = {"parser": _label(parser)}
    if _enabled and _parser_failure_counter is not None:
        _parser_failure_counter.add(1, labels)
    if _prom_enabled and _prom_parser_failure_counter is not None:
        _prom_parser_failure_counter.labels(**labels).inc()


def record_cache_lookup(tier: str, result: str) -> None:
    labels = {"tier": _label(tier), "result": _label(result)}
    if _enabled and _cache_lookup_counter is not None:
        _cache_lookup_counter.add(1, labels)
    if _prom_enabled and _prom_cache_lookup_counter is not None:
        _prom_cache_lookup_counter.labels(**labels).inc()
