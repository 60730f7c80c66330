"""Tracing, metrics and log correlation for the analyzer service.

Resources carry the analyzer's own knobs (Ollama model and URL, the
auto-analysis delay, the OTP TTL) so every span and metric point can be told
apart by deployment configuration. ``AnalysisMetrics`` is the single place the
scheduler and the inference adapter record counters; until a ``MeterProvider``
is installed its instruments are the API's no-op proxies.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import os

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from impact_core.core.config import Settings

logger = logging.getLogger(__name__)

METER_NAME = "impact_core"

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()
_LOG_CORRELATION_INSTALLED = False
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()


class AnalysisMetrics:
    def __init__(self, meter: metrics.Meter | None = None) -> None:
        meter = meter or metrics.get_meter(METER_NAME)
        self.predictions = meter.create_counter(
            "impact.inference.predictions",
            unit="1",
            description="Risk predictions by method (ollama or fallback)",
        )
        self.prediction_duration = meter.create_histogram(
            "impact.inference.duration",
            unit="s",
            description="Wall time of one risk prediction, fallbacks included",
        )
        self.scheduler_jobs = meter.create_counter(
            "impact.scheduler.jobs",
            unit="1",
            description="Delayed-job transitions by outcome",
        )

    def record_prediction(self, method: str, duration_seconds: float, *, fallback_reason: str | None = None) -> None:
        attributes = {"inference.method": method}
        if fallback_reason is not None:
            attributes["inference.fallback_reason"] = fallback_reason
        self.predictions.add(1, attributes)
        self.prediction_duration.record(max(duration_seconds, 0.0), {"inference.method": method})

    def record_job(self, outcome: str) -> None:
        self.scheduler_jobs.add(1, {"outcome": outcome})


@lru_cache
def default_metrics() -> AnalysisMetrics:
    return AnalysisMetrics()


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    tracer_provider: TracerProvider | None = None
    meter_provider: MeterProvider | None = None


def build_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: settings.otel_service_name,
            DEPLOYMENT_ENVIRONMENT: settings.environment,
            "impact.ollama.model": settings.ollama_model,
            "impact.ollama.url": settings.ollama_url,
            "impact.auto_analysis.delay_seconds": settings.auto_analysis_delay_seconds,
            "impact.otp.ttl_seconds": settings.otp_ttl_seconds,
        }
    )


def configure_logging() -> None:
    _install_log_correlation()
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s",
    )


def setup_api_telemetry(app: FastAPI, settings: Settings) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False)

    if settings.otel_log_correlation:
        _install_log_correlation()

    resource = build_resource(settings)
    tracer_provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio))
    span_endpoint = resolve_endpoint(
        settings.otel_exporter_otlp_endpoint,
        "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
    )
    if span_endpoint:
        tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**_exporter_kwargs(span_endpoint, settings))))
    else:
        logger.info("OTel span endpoint not set; spans remain local-only for service=%s", settings.otel_service_name)

    meter_provider = MeterProvider(resource=resource, metric_readers=build_metric_readers(settings))
    trace.set_tracer_provider(tracer_provider)
    metrics.set_meter_provider(meter_provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider, meter_provider=meter_provider)
    _HTTPX_INSTRUMENTOR.instrument(tracer_provider=tracer_provider)
    logger.info(
        "telemetry enabled service=%s model=%s auto_analysis_delay=%.0fs",
        settings.otel_service_name,
        settings.ollama_model,
        settings.auto_analysis_delay_seconds,
    )
    return TelemetryRuntime(enabled=True, tracer_provider=tracer_provider, meter_provider=meter_provider)


def shutdown_api_telemetry(app: FastAPI, runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    FastAPIInstrumentor.uninstrument_app(app)
    _HTTPX_INSTRUMENTOR.uninstrument()
    if runtime.tracer_provider is not None:
        runtime.tracer_provider.force_flush()
        runtime.tracer_provider.shutdown()
    if runtime.meter_provider is not None:
        runtime.meter_provider.shutdown()


def build_metric_readers(settings: Settings) -> list[MetricReader]:
    endpoint = resolve_endpoint(settings.otel_exporter_otlp_metrics_endpoint, "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT")
    if not endpoint:
        return []
    exporter = OTLPMetricExporter(**_exporter_kwargs(endpoint, settings))
    return [PeriodicExportingMetricReader(exporter, export_interval_millis=settings.otel_metric_export_interval_ms)]


def resolve_endpoint(configured: str | None, *env_names: str) -> str | None:
    """First non-empty value among the configured endpoint and the given env vars."""
    if configured:
        return configured
    for name in env_names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _exporter_kwargs(endpoint: str, settings: Settings) -> dict[str, object]:
    kwargs: dict[str, object] = {"endpoint": endpoint}
    headers = parse_headers(settings.otel_exporter_otlp_headers or os.getenv("OTEL_EXPORTER_OTLP_HEADERS"))
    if headers:
        kwargs["headers"] = headers
    return kwargs


def parse_headers(raw: str | None) -> dict[str, str]:
    if raw is None:
        return {}
    parsed: dict[str, str] = {}
    for item in raw.split(","):
        key, separator, value = item.partition("=")
        if not separator:
            continue
        stripped_key = key.strip()
        if stripped_key:
            parsed[stripped_key] = value.strip()
    return parsed


def _install_log_correlation() -> None:
    global _LOG_CORRELATION_INSTALLED
    if _LOG_CORRELATION_INSTALLED:
        return

    def record_factory(*args: object, **kwargs: object) -> logging.LogRecord:
        record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
        context = trace.get_current_span().get_span_context()
        if context.is_valid:
            record.trace_id = format(context.trace_id, "032x")
            record.span_id = format(context.span_id, "016x")
        else:
            record.trace_id = "0" * 32
            record.span_id = "0" * 16
        return record

    logging.setLogRecordFactory(record_factory)
    _LOG_CORRELATION_INSTALLED = True
