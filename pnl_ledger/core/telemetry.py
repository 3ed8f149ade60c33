"""OpenTelemetry configuration helpers."""

from __future__ import annotations

import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes

from pnl_ledger.config import LedgerSettings

logger = logging.getLogger(__name__)

_TELEMETRY_INITIALISED = False
_TRACER_NAME = "pnl_ledger"


def _build_resource(settings: LedgerSettings) -> Resource:
    attributes: dict[str, Any] = {
        ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name,
        ResourceAttributes.SERVICE_NAMESPACE: "pnl-ledger",
    }
    return Resource.create(attributes)


def setup_telemetry(settings: LedgerSettings) -> TracerProvider | None:
    """Configure the span exporter once per process."""

    global _TELEMETRY_INITIALISED  # noqa: PLW0603 - single initialisation guard

    if _TELEMETRY_INITIALISED:
        return None

    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return None

    resource = _build_resource(settings)
    sampler = ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio))
    tracer_provider = _configure_tracing(resource, sampler, _build_exporter_options(settings))

    _TELEMETRY_INITIALISED = True
    logger.info("Telemetry initialised for %s", settings.telemetry_service_name)
    return tracer_provider


def get_tracer() -> trace.Tracer:
    """Return the ledger tracer; a no-op tracer until telemetry is configured."""

    return trace.get_tracer(_TRACER_NAME)


# Helpers

def _build_exporter_options(settings: LedgerSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        options["endpoint"] = settings.telemetry_otlp_endpoint
    return options


def _configure_tracing(
    resource: Resource,
    sampler: ParentBased,
    exporter_options: dict[str, Any],
) -> TracerProvider:
    tracer_provider = TracerProvider(resource=resource, sampler=sampler)
    span_processor = BatchSpanProcessor(OTLPSpanExporter(**exporter_options))
    tracer_provider.add_span_processor(span_processor)
    trace.set_tracer_provider(tracer_provider)
    return tracer_provider


__all__ = ["setup_telemetry", "get_tracer"]
