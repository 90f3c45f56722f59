from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span

from crud_engine.core.config import Settings, get_settings


SERVICE_NAME = "crud-engine"

# request header -> span attribute
_HEADER_ATTRIBUTES: dict[bytes, str] = {
    b"x-correlation-id": "correlation_id",
    b"x-organization-id": "crud.organization_id",
}

_exporters_attached = False
_provider: TracerProvider | None = None


def _provider_for(service_name: str, environment: str) -> TracerProvider:
    global _provider

    if _provider is None:
        resource = Resource.create(
            {
                "service.name": service_name,
                "service.version": os.getenv("APP_VERSION", "0.1.0"),
                "deployment.environment": environment,
            }
        )
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings | None = None) -> TracerProvider | None:
    """Install the tracer provider when tracing is enabled in settings.

    OTLP export is attached only when ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set and
    console export only when ``OTEL_CONSOLE_EXPORTER=true``. Repeated calls
    return the same provider without adding exporters twice.
    """

    global _exporters_attached

    settings = settings or get_settings()
    if not settings.otel_enabled:
        return None

    provider = _provider_for(SERVICE_NAME, settings.app_env)
    if _exporters_attached:
        return provider

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _exporters_attached = True
    return provider


def setup_inmemory_otel(service_name: str = SERVICE_NAME) -> InMemorySpanExporter:
    provider = _provider_for(service_name, get_settings().app_env)
    exporter = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def operation_span(
    tracer: trace.Tracer,
    operation: str,
    *,
    entity_type: str,
    service_name: str,
    organization_id: str | None,
) -> Iterator[Span]:
    with tracer.start_as_current_span(f"crud.{operation}") as span:
        span.set_attribute("crud.entity_type", entity_type)
        span.set_attribute("crud.service_name", service_name)
        span.set_attribute("crud.organization_id", organization_id or "")
        yield span


def record_outcome(span: Span, success: bool, error_kind: str | None = None) -> None:
    span.set_attribute("crud.success", success)
    if error_kind:
        span.set_attribute("crud.error_kind", error_kind)


def get_fastapi_server_request_hook():
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        headers = dict(scope.get("headers", []))
        for header, attribute in _HEADER_ATTRIBUTES.items():
            raw = headers.get(header)
            if raw:
                span.set_attribute(attribute, raw.decode("utf-8"))

    return server_request_hook
