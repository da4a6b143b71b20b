"""OpenTelemetry tracing helpers for the publisher and consumer.

Spans are exported to the console once ``start_tracing`` has installed a
provider. Without it, the API's no-op tracer is used and header propagation
still works.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from opentelemetry import trace
from opentelemetry.propagate import get_global_textmap, inject, set_global_textmap
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

SERVICE_NAME = "product-service"

# OpenTelemetry refuses to replace a global provider once set
_provider: Optional[TracerProvider] = None


def start_tracing(service_name: str = SERVICE_NAME) -> Tracer:
    """Install a console-exporting TracerProvider once per process."""
    global _provider
    if _provider is None:
        _provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        _provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        trace.set_tracer_provider(_provider)
        # AMQP headers carry W3C traceparent/tracestate
        set_global_textmap(TraceContextTextMapPropagator())
    return trace.get_tracer(service_name)


def get_tracer(service_name: str = SERVICE_NAME) -> Tracer:
    return trace.get_tracer(service_name)


def inject_headers(headers: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Return ``headers`` plus the current trace context, for an outgoing message."""
    carrier: Dict[str, str] = dict(headers or {})
    inject(carrier)
    return carrier


def extract_context_from_headers(headers: Optional[Mapping[str, Any]]):
    """Rebuild the producer's trace context from an incoming message's headers.

    aiormq may hand header values back as bytes; the propagator expects str.
    """
    carrier: Dict[str, str] = {}
    for key, value in (headers or {}).items():
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        carrier[str(key)] = str(value)
    return get_global_textmap().extract(carrier)
