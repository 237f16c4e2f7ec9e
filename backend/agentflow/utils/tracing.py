"""OpenTelemetry bootstrap — traces only.

Opt-in: nothing is exported unless ``OTLP_ENDPOINT`` is configured.  The
coordinator always asks :func:`get_tracer` for a tracer, which is the global
no-op tracer while no provider is installed.
"""

from __future__ import annotations

import logging
import re

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger("agentflow.tracing")

_tracer_provider: TracerProvider | None = None


def _resolve_endpoint(base: str | None) -> str | None:
    """Normalise ``http://host:4318`` or ``http://host:4318/v1/x`` to the traces URL."""
    if not base:
        return None
    clean = re.sub(r"/v1/[^/]+$", "", base.rstrip("/"))
    return f"{clean}/v1/traces"


def setup_tracing(
    app=None,
    otlp_endpoint: str | None = None,
    service_name: str = "agentflow-engine",
    service_version: str = "0.1.0",
) -> TracerProvider | None:
    """Install an OTLP span exporter and instrument *app*.  Returns the provider or None."""
    global _tracer_provider

    endpoint = _resolve_endpoint(otlp_endpoint)
    if not endpoint:
        logger.info("OpenTelemetry disabled — no OTLP endpoint configured.")
        return None

    resource = Resource.create({"service.name": service_name, "service.version": service_version})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
    logger.info("OTEL traces → %s", endpoint)
    return provider


def get_tracer(name: str):
    """Return a tracer.  Works even when no provider is configured
    (returns the global no-op tracer in that case)."""
    return trace.get_tracer(name)
