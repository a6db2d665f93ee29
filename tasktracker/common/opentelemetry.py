import logging
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.celery import CeleryInstrumentor  # type: ignore
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor  # type: ignore

logger = logging.getLogger(__name__)


def _set_tracer_provider(service_name: str) -> None:
    resource = Resource(attributes={SERVICE_NAME: service_name})
    trace_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(trace_provider)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))


def setup_opentelemetry(service_name: str, app: FastAPI) -> None:
    logger.info("Setting up API instrumentation...")
    _set_tracer_provider(service_name)

    FastAPIInstrumentor.instrument_app(app)  # type: ignore
    # Publishing jobs from the API creates producer spans that the worker
    # spans attach to.
    CeleryInstrumentor().instrument()
    logger.info("FastAPI and Celery producer instrumentation enabled.")


def setup_worker_opentelemetry(service_name: str) -> None:
    """Instrument a Celery worker process; call once per forked child."""
    _set_tracer_provider(service_name)
    CeleryInstrumentor().instrument()
    logger.info("Celery worker instrumentation enabled.")
