"""OpenTelemetry tracing for the gateway and the payer.

Spans are exported over OTLP (for the X-Ray collector) when an endpoint is
configured, and optionally to the console. Trace ids use the X-Ray format
and context propagates with the X-Ray header, so gateway spans join the
payer's trace when both run under the same collector.

Span names used across the package:
    payment.gate          gate decision for one invocation
    tool.execute          executor run on the gateway
    market.list_tools     catalog discovery by the payer
    market.invoke_tool    one POST /tools/{tool} by the payer
    payment.settle        channel or on-chain settlement
    reasoning.select      tool selection by the reasoning engine
    reasoning.compose     final answer composition
    orchestrator.session  a whole user query
"""

import inspect
import os
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.aws import AwsXRayPropagator
from opentelemetry.sdk.extension.aws.trace import AwsXRayIdGenerator
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

P = ParamSpec("P")
T = TypeVar("T")

_tracer: trace.Tracer | None = None
_initialized = False

# Span attribute for each payment field
_PAYMENT_ATTRIBUTES = {
    "amount": "payment.amount",
    "currency": "payment.currency",
    "network": "payment.network",
    "recipient": "payment.recipient",
    "asset": "payment.asset",
    "tool": "tool.name",
}


def _build_provider(service_name: str, otlp_endpoint: str | None, console: bool) -> TracerProvider:
    resource = Resource.create({
        SERVICE_NAME: service_name,
        "service.version": "0.1.0",
        "deployment.environment": os.getenv("ENVIRONMENT", "development"),
    })
    provider = TracerProvider(resource=resource, id_generator=AwsXRayIdGenerator())

    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
    if console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    return provider


def init_tracing(
    service_name: str = "x402-tool-market",
    otlp_endpoint: str | None = None,
    enable_console_export: bool = False,
) -> trace.Tracer:
    """Install the global tracer provider and return the package tracer.

    Only the first call configures anything; later calls return the same tracer.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP gRPC collector endpoint; falls back to
            OTEL_EXPORTER_OTLP_ENDPOINT, no OTLP export when neither is set
        enable_console_export: Also print finished spans (OTEL_CONSOLE_EXPORT=true does the same)
    """
    global _tracer, _initialized

    if _initialized and _tracer is not None:
        return _tracer

    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    console = enable_console_export or os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true"

    set_global_textmap(AwsXRayPropagator())
    trace.set_tracer_provider(_build_provider(service_name, endpoint, console))

    instrumentor = HTTPXClientInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        instrumentor.instrument()

    _tracer = trace.get_tracer(service_name)
    _initialized = True
    return _tracer


def get_tracer() -> trace.Tracer:
    """Package tracer, initialized with defaults on first use."""
    if _tracer is None:
        return init_tracing()
    return _tracer


@contextmanager
def _span(name: str, attributes: dict[str, Any] | None) -> Iterator[trace.Span]:
    with get_tracer().start_as_current_span(name, attributes=attributes, record_exception=False) as span:
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
        span.set_status(Status(StatusCode.OK))


def traced(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Run the decorated function (sync or async) inside a span.

    Args:
        name: Span name, defaults to the function name
        attributes: Attributes set when the span starts
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        span_name = name or func.__name__

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                with _span(span_name, attributes):
                    return await func(*args, **kwargs)  # type: ignore
            return async_wrapper  # type: ignore

        @wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with _span(span_name, attributes):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


def add_payment_span_attributes(span: trace.Span, **fields: str | None) -> None:
    """Tag a span with payment fields.

    Accepts ``amount``, ``currency``, ``network``, ``recipient``, ``asset``
    and ``tool``; empty values are skipped.
    """
    for key, value in fields.items():
        if value:
            span.set_attribute(_PAYMENT_ATTRIBUTES[key], value)
