"""Tracing helpers for guardrail code built on OpenTelemetry."""

import inspect
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer

P = ParamSpec("P")
R = TypeVar("R")

SpanAttributes = dict[str, str | int | float | bool]


def get_tracer(name: str) -> Tracer:
    """Get a tracer for the given module name, typically __name__."""
    return trace.get_tracer(name)


def add_span_attributes(attributes: SpanAttributes) -> None:
    """Add attributes to the current span, if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)


def current_trace_ids() -> tuple[str, str] | None:
    """Current (trace_id, span_id) as hex strings, or None outside a span."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")


@contextmanager
def _span(
    tracer: Tracer,
    name: str,
    attributes: SpanAttributes | None,
    record_exception: bool,
) -> Iterator[Span]:
    with tracer.start_as_current_span(name, record_exception=False) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            if record_exception:
                span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
        span.set_status(Status(StatusCode.OK))


def traced(
    *,
    span_name: str | None = None,
    attributes: SpanAttributes | None = None,
    record_exception: bool = True,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator wrapping a sync or async function in a span.

    Args:
        span_name: Name for the span (defaults to the function name).
        attributes: Static attributes to add to the span.
        record_exception: Whether to record exceptions on the span.

    Examples:
        @traced(span_name="guardrail.evaluate_batch")
        async def evaluate_batch(...):
            ...
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        tracer = get_tracer(fn.__module__)
        name = span_name or fn.__name__

        if inspect.iscoroutinefunction(fn):

            @wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                with _span(tracer, name, attributes, record_exception):
                    return await fn(*args, **kwargs)  # type: ignore[misc]

            return async_wrapper  # type: ignore[return-value]

        @wraps(fn)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with _span(tracer, name, attributes, record_exception):
                return fn(*args, **kwargs)

        return sync_wrapper

    return decorator
