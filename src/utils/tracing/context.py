"""
Context managers and utilities for span management.

Provides context managers for creating spans and adding attributes/events
to the current span without explicit span references.
"""

from contextlib import contextmanager

from opentelemetry import trace

from .tracer import get_tracer


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes
):
    """
    Context manager for tracing operations.

    Creates a span, stringifies the given attributes onto it and records any
    exception raised inside the block before re-raising it.

    Args:
        operation_name: Name of the operation being traced
        kind: Span kind (INTERNAL, CLIENT, SERVER, etc.)
        **attributes: Custom attributes to add to the span; None values are skipped

    Yields:
        Span instance for adding custom events/attributes

    Example:
        >>> with trace_operation("scan_archive", storage_path="a.car") as span:
        ...     blocks = count_blocks("a.car")
        ...     span.set_attribute("blocks", blocks)
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(
        operation_name,
        kind=kind,
        record_exception=False,
        set_status_on_exception=True,
    ) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, str(value))

        try:
            yield span
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            span.set_attribute("error.message", str(e))
            span.record_exception(e)
            raise


def add_span_attributes(**attributes):
    """
    Add attributes to the current span.

    Args:
        **attributes: Attributes to add to current span

    Example:
        >>> with trace_operation("car_reconciliation_run"):
        ...     summary = reconciler.run()
        ...     add_span_attributes(associations=summary.associations_inserted)
    """
    current_span = trace.get_current_span()
    if current_span.is_recording():
        for key, value in attributes.items():
            current_span.set_attribute(key, str(value))
