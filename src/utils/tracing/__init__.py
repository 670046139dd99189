"""
Distributed tracing using OpenTelemetry.

Instruments:
- Reconciliation runs and record loading
- Per-archive scans
- Database connects and queries
"""

from .context import add_span_attributes, trace_operation
from .tracer import get_tracer, initialize_tracing, shutdown_tracing

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "add_span_attributes",
]
