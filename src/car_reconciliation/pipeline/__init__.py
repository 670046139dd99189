"""
Concurrent reconciliation pipeline.

A fixed pool of worker threads scans CAR files in parallel and streams matches
to a single aggregator, which persists them inside one transaction and commits
only if every archive was scanned successfully.
"""

from .aggregator import END_OF_STREAM, Reconciler, resolve_worker_count
from .progress import ProgressTracker
from .worker import STOP, Worker

__all__ = [
    "END_OF_STREAM",
    "ProgressTracker",
    "Reconciler",
    "STOP",
    "Worker",
    "resolve_worker_count",
]
