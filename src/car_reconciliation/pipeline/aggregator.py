"""
Dispatcher/aggregator for a reconciliation run.

Loads the unmatched file ranges and CARs, fans the CARs out to a pool of
worker threads and persists every match they report inside one transaction.
The transaction is committed only when every worker has finished without
error; any scan or persistence failure rolls the whole run back.

State machine:
    LOADING -> DISPATCHING -> DRAINING -> COMMITTING -> COMMITTED
                    any failure ----------------------> ABORTED
"""

import logging
import os
import queue
import threading
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Protocol

from opentelemetry import trace

from utils.tracing import add_span_attributes, trace_operation

from ..archive.scanner import ArchiveScanner
from ..index import IdentifierIndex
from ..models import (
    ArchiveRecord,
    ExpectedRecord,
    MatchRecord,
    RunState,
    RunSummary,
    ScanFailure,
)
from ..metrics import ASSOCIATIONS_INSERTED, RUN_DURATION, RUN_OUTCOMES
from .progress import ProgressTracker
from .worker import STOP, Worker

logger = logging.getLogger(__name__)

# Put on the result stream by the closer once every worker has exited
END_OF_STREAM = object()

DEFAULT_RESULT_BUFFER = 5


class AssociationStorage(Protocol):
    """Storage operations the aggregator needs, all on one open transaction."""

    def fetch_unmatched_file_ranges(self) -> list[ExpectedRecord]: ...

    def fetch_unmatched_cars(self) -> list[ArchiveRecord]: ...

    def insert_association(self, file_range_id: int, car_id: int) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


def resolve_worker_count(requested: int | None, job_count: int) -> int:
    """
    Size the worker pool.

    Args:
        requested: Explicit worker count, or None for one per CPU
        job_count: Number of archives to scan

    Returns:
        Number of workers, never more than the number of jobs
    """
    if requested is not None and requested < 1:
        raise ValueError(f"Worker count must be positive, got {requested}")
    workers = requested or os.cpu_count() or 1
    return min(workers, job_count)


class Reconciler:
    """
    Runs one all-or-nothing reconciliation pass.

    Example:
        >>> store = AssociationStore(connection)
        >>> reconciler = Reconciler(store, ArchiveScanner("/data/cars"))
        >>> summary = reconciler.run()
        >>> print(f"{summary.associations_inserted} associations committed")
    """

    def __init__(
        self,
        store: AssociationStorage,
        scanner: ArchiveScanner,
        max_workers: int | None = None,
        result_buffer: int = DEFAULT_RESULT_BUFFER,
    ):
        """
        Initialize reconciler

        Args:
            store: Storage bound to the run transaction
            scanner: Archive scanner
            max_workers: Upper bound on worker threads (default: CPU count)
            result_buffer: Capacity of the result stream
        """
        if result_buffer < 1:
            raise ValueError(f"Result buffer must be positive, got {result_buffer}")
        self.store = store
        self.scanner = scanner
        self.max_workers = max_workers
        self.result_buffer = result_buffer
        self.summary = RunSummary()
        self.workers: list[Worker] = []
        self._aborted = threading.Event()

    @property
    def state(self) -> RunState:
        return self.summary.state

    def _transition(self, state: RunState) -> None:
        logger.debug(f"Run state {self.summary.state.value} -> {state.value}")
        self.summary.state = state

    def run(self) -> RunSummary:
        """
        Execute the run.

        Returns:
            Summary of a committed run

        Raises:
            Exception: The first error seen (load, scan, insert or commit); the
                transaction has been rolled back when it propagates
        """
        start_time = time.monotonic()
        self.summary = RunSummary()
        # Workers of an earlier run may still be winding down on their own event
        self._aborted = threading.Event()

        with trace_operation("car_reconciliation_run", kind=trace.SpanKind.INTERNAL):
            try:
                index, archives = self._load()
                results, completions = self._dispatch(index, archives)
                self._drain(results, completions, ProgressTracker(len(archives)))

                self._transition(RunState.COMMITTING)
                logger.info("committing transaction")
                self.store.commit()
                self._transition(RunState.COMMITTED)
            except Exception as e:
                self.summary.error = f"{type(e).__name__}: {e}"
                raise
            finally:
                if self.summary.state is not RunState.COMMITTED:
                    self._abort()

                self.summary.duration_seconds = time.monotonic() - start_time
                self.summary.timestamp = datetime.now(UTC).isoformat()
                RUN_DURATION.observe(self.summary.duration_seconds)
                RUN_OUTCOMES.labels(state=self.summary.state.value).inc()
                add_span_attributes(
                    state=self.summary.state.value,
                    associations=self.summary.associations_inserted,
                )

        logger.info(
            f"Reconciliation committed: {self.summary.associations_inserted} associations "
            f"from {self.summary.completed_archives}/{self.summary.total_archives} CARs "
            f"in {self.summary.duration_seconds:.2f}s"
        )
        return self.summary

    def _load(self) -> tuple[IdentifierIndex, list[ArchiveRecord]]:
        self._transition(RunState.LOADING)

        with trace_operation("load_unmatched_records"):
            logger.info("selecting file ranges")
            expected = self.store.fetch_unmatched_file_ranges()
            index = IdentifierIndex.build(expected)

            logger.info("selecting cars")
            archives = self.store.fetch_unmatched_cars()

        self.summary.expected_records = len(index)
        self.summary.total_archives = len(archives)
        logger.info(
            f"Loaded {len(expected)} unmatched file ranges and {len(archives)} unmatched CARs"
        )
        return index, archives

    def _dispatch(
        self,
        index: IdentifierIndex,
        archives: Sequence[ArchiveRecord],
    ) -> tuple[queue.Queue, queue.Queue]:
        self._transition(RunState.DISPATCHING)

        worker_count = resolve_worker_count(self.max_workers, len(archives))
        self.summary.workers = worker_count

        jobs: queue.Queue = queue.Queue()
        results: queue.Queue = queue.Queue(maxsize=self.result_buffer)
        completions: queue.Queue = queue.Queue(maxsize=max(len(archives), 1))

        for archive in archives:
            jobs.put(archive)
        for _ in range(worker_count):
            jobs.put(STOP)

        self.workers = workers = [
            Worker(
                worker_id=i,
                jobs=jobs,
                results=results,
                completions=completions,
                index=index,
                scanner=self.scanner,
                aborted=self._aborted,
            )
            for i in range(worker_count)
        ]
        for worker in workers:
            worker.start()

        closer = threading.Thread(
            target=self._close_when_done,
            args=(workers, results, self._aborted),
            name="car-result-closer",
            daemon=True,
        )
        closer.start()

        logger.info(f"Dispatched {len(archives)} CARs to {worker_count} workers")
        return results, completions

    def _close_when_done(
        self,
        workers: Sequence[Worker],
        results: queue.Queue,
        aborted: threading.Event,
    ) -> None:
        for worker in workers:
            worker.join()
        # Nobody drains after an abort, so the marker must not block forever
        while not aborted.is_set():
            try:
                results.put(END_OF_STREAM, timeout=0.1)
                return
            except queue.Full:
                continue

    def _drain(
        self,
        results: queue.Queue,
        completions: queue.Queue,
        progress: ProgressTracker,
    ) -> None:
        self._transition(RunState.DRAINING)

        while True:
            item = results.get()
            if item is END_OF_STREAM:
                break

            if isinstance(item, ScanFailure):
                self.summary.failed_archives.append(item.archive.storage_path)
                logger.error(
                    f"Aborting run: CAR {item.archive.storage_path} "
                    f"(id={item.archive.id}) could not be scanned"
                )
                raise item.error

            self._persist(item)

            progress.drain(completions)
            self.summary.completed_archives = progress.completed

        progress.drain(completions)
        self.summary.completed_archives = progress.completed

    def _persist(self, match: MatchRecord) -> None:
        self.summary.matches += 1
        self.store.insert_association(match.expected_record_id, match.archive_record_id)
        self.summary.associations_inserted += 1
        ASSOCIATIONS_INSERTED.inc()

    def _abort(self) -> None:
        self._aborted.set()
        self._transition(RunState.ABORTED)
        # Matches stay counted; none of the inserts survive the rollback
        self.summary.associations_inserted = 0
        try:
            self.store.rollback()
            logger.warning(
                f"Transaction rolled back after {self.summary.completed_archives}/"
                f"{self.summary.total_archives} CARs; no associations were saved"
            )
        except Exception as e:
            logger.error(f"Rollback failed: {e}")
