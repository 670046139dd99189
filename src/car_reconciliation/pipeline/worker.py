"""
Worker threads scanning CAR archives for expected CIDs.

Each worker pulls archive jobs from a shared queue until it receives a stop
sentinel, scans the archive, looks every block CID up in the identifier index
and emits a MatchRecord for each hit on the result stream.
"""

import queue
import threading
from contextlib import closing

from utils.logging import ContextLogger

from ..archive.scanner import ArchiveScanner
from ..identifiers import encode_cid
from ..index import IdentifierIndex
from ..models import ArchiveRecord, MatchRecord, ScanFailure
from ..metrics import ACTIVE_WORKERS, ARCHIVES_PROCESSED, MATCHES_FOUND

# Put once per worker on the job queue after the last archive
STOP = None


class Worker(threading.Thread):
    """
    One member of the scanning pool.

    Workers share the read-only index and three queues with the aggregator and
    nothing else. A worker that fails to scan an archive reports the error,
    signals completion for that archive and exits.
    """

    def __init__(
        self,
        worker_id: int,
        jobs: queue.Queue,
        results: queue.Queue,
        completions: queue.Queue,
        index: IdentifierIndex,
        scanner: ArchiveScanner,
        aborted: threading.Event,
        emit_timeout: float = 0.1,
    ):
        """
        Initialize worker

        Args:
            worker_id: Number used in log lines
            jobs: Archive records to scan, terminated by STOP
            results: Result stream (MatchRecord / ScanFailure)
            completions: Completion channel, one entry per finished archive
            index: Identifier index built for this run
            scanner: Archive scanner
            aborted: Set by the aggregator once the run is abandoned
            emit_timeout: Seconds between abort checks while the result stream is full
        """
        super().__init__(name=f"car-worker-{worker_id}", daemon=True)
        self.worker_id = worker_id
        self.jobs = jobs
        self.results = results
        self.completions = completions
        self.index = index
        self.scanner = scanner
        self.aborted = aborted
        self.emit_timeout = emit_timeout
        self.archives_done = 0
        self.log = ContextLogger(__name__, worker_id=worker_id)

    def run(self) -> None:
        ACTIVE_WORKERS.inc()
        try:
            while not self.aborted.is_set():
                job = self.jobs.get()
                if job is STOP:
                    break

                ok = self.process(job)
                self.log.info(f"worker {self.worker_id}: finished {job.storage_path}")
                self.archives_done += 1
                self.completions.put(job)

                if not ok:
                    break
        finally:
            ACTIVE_WORKERS.dec()

    def process(self, job: ArchiveRecord) -> bool:
        """
        Scan one archive and emit its matches.

        Returns:
            False if the archive could not be scanned, True otherwise
        """
        log = self.log.bind(storage_path=job.storage_path)
        log.info(f"worker {self.worker_id}: processing {job.storage_path}")
        seen: set[int] = set()

        try:
            with closing(self.scanner.scan(job.storage_path)) as blocks:
                for cid, _block in blocks:
                    expected_id = self.index.lookup(encode_cid(cid))
                    if expected_id is None or expected_id in seen:
                        continue
                    seen.add(expected_id)
                    MATCHES_FOUND.inc()
                    log.debug(
                        f"worker {self.worker_id}: file range {expected_id} found in car {job.id}"
                    )

                    if not self._emit(MatchRecord(expected_id, job.id)):
                        # Run aborted, nothing downstream is listening anymore
                        return True
        except Exception as e:
            log.error(f"worker {self.worker_id}: failed to scan {job.storage_path}: {e}")
            ARCHIVES_PROCESSED.labels(status="failed").inc()
            self._emit(ScanFailure(job, e))
            return False

        return True

    def _emit(self, item: MatchRecord | ScanFailure) -> bool:
        while not self.aborted.is_set():
            try:
                self.results.put(item, timeout=self.emit_timeout)
                return True
            except queue.Full:
                continue
        return False
