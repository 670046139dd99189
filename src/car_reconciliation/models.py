"""
Records passed between the storage layer, the workers and the aggregator.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ExpectedRecord:
    """A file range whose CID has not been located in any CAR yet."""

    id: int
    content_identifier: bytes


@dataclass(frozen=True)
class ArchiveRecord:
    """A CAR file that has not produced any association yet."""

    id: int
    storage_path: str


@dataclass(frozen=True)
class MatchRecord:
    """A block of ``archive_record_id`` whose CID belongs to ``expected_record_id``."""

    expected_record_id: int
    archive_record_id: int


@dataclass(frozen=True)
class ScanFailure:
    """Error signal emitted by a worker when an archive cannot be scanned."""

    archive: ArchiveRecord
    error: BaseException


class RunState(str, Enum):
    """States of a reconciliation run."""

    LOADING = "LOADING"
    DISPATCHING = "DISPATCHING"
    DRAINING = "DRAINING"
    COMMITTING = "COMMITTING"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMMITTED, RunState.ABORTED)


@dataclass
class RunSummary:
    """Outcome of one reconciliation run."""

    state: RunState = RunState.LOADING
    expected_records: int = 0
    total_archives: int = 0
    completed_archives: int = 0
    matches: int = 0
    associations_inserted: int = 0
    workers: int = 0
    duration_seconds: float = 0.0
    error: str | None = None
    timestamp: str | None = None
    failed_archives: list[str] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.state is RunState.COMMITTED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunSummary":
        """Rebuild a summary from ``to_dict()`` output, ignoring unknown keys."""
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        if "state" in known:
            known["state"] = RunState(known["state"])
        known["failed_archives"] = list(known.get("failed_archives") or [])
        return cls(**known)
