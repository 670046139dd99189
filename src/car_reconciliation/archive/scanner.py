"""
Archive scanner: resolves CAR storage paths and enumerates their blocks.
"""

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import BinaryIO

from opentelemetry import trace

from utils.tracing import trace_operation

from ..exceptions import ArchiveReadError
from ..metrics import ARCHIVES_PROCESSED
from .reader import CarBlockReader

logger = logging.getLogger(__name__)

Opener = Callable[[Path], BinaryIO]


def _open_binary(path: Path) -> BinaryIO:
    return open(path, "rb")


class ArchiveScanner:
    """
    Produces the ``(cid, block)`` pairs of the CAR files under ``archive_dir``.

    A CAR that is missing from disk is logged and scanned as empty, since the
    database inventory and the storage directory can drift apart. Any other
    read or format error propagates out of the iterator.
    """

    def __init__(
        self,
        archive_dir: str | os.PathLike[str],
        opener: Opener = _open_binary,
    ):
        """
        Initialize scanner

        Args:
            archive_dir: Directory holding the CAR files
            opener: Callable opening a path for binary reading (for tests)
        """
        self.archive_dir = Path(archive_dir)
        self.opener = opener

    def resolve(self, storage_path: str) -> Path:
        """
        Return the on-disk location of a CAR storage path.

        Leading slashes are dropped so absolute storage paths still land
        inside the archive directory.
        """
        return self.archive_dir / storage_path.lstrip("/")

    def scan(self, storage_path: str) -> Iterator[tuple[bytes, bytes]]:
        """
        Lazily yield the blocks of one CAR file.

        Args:
            storage_path: Path of the CAR relative to the archive directory

        Yields:
            Tuples of (raw CID bytes, block data) in file order

        Raises:
            ArchiveReadError: If the file cannot be read or is not a CAR
        """
        path = self.resolve(storage_path)
        try:
            stream = self.opener(path)
        except FileNotFoundError:
            logger.warning(f"Can't find {storage_path} under {self.archive_dir}")
            ARCHIVES_PROCESSED.labels(status="missing").inc()
            return
        except OSError as e:
            raise ArchiveReadError(storage_path, f"open failed: {e}") from e

        with trace_operation(
            "scan_archive",
            kind=trace.SpanKind.INTERNAL,
            storage_path=storage_path,
        ) as span:
            with stream:
                blocks = 0
                for cid, block in CarBlockReader(stream, storage_path):
                    blocks += 1
                    yield cid, block
                span.set_attribute("blocks", blocks)

        ARCHIVES_PROCESSED.labels(status="scanned").inc()
