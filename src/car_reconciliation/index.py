"""
In-memory index from encoded CID to file range id.

The index is built once per run before any worker starts and is only read
afterwards, so workers share it without locking.
"""

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .exceptions import InvalidIdentifierError
from .identifiers import encode_cid
from .models import ExpectedRecord

logger = logging.getLogger(__name__)


def _identifier_bytes(record: ExpectedRecord) -> bytes:
    value = record.content_identifier
    if isinstance(value, memoryview):
        value = value.tobytes()
    if not isinstance(value, (bytes, bytearray)) or not value:
        raise InvalidIdentifierError(record.id, value)
    return bytes(value)


class IdentifierIndex:
    """
    Read-only mapping of encoded CID -> expected record id.

    Example:
        >>> index = IdentifierIndex.build([ExpectedRecord(1, cid_bytes)])
        >>> index.lookup(encode_cid(cid_bytes))
        1
    """

    def __init__(self, entries: Mapping[str, int]):
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def build(cls, expected_records: Iterable[ExpectedRecord]) -> "IdentifierIndex":
        """
        Build the index from the unmatched expected records of a run.

        Args:
            expected_records: File ranges still waiting for a CAR

        Returns:
            Populated index

        Raises:
            InvalidIdentifierError: If a record has no usable CID bytes
        """
        entries: dict[str, int] = {}
        for record in expected_records:
            key = encode_cid(_identifier_bytes(record))
            previous = entries.get(key)
            if previous is not None and previous != record.id:
                logger.warning(
                    f"CID {key} is shared by file ranges {previous} and {record.id}; "
                    f"keeping {record.id}"
                )
            entries[key] = record.id

        logger.info(f"Built identifier index with {len(entries)} entries")
        return cls(entries)

    def lookup(self, encoded_identifier: str) -> int | None:
        """Return the expected record id for an encoded CID, if any."""
        return self._entries.get(encoded_identifier)

    def __contains__(self, encoded_identifier: object) -> bool:
        return encoded_identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)
