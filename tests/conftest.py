"""
Pytest configuration and fixtures for CAR reconciliation tests.

Provides CAR file builders and an in-memory association store.
"""

import hashlib
import logging
import struct
from pathlib import Path

import pytest

from car_reconciliation.models import ArchiveRecord, ExpectedRecord

# DAG-CBOR {"roots": [], "version": 1}
CARV1_HEADER = b"\xa2\x65roots\x80\x67version\x01"
CARV2_PRAGMA = bytes.fromhex("0aa16776657273696f6e02")


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class CarBuilder:
    """Builds CARv1/CARv2 byte strings and files for tests."""

    @staticmethod
    def cid(data: bytes) -> bytes:
        """CIDv1, raw codec, sha2-256 multihash of ``data``."""
        return b"\x01\x55\x12\x20" + hashlib.sha256(data).digest()

    @staticmethod
    def cidv0(data: bytes) -> bytes:
        return b"\x12\x20" + hashlib.sha256(data).digest()

    def section(self, block: bytes, cid: bytes | None = None) -> bytes:
        body = (cid if cid is not None else self.cid(block)) + block
        return encode_varint(len(body)) + body

    def v1(self, blocks: list[bytes], cids: list[bytes] | None = None) -> bytes:
        cids = cids or [self.cid(block) for block in blocks]
        payload = encode_varint(len(CARV1_HEADER)) + CARV1_HEADER
        for cid, block in zip(cids, blocks):
            payload += self.section(block, cid)
        return payload

    def v2(self, blocks: list[bytes], padding: int = 0) -> bytes:
        inner = self.v1(blocks)
        data_offset = len(CARV2_PRAGMA) + 40 + padding
        header = bytes(16) + struct.pack("<QQQ", data_offset, len(inner), 0)
        # Trailing bytes stand in for an index and must be ignored
        return CARV2_PRAGMA + header + bytes(padding) + inner + b"\xff\xff\xff"

    def write(self, directory: Path, name: str, blocks: list[bytes], version: int = 1) -> Path:
        path = Path(directory) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.v2(blocks) if version == 2 else self.v1(blocks))
        return path


class FakeStore:
    """
    In-memory stand-in for AssociationStore.

    Inserted rows stay pending until commit(); rollback() discards them.
    """

    def __init__(self, expected=(), archives=(), fail_on_insert: int | None = None):
        self.expected = list(expected)
        self.archives = list(archives)
        self.fail_on_insert = fail_on_insert
        self.pending: list[tuple[int, int]] = []
        self.committed: list[tuple[int, int]] = []
        self.commits = 0
        self.rollbacks = 0
        self.inserts = 0

    def fetch_unmatched_file_ranges(self):
        matched = {file_range_id for file_range_id, _ in self.committed}
        return [record for record in self.expected if record.id not in matched]

    def fetch_unmatched_cars(self):
        matched = {car_id for _, car_id in self.committed}
        return [archive for archive in self.archives if archive.id not in matched]

    def insert_association(self, file_range_id: int, car_id: int) -> None:
        self.inserts += 1
        if self.fail_on_insert is not None and self.inserts >= self.fail_on_insert:
            raise RuntimeError("insert failed")
        self.pending.append((file_range_id, car_id))

    def commit(self) -> None:
        self.committed.extend(self.pending)
        self.pending = []
        self.commits += 1

    def rollback(self) -> None:
        self.pending = []
        self.rollbacks += 1


@pytest.fixture
def car_builder() -> CarBuilder:
    return CarBuilder()


@pytest.fixture
def fake_store_factory():
    return FakeStore


@pytest.fixture
def example_archive_dir(tmp_path: Path, car_builder: CarBuilder):
    """
    Three CARs and four file ranges:

    a.car holds X and Y, b.car holds Z, c.car holds nothing expected.
    File range 4 (W) is in no CAR.
    """
    blocks = {name: name.encode() * 8 for name in ("X", "Y", "Z", "W", "Q")}
    car_builder.write(tmp_path, "a.car", [blocks["X"], blocks["Y"]])
    car_builder.write(tmp_path, "b.car", [blocks["Z"]], version=2)
    car_builder.write(tmp_path, "c.car", [blocks["Q"]])

    expected = [
        ExpectedRecord(1, car_builder.cid(blocks["X"])),
        ExpectedRecord(2, car_builder.cid(blocks["Y"])),
        ExpectedRecord(3, car_builder.cid(blocks["Z"])),
        ExpectedRecord(4, car_builder.cid(blocks["W"])),
    ]
    archives = [
        ArchiveRecord(10, "a.car"),
        ArchiveRecord(20, "b.car"),
        ArchiveRecord(30, "c.car"),
    ]
    return tmp_path, expected, archives


@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment from leaking into tests."""
    for key in (
        "LOG_LEVEL", "LOG_FILE", "LOG_JSON", "LOG_CONSOLE", "OTLP_ENDPOINT",
        "DATABASE_CONNECTION_STRING", "VAULT_ADDR", "VAULT_TOKEN",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo logging configuration done by CLI and logging tests."""
    root = logging.getLogger()
    level = root.level
    handlers = root.handlers[:]
    yield
    root.setLevel(level)
    root.handlers[:] = handlers
