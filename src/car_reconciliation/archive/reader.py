"""
Streaming block reader for CAR (Content Addressable aRchive) files.

Supports CARv1 and CARv2. Only the parts needed to enumerate blocks are
decoded: the header version, section framing and CID boundaries. Block data is
returned untouched and hashes are not verified.

CARv1 layout:
    varint(len) | DAG-CBOR header {roots, version: 1}
    varint(len) | CID | block data      (repeated until EOF)

CARv2 layout:
    11-byte pragma (a CARv1-style header declaring version 2)
    40-byte header: characteristics(16) | data offset(8) | data size(8) | index offset(8)
    CARv1 payload at [data offset, data offset + data size)
"""

import logging
import struct
from collections.abc import Iterator
from typing import BinaryIO

from ..exceptions import ArchiveFormatError, ArchiveReadError

logger = logging.getLogger(__name__)

CARV2_PRAGMA = bytes.fromhex("0aa16776657273696f6e02")
CARV2_HEADER_SIZE = 40
# DAG-CBOR text key "version" (major type 3, length 7)
_VERSION_KEY = b"\x67version"
_MAX_VARINT_BYTES = 10
_MAX_HEADER_SIZE = 32 << 20
_MAX_SECTION_SIZE = 32 << 20
_CIDV0_PREFIX = b"\x12\x20"
_CIDV0_LENGTH = 34


class _EndOfStream(Exception):
    pass


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """
    Decode an unsigned LEB128 varint from ``data`` at ``offset``.

    Returns:
        Tuple of (value, offset just past the varint)

    Raises:
        ValueError: If the varint is truncated or too long
    """
    value = 0
    shift = 0
    for i in range(_MAX_VARINT_BYTES):
        if offset + i >= len(data):
            raise ValueError("truncated varint")
        byte = data[offset + i]
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset + i + 1
        shift += 7
    raise ValueError("varint too long")


def cid_length(section: bytes) -> int:
    """
    Return the length in bytes of the CID at the start of a CAR section.

    Raises:
        ValueError: If the section does not start with a parseable CID
    """
    if section[:2] == _CIDV0_PREFIX:
        if len(section) < _CIDV0_LENGTH:
            raise ValueError("truncated CIDv0")
        return _CIDV0_LENGTH

    version, offset = decode_varint(section)
    if version != 1:
        raise ValueError(f"unsupported CID version {version}")
    _codec, offset = decode_varint(section, offset)
    _hash_code, offset = decode_varint(section, offset)
    digest_size, offset = decode_varint(section, offset)
    end = offset + digest_size
    if end > len(section):
        raise ValueError("multihash digest runs past the section")
    return end


def _header_version(header: bytes) -> int:
    position = header.find(_VERSION_KEY)
    if position < 0 or position + len(_VERSION_KEY) >= len(header):
        raise ValueError("header has no version field")
    version = header[position + len(_VERSION_KEY)]
    # CBOR unsigned integers 0..23 are encoded in the initial byte
    if version > 23:
        raise ValueError("header version is not a small integer")
    return version


class CarBlockReader:
    """
    Iterate over the ``(cid, block)`` pairs of an open CAR stream.

    The stream must be positioned at the start of the file. The header is read
    eagerly so format problems surface before iteration starts; sections are
    read lazily.

    Example:
        >>> with open("x.car", "rb") as f:
        ...     for cid, block in CarBlockReader(f, "x.car"):
        ...         print(encode_cid(cid), len(block))
    """

    def __init__(self, stream: BinaryIO, name: str = "<stream>"):
        self.stream = stream
        self.name = name
        self.version = 1
        self.roots_header = b""
        self._remaining: int | None = None
        self._read_header()
        logger.debug(f"Opened CARv{self.version} archive {name}")

    def _fail(self, message: str) -> ArchiveFormatError:
        return ArchiveFormatError(self.name, message)

    def _read(self, size: int) -> bytes:
        if self._remaining is not None:
            size = min(size, self._remaining)
        try:
            data = self.stream.read(size)
        except OSError as e:
            raise ArchiveReadError(self.name, f"read failed: {e}") from e
        if self._remaining is not None:
            self._remaining -= len(data)
        return data

    def _read_exact(self, size: int, what: str) -> bytes:
        data = self._read(size)
        if len(data) != size:
            raise self._fail(f"unexpected end of file reading {what}")
        return data

    def _read_varint(self) -> int:
        value = 0
        shift = 0
        for i in range(_MAX_VARINT_BYTES):
            byte = self._read(1)
            if not byte:
                if i == 0:
                    raise _EndOfStream()
                raise self._fail("unexpected end of file inside varint")
            value |= (byte[0] & 0x7F) << shift
            if not byte[0] & 0x80:
                return value
            shift += 7
        raise self._fail("varint too long")

    def _read_v1_header(self) -> bytes:
        try:
            length = self._read_varint()
        except _EndOfStream:
            raise self._fail("empty file") from None
        if length == 0 or length > _MAX_HEADER_SIZE:
            raise self._fail(f"invalid header length {length}")
        return self._read_exact(length, "header")

    def _read_header(self) -> None:
        header = self._read_v1_header()
        try:
            version = _header_version(header)
        except ValueError as e:
            raise self._fail(f"invalid header: {e}") from e

        if version == 2:
            if header != CARV2_PRAGMA[1:]:
                raise self._fail("malformed CARv2 pragma")
            v2_header = self._read_exact(CARV2_HEADER_SIZE, "CARv2 header")
            data_offset, data_size = struct.unpack_from("<QQ", v2_header, 16)
            if data_offset < len(CARV2_PRAGMA) + CARV2_HEADER_SIZE:
                raise self._fail(f"invalid CARv2 data offset {data_offset}")
            try:
                self.stream.seek(data_offset)
            except OSError as e:
                raise ArchiveReadError(self.name, f"seek failed: {e}") from e
            self.version = 2
            self._remaining = data_size
            inner = self._read_v1_header()
            try:
                inner_version = _header_version(inner)
            except ValueError as e:
                raise self._fail(f"invalid inner header: {e}") from e
            if inner_version != 1:
                raise self._fail(f"invalid inner CARv1 version {inner_version}")
            self.roots_header = inner
        elif version == 1:
            self.roots_header = header
        else:
            raise self._fail(f"unsupported CAR version {version}")

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        while True:
            if self._remaining == 0:
                return
            try:
                length = self._read_varint()
            except _EndOfStream:
                return
            if length == 0 or length > _MAX_SECTION_SIZE:
                raise self._fail(f"invalid section length {length}")
            section = self._read_exact(length, "section")
            try:
                boundary = cid_length(section)
            except ValueError as e:
                raise self._fail(f"invalid CID: {e}") from e
            yield section[:boundary], section[boundary:]
