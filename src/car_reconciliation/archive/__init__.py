"""
CAR archive access.

Components:
- reader: CARv1/CARv2 block reader
- scanner: resolves storage paths and tolerates missing files
"""

from .reader import CarBlockReader, cid_length, decode_varint
from .scanner import ArchiveScanner

__all__ = [
    "ArchiveScanner",
    "CarBlockReader",
    "cid_length",
    "decode_varint",
]
