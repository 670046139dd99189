"""
Relational storage for CAR reconciliation.

Provides the PostgreSQL and MySQL connection factory, schema bootstrap for the
file_range_car table and the AssociationStore used inside a run transaction.
"""

from .connection import MYSQL, POSTGRESQL, build_dsn, connect, detect_engine, normalize_dsn
from .store import AssociationStore, ensure_schema

__all__ = [
    "AssociationStore",
    "MYSQL",
    "POSTGRESQL",
    "build_dsn",
    "connect",
    "detect_engine",
    "ensure_schema",
    "normalize_dsn",
]
