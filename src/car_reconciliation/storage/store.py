"""
Association storage on top of a DB-API connection.

All reads and writes of a run go through one connection with autocommit off,
so the unmatched-record queries, every association insert and the final commit
or rollback form a single transaction.
"""

import logging
from typing import Any

from opentelemetry import trace

from utils.tracing import trace_operation

from ..models import ArchiveRecord, ExpectedRecord
from .connection import MYSQL, POSTGRESQL

logger = logging.getLogger(__name__)

SELECT_UNMATCHED_FILE_RANGES = """
    SELECT fr.id, fr.cid FROM file_ranges fr
    WHERE NOT EXISTS (
        SELECT 1 FROM file_range_car frc
        WHERE frc.file_range_id = fr.id
    )
"""

SELECT_UNMATCHED_CARS = """
    SELECT c.id, c.storage_path FROM cars c
    WHERE NOT EXISTS (
        SELECT 1 FROM file_range_car frc
        WHERE frc.car_id = c.id
    )
"""

INSERT_ASSOCIATION = """
    INSERT INTO file_range_car (file_range_id, car_id) VALUES (%s, %s)
"""

CREATE_ASSOCIATION_TABLE = """
    CREATE TABLE IF NOT EXISTS file_range_car (
        file_range_id INTEGER NOT NULL,
        car_id INTEGER NOT NULL
    )
"""

CREATE_ASSOCIATION_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_file_range_car_file_range_id "
    "ON file_range_car(file_range_id)",
    "CREATE INDEX IF NOT EXISTS idx_file_range_car_car_id "
    "ON file_range_car(car_id)",
)

# MySQL has no CREATE INDEX IF NOT EXISTS; indexes are declared with the table.
CREATE_ASSOCIATION_TABLE_MYSQL = """
    CREATE TABLE IF NOT EXISTS file_range_car (
        file_range_id INTEGER NOT NULL,
        car_id INTEGER NOT NULL,
        INDEX idx_file_range_car_file_range_id (file_range_id),
        INDEX idx_file_range_car_car_id (car_id)
    )
"""

SCHEMA_STATEMENTS = {
    POSTGRESQL: (CREATE_ASSOCIATION_TABLE, *CREATE_ASSOCIATION_INDEXES),
    MYSQL: (CREATE_ASSOCIATION_TABLE_MYSQL,),
}


class AssociationStore:
    """
    Reads unmatched file ranges and CARs and records file_range_car rows.

    The store never commits on its own; the caller decides between commit()
    and rollback() once the run is over.
    """

    def __init__(self, connection: Any):
        """
        Initialize store

        Args:
            connection: Open DB-API connection with autocommit disabled
        """
        self.connection = connection
        self._cursor = None

    @property
    def cursor(self) -> Any:
        if self._cursor is None:
            self._cursor = self.connection.cursor()
        return self._cursor

    def _fetch_all(self, query: str) -> list[tuple]:
        cursor = self.connection.cursor()
        try:
            cursor.execute(query)
            return list(cursor.fetchall())
        finally:
            cursor.close()

    def fetch_unmatched_file_ranges(self) -> list[ExpectedRecord]:
        """Return file ranges with no association yet."""
        with trace_operation(
            "db.select", kind=trace.SpanKind.CLIENT, **{"db.table": "file_ranges"}
        ):
            rows = self._fetch_all(SELECT_UNMATCHED_FILE_RANGES)
        return [ExpectedRecord(id=row[0], content_identifier=row[1]) for row in rows]

    def fetch_unmatched_cars(self) -> list[ArchiveRecord]:
        """Return CARs that have not produced an association yet."""
        with trace_operation(
            "db.select", kind=trace.SpanKind.CLIENT, **{"db.table": "cars"}
        ):
            rows = self._fetch_all(SELECT_UNMATCHED_CARS)
        return [ArchiveRecord(id=row[0], storage_path=row[1]) for row in rows]

    def insert_association(self, file_range_id: int, car_id: int) -> None:
        """Insert one file_range_car row inside the open transaction."""
        self.cursor.execute(INSERT_ASSOCIATION, (file_range_id, car_id))

    def commit(self) -> None:
        self._close_cursor()
        self.connection.commit()

    def rollback(self) -> None:
        self._close_cursor()
        self.connection.rollback()

    def _close_cursor(self) -> None:
        if self._cursor is not None:
            try:
                self._cursor.close()
            finally:
                self._cursor = None


def ensure_schema(connection: Any, engine: str = POSTGRESQL) -> None:
    """
    Create the file_range_car table and its indexes if they are missing.

    Runs in its own transaction, before the reconciliation transaction opens.

    Args:
        connection: Open DB-API connection
        engine: POSTGRESQL or MYSQL, selects the DDL dialect
    """
    statements = SCHEMA_STATEMENTS.get(engine)
    if statements is None:
        raise ValueError(f"Unknown database engine: {engine}")

    logger.info(f"creating file_range_car table and indexes ({engine})")
    cursor = connection.cursor()
    try:
        for statement in statements:
            cursor.execute(statement)
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        cursor.close()
