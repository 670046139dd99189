"""
Integration tests against a real PostgreSQL database.

Set CAR_RECONCILE_TEST_DSN to a scratch database to run them; the tests create
and drop their own file_ranges, cars and file_range_car tables.
"""

import os

import pytest

from car_reconciliation.archive import ArchiveScanner
from car_reconciliation.exceptions import ArchiveFormatError
from car_reconciliation.pipeline import Reconciler
from car_reconciliation.storage import AssociationStore, connect, ensure_schema

TEST_DSN = os.getenv("CAR_RECONCILE_TEST_DSN")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DSN, reason="CAR_RECONCILE_TEST_DSN not set"),
]


@pytest.fixture
def postgres_conn():
    """Connection with fresh source tables and an empty association table."""
    conn = connect(TEST_DSN)
    cursor = conn.cursor()
    cursor.execute("DROP TABLE IF EXISTS file_range_car, file_ranges, cars")
    cursor.execute("CREATE TABLE file_ranges (id INTEGER PRIMARY KEY, cid BYTEA NOT NULL)")
    cursor.execute("CREATE TABLE cars (id INTEGER PRIMARY KEY, storage_path TEXT NOT NULL)")
    conn.commit()
    cursor.close()
    ensure_schema(conn)

    yield conn

    conn.rollback()
    cursor = conn.cursor()
    cursor.execute("DROP TABLE IF EXISTS file_range_car, file_ranges, cars")
    conn.commit()
    cursor.close()
    conn.close()


def seed(conn, car_builder, archive_dir):
    car_builder.write(archive_dir, "a.car", [b"X" * 8, b"Y" * 8])
    car_builder.write(archive_dir, "b.car", [b"Z" * 8], version=2)
    car_builder.write(archive_dir, "c.car", [b"Q" * 8])

    cursor = conn.cursor()
    cursor.executemany(
        "INSERT INTO file_ranges (id, cid) VALUES (%s, %s)",
        [(i, car_builder.cid(data * 8)) for i, data in enumerate([b"X", b"Y", b"Z", b"W"], 1)],
    )
    cursor.executemany(
        "INSERT INTO cars (id, storage_path) VALUES (%s, %s)",
        [(10, "a.car"), (20, "b.car"), (30, "c.car")],
    )
    conn.commit()
    cursor.close()


def associations(conn):
    cursor = conn.cursor()
    cursor.execute("SELECT file_range_id, car_id FROM file_range_car ORDER BY 1, 2")
    rows = cursor.fetchall()
    cursor.close()
    return rows


class TestPostgresReconciliation:
    """End-to-end runs through AssociationStore and psycopg2"""

    def test_run_commits_associations(self, postgres_conn, car_builder, tmp_path):
        seed(postgres_conn, car_builder, tmp_path)

        summary = Reconciler(AssociationStore(postgres_conn), ArchiveScanner(tmp_path)).run()

        assert summary.committed
        assert associations(postgres_conn) == [(1, 10), (2, 10), (3, 20)]

    def test_rerun_is_idempotent(self, postgres_conn, car_builder, tmp_path):
        seed(postgres_conn, car_builder, tmp_path)
        Reconciler(AssociationStore(postgres_conn), ArchiveScanner(tmp_path)).run()

        summary = Reconciler(AssociationStore(postgres_conn), ArchiveScanner(tmp_path)).run()

        assert summary.associations_inserted == 0
        assert summary.total_archives == 1
        assert associations(postgres_conn) == [(1, 10), (2, 10), (3, 20)]

    def test_corrupt_archive_leaves_table_empty(self, postgres_conn, car_builder, tmp_path):
        seed(postgres_conn, car_builder, tmp_path)
        (tmp_path / "c.car").write_bytes(b"\x00")

        with pytest.raises(ArchiveFormatError):
            Reconciler(AssociationStore(postgres_conn), ArchiveScanner(tmp_path)).run()

        assert associations(postgres_conn) == []
