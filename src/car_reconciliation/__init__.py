"""
CAR file / file range reconciliation

Scans CAR archives for the CIDs of file ranges that have not been located yet
and records every (file range, CAR) pair in one atomic transaction.

Components:
- archive: CAR reading and scanning
- pipeline: worker pool, aggregator and progress accounting
- storage: PostgreSQL access
- report: run summary output

Usage:
    from car_reconciliation.pipeline import Reconciler
    from car_reconciliation.archive import ArchiveScanner
    from car_reconciliation.storage import AssociationStore, connect
"""

__version__ = "1.0.0"
__all__ = ["archive", "pipeline", "storage", "report", "cli"]
