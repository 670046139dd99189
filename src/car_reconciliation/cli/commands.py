"""
CLI command implementations.

- run: one reconciliation pass over the unmatched CARs
- report: print a report saved by ``run --output``
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from utils.metrics import MetricsPublisher
from utils.tracing import initialize_tracing, shutdown_tracing

from ..archive import ArchiveScanner
from ..exceptions import ConfigurationError
from ..models import RunSummary
from ..pipeline import Reconciler
from ..report import export_summary_json, format_summary_console
from ..storage import AssociationStore, connect, detect_engine, ensure_schema
from .credentials import resolve_dsn

logger = logging.getLogger(__name__)


def _start_observability(args: argparse.Namespace) -> None:
    if args.metrics_port:
        MetricsPublisher(port=args.metrics_port).start()
    if args.otlp_endpoint:
        initialize_tracing(otlp_endpoint=args.otlp_endpoint)


def cmd_run(args: argparse.Namespace) -> None:
    """
    Run one reconciliation pass and exit

    Exits 0 when the run committed, 1 otherwise.

    Args:
        args: Parsed command-line arguments
    """
    logger.info("starting")

    archive_dir = Path(args.archive_dir)
    if not archive_dir.is_dir():
        logger.error(f"Archive directory not found: {archive_dir}")
        sys.exit(1)

    try:
        dsn = resolve_dsn(args)
        _start_observability(args)
    except (ConfigurationError, RuntimeError) as e:
        logger.error(str(e))
        sys.exit(1)

    connection = None
    reconciler = None
    summary: RunSummary | None = None
    try:
        connection = connect(dsn)
        if not args.skip_schema:
            ensure_schema(connection, engine=detect_engine(dsn))

        reconciler = Reconciler(
            AssociationStore(connection),
            ArchiveScanner(archive_dir),
            max_workers=args.workers,
            result_buffer=args.result_buffer,
        )
        summary = reconciler.run()
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}")
        if reconciler is not None:
            summary = reconciler.summary
    finally:
        if connection is not None:
            connection.close()
        shutdown_tracing()

    if summary is not None:
        print(format_summary_console(summary))
        if args.output:
            export_summary_json(summary, args.output)
            logger.info(f"Report saved to {args.output}")

    if summary is None or not summary.committed:
        sys.exit(1)

    logger.info("done")
    sys.exit(0)


def cmd_report(args: argparse.Namespace) -> None:
    """
    Print a report written by a previous run

    Args:
        args: Parsed command-line arguments
    """
    logger.info(f"Loading run report from {args.input}")

    try:
        with open(args.input) as f:
            summary = RunSummary.from_dict(json.load(f))
    except (OSError, ValueError, TypeError) as e:
        logger.error(f"Failed to read report: {e}")
        sys.exit(1)

    print(format_summary_console(summary))
