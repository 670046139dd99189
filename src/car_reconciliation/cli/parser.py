"""
Command-line argument parser configuration.

Defines the ``run`` and ``report`` commands of the car-reconcile tool.
"""

import argparse

from ..pipeline.aggregator import DEFAULT_RESULT_BUFFER


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="car-reconcile",
        description="Associate unmatched file ranges with the CAR archives that contain them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan every unmatched CAR under /data/cars
  DATABASE_CONNECTION_STRING="host=db dbname=storage user=recon" car-reconcile run /data/cars

  # Credentials from Vault, eight workers, JSON report
  car-reconcile run /data/cars --use-vault --workers 8 --output run.json

  # Expose Prometheus metrics and export traces while running
  car-reconcile run /data/cars --metrics-port 9091 --otlp-endpoint localhost:4317

  # Print a previous run report
  car-reconcile report --input run.json
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging level (default: LOG_LEVEL or INFO)'
    )
    parser.add_argument(
        '--log-file',
        default=None,
        help='Also write logs to this file, rotated (default: LOG_FILE)'
    )
    parser.add_argument(
        '--json-logs',
        action='store_true',
        default=None,
        help='Emit JSON log records (default: LOG_JSON)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== Run command ==========
    run_parser = subparsers.add_parser('run', help='Run one reconciliation pass')
    run_parser.add_argument(
        'archive_dir',
        help='Directory the CAR storage paths are relative to'
    )
    run_parser.add_argument(
        '--dsn',
        help='PostgreSQL DSN or mysql:// connection string (default: DATABASE_CONNECTION_STRING)'
    )
    run_parser.add_argument(
        '--use-vault',
        action='store_true',
        help='Fetch the connection string from HashiCorp Vault'
    )
    run_parser.add_argument(
        '--vault-secret',
        default='reconciliation',
        help='Secret name under secret/database/ (default: reconciliation)'
    )
    run_parser.add_argument(
        '--workers',
        type=_positive_int,
        default=None,
        help='Number of scanning workers (default: one per CPU)'
    )
    run_parser.add_argument(
        '--result-buffer',
        type=_positive_int,
        default=DEFAULT_RESULT_BUFFER,
        help=f'Capacity of the match queue (default: {DEFAULT_RESULT_BUFFER})'
    )
    run_parser.add_argument(
        '--skip-schema',
        action='store_true',
        help='Do not create the file_range_car table and indexes'
    )
    run_parser.add_argument(
        '--output',
        help='Write the run report as JSON to this path'
    )
    run_parser.add_argument(
        '--metrics-port',
        type=int,
        default=None,
        help='Expose Prometheus metrics on this port during the run'
    )
    run_parser.add_argument(
        '--otlp-endpoint',
        default=None,
        help='Export OpenTelemetry spans to this OTLP gRPC endpoint'
    )

    # ========== Report command ==========
    report_parser = subparsers.add_parser('report', help='Print a previous run report')
    report_parser.add_argument(
        '--input',
        required=True,
        help='JSON report written by run --output'
    )

    return parser
