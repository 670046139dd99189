"""
Command-line interface for CAR reconciliation.

Available commands:
- run: Associate unmatched file ranges with the CARs that contain them
- report: Print a report saved by a previous run
"""

import sys

from utils.logging import shutdown_logging

from .commands import cmd_report, cmd_run
from .credentials import resolve_dsn, setup_logging
from .parser import create_parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the car-reconcile CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args)

    try:
        if args.command == 'run':
            cmd_run(args)
        elif args.command == 'report':
            cmd_report(args)
        else:
            parser.print_help()
            sys.exit(1)
    finally:
        shutdown_logging()


__all__ = [
    'main',
    'setup_logging',
    'resolve_dsn',
    'cmd_run',
    'cmd_report',
    'create_parser',
]


if __name__ == '__main__':
    main()
