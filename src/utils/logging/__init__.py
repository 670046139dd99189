"""
Structured logging for reconciliation runs

Provides console or JSON formatted logging with bound context for worker
threads.

Usage:
    import logging

    from utils.logging import setup_logging, shutdown_logging

    # Once at startup
    setup_logging(level="INFO", log_file="/var/log/car-reconciliation/run.log")

    logging.getLogger(__name__).info("selecting cars")

    # Flush and close handlers on exit
    shutdown_logging()
"""

from .config import configure_from_env, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
