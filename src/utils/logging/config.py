"""
Logging configuration for reconciliation runs.

Sets up the root logger once per process with a console handler, an optional
rotating file handler and either human-readable or JSON formatting.
"""

import logging
import logging.handlers
import os
import sys

from .formatters import ConsoleFormatter, JSONFormatter

DEFAULT_APP_NAME = "car-reconciliation"

_TRUTHY = ("true", "1", "yes")

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("urllib3", "requests", "opentelemetry", "psycopg2")


def _json_formatter(app_name: str) -> JSONFormatter:
    return JSONFormatter(include_timestamp=True, include_hostname=True, app_name=app_name)


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    app_name: str = DEFAULT_APP_NAME,
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 3,
) -> None:
    """
    Configure logging for the application

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (if None, file logging is disabled)
        console_output: Whether to log to stderr
        json_format: Use JSON format for both console and file logs
        app_name: Application name stamped on JSON records
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        if json_format:
            console_handler.setFormatter(_json_formatter(app_name))
        else:
            console_handler.setFormatter(ConsoleFormatter(use_colors=True))
        root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        if json_format:
            file_handler.setFormatter(_json_formatter(app_name))
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
        root_logger.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={level}, file={log_file or 'none'}, "
        f"console={console_output}, json={json_format}"
    )


def shutdown_logging() -> None:
    """
    Flush and close every root handler.

    Releases the rotating file handle; call during application shutdown.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError):
            pass
        root_logger.removeHandler(handler)


def configure_from_env(**overrides) -> None:
    """
    Configure logging from environment variables

    Keyword overrides that are not None win over the environment, which is
    how CLI flags are layered on top.

    Environment variables:
        LOG_LEVEL: Log level (default: INFO)
        LOG_FILE: Log file path (default: none)
        LOG_JSON: Use JSON format (default: false)
        LOG_CONSOLE: Enable console output (default: true)
    """
    settings = {
        "level": os.getenv("LOG_LEVEL", "INFO"),
        "log_file": os.getenv("LOG_FILE") or None,
        "json_format": os.getenv("LOG_JSON", "false").lower() in _TRUTHY,
        "console_output": os.getenv("LOG_CONSOLE", "true").lower() in _TRUTHY,
    }
    settings.update({key: value for key, value in overrides.items() if value is not None})
    setup_logging(**settings)
