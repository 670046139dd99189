"""
Logger wrappers that carry context.

ContextLogger binds key/value pairs (worker id, run id, archive path) once and
attaches them to every record as ``extra`` fields.
"""

import logging


class ContextLogger:
    """
    Logger wrapper that adds bound context to all log messages

    Usage:
        log = ContextLogger(__name__, worker_id=3)
        log.info("worker 3: processing a.car", storage_path="a.car")
        # The record carries both worker_id and storage_path
    """

    def __init__(self, name: str, **context):
        """
        Initialize context logger

        Args:
            name: Logger name
            **context: Key-value pairs to include in every record
        """
        self.logger = logging.getLogger(name)
        self.context = context

    def _log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            msg,
            *args,
            exc_info=exc_info,
            extra={**self.context, **kwargs},
            stacklevel=3,
        )

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def bind(self, **context) -> "ContextLogger":
        """Return a new logger with additional context, leaving this one unchanged."""
        return ContextLogger(self.logger.name, **{**self.context, **context})
