"""Exceptions raised by the CAR reconciliation pipeline."""


class ReconciliationError(Exception):
    """Base exception for reconciliation failures."""

    pass


class ConfigurationError(ReconciliationError):
    """Raised when the run cannot be configured (missing DSN, bad options)."""

    pass


class InvalidIdentifierError(ReconciliationError):
    """Raised when an expected record carries unusable identifier bytes."""

    def __init__(self, record_id: int, value: object):
        self.record_id = record_id
        self.value = value
        super().__init__(
            f"File range {record_id} has an invalid CID value: {value!r}"
        )


class ArchiveReadError(ReconciliationError):
    """Raised when an archive cannot be read to the end."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class ArchiveFormatError(ArchiveReadError):
    """Raised when an archive is not a well-formed CAR file."""

    pass
