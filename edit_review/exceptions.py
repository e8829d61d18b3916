"""
Edit Review Exceptions

Error taxonomy shared by the snapshot store, reconciliation manager,
mode manager and activity monitor.
"""

from typing import Optional


class ReviewError(Exception):
    """Base exception for all edit review operations."""

    pass


class ConfigError(ReviewError):
    """Raised when a configuration value is invalid."""

    pass


class SnapshotError(ReviewError):
    """Raised when an explicit capture cannot read a file."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        message = f"Could not snapshot {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class FileOperationError(ReviewError):
    """Raised when a disk read, write or delete fails for a diff record.

    The record involved is left in its previous state (normally pending).

    Attributes:
        path: Absolute path of the file involved
        operation: One of "read", "write", "delete"
        cause: The underlying OSError, if any
    """

    def __init__(
        self,
        path: str,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.path = path
        self.operation = operation
        self.cause = cause
        message = f"Failed to {operation} {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ModeSyncError(ReviewError):
    """Raised when the mode cannot be written to the agent's settings file."""

    pass


class InvalidIntentError(ReviewError):
    """Raised when a presentation message is unknown or incomplete."""

    pass


class ActivityMarkerError(ReviewError):
    """Raised when the activity marker exists but cannot be interpreted."""

    pass
