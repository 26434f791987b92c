"""Custom exceptions for the gapverify engine."""

from pathlib import Path
from typing import Optional


class GapVerifyError(Exception):
    """Base exception for all gapverify errors."""

    pass


class ValidatorFailureError(GapVerifyError):
    """A category validator could not produce a result for a gap."""

    def __init__(self, category: str, message: str):
        """
        Initialize validator failure.

        Args:
            category: Category whose validator failed
            message: Error message
        """
        super().__init__(f"{category} validator failed: {message}")
        self.category = category
        self.reason = message


class ExecutorUnavailableError(GapVerifyError):
    """Exception raised when the test executor cannot be invoked."""

    pass


class MalformedGapEntryError(GapVerifyError):
    """Exception raised for a batch entry without a usable gap id."""

    pass


class EvidenceWriteError(GapVerifyError):
    """Exception raised when durable evidence cannot be written."""

    def __init__(self, message: str, path: Optional[Path] = None):
        """
        Initialize evidence write error.

        Args:
            message: Error message
            path: Optional path that could not be written
        """
        super().__init__(message)
        self.path = path


class CatalogError(GapVerifyError):
    """Exception raised for an invalid gap catalog or unknown scope."""

    pass


class InvalidStatusTransitionError(GapVerifyError):
    """Exception raised when a gap status change violates the pipeline order."""

    def __init__(self, gap_id: str, current: str, target: str):
        super().__init__(f"Gap {gap_id}: illegal status transition {current} -> {target}")
        self.gap_id = gap_id
        self.current = current
        self.target = target
