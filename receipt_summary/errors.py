"""Exception types raised across the sync pipeline."""

from __future__ import annotations


class ReceiptSyncError(Exception):
    """Base class for errors that abort a sync invocation."""


class TransportError(ReceiptSyncError):
    """A collaborator could not be reached or answered with a non-success status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ParseError(ReceiptSyncError, ValueError):
    """A line, row or persisted blob does not have the expected shape."""


class ExtractionTimeout(ReceiptSyncError, TimeoutError):
    """An asynchronous extraction job did not finish within its maximum wait."""
