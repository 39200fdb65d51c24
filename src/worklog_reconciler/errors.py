"""Exception types raised by the reconciliation engine and its collaborators."""

from __future__ import annotations

from typing import Optional


class ReconcilerError(Exception):
    """Base class for every error raised by this package."""


class ParseError(ReconcilerError, ValueError):
    """A clock time could not be parsed."""


class InvalidInterval(ReconcilerError, ValueError):
    """A non-positive duration was given where a positive one is required."""


class InvalidAggregation(ReconcilerError, ValueError):
    """Aggregation was requested with an unusable selection of blocks."""


class NotAggregated(ReconcilerError, ValueError):
    """Disaggregation was requested for a block that carries no aggregation record."""


class ExternalServiceError(ReconcilerError):
    """Opaque failure reported by an external read or write collaborator."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (status {self.status})"


class ExternalFetchFailed(ExternalServiceError):
    """Reading the activity feed or the work-log feed failed."""


class ExternalWriteFailed(ExternalServiceError):
    """Writing a work-log entry failed."""
