"""
Exception hierarchy for deltasearch.

Provides layered exception structure for indexing errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class DeltaSearchException(Exception):
    """Base exception for all deltasearch errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class IndexConfigurationError(DeltaSearchException):
    """Raised when an index definition is invalid for its model."""

    def __init__(
        self,
        message: str,
        index_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize configuration error.

        Args:
            message: Error message
            index_name: Name of the misconfigured index
            details: Additional context
        """
        details = details or {}
        if index_name:
            details["index_name"] = index_name
        self.index_name = index_name
        super().__init__(message, details)


class IndexNotFoundError(DeltaSearchException):
    """Raised when an index name is not registered."""

    def __init__(self, index_name: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["index_name"] = index_name
        self.index_name = index_name
        super().__init__(f"Index not found: {index_name}", details)


class SegmentBuildError(DeltaSearchException):
    """Raised when building or writing a segment fails; the served segment is untouched."""

    def __init__(
        self,
        message: str,
        index_name: str,
        kind: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize segment build error.

        Args:
            message: Error message
            index_name: Index being built
            kind: Segment kind (core or delta)
            details: Additional context
        """
        details = details or {}
        details.update({"index_name": index_name, "kind": kind})
        self.index_name = index_name
        self.kind = kind
        super().__init__(message, details)


class SegmentUnavailableError(DeltaSearchException):
    """Raised when a persisted segment cannot be read."""

    def __init__(
        self,
        index_name: str,
        kind: str,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details.update({"index_name": index_name, "kind": kind, "reason": reason})
        self.index_name = index_name
        self.kind = kind
        super().__init__(f"Segment unavailable: {index_name}/{kind}", details)


class JobNotFoundError(DeltaSearchException):
    """Raised when a build job cannot be found."""

    def __init__(self, job_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["job_id"] = job_id
        super().__init__(f"Job not found: {job_id}", details)


class JobStateError(DeltaSearchException):
    """Raised on an illegal build job status transition."""

    def __init__(
        self,
        job_id: str,
        current: str,
        target: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize job state error.

        Args:
            job_id: Job UUID as string
            current: Status the job is in
            target: Status that was requested
            details: Additional context
        """
        details = details or {}
        details.update({"job_id": job_id, "current": current, "target": target})
        super().__init__(f"Illegal job transition {current} -> {target}", details)
