"""
Exception hierarchy for Chronologicon.

Three tiers:
- validation of a single record or request (ValidationError and friends),
  non-fatal inside ingestion where it is recorded against the job;
- lookups of missing resources (NotFoundError);
- infrastructure faults (SourceUnavailableError, StoreUnavailableError),
  fatal to the running operation.
"""

from __future__ import annotations

from typing import Any


class ChronologiconError(Exception):
    """Base class for all Chronologicon errors."""

    pass


class ValidationError(ChronologiconError, ValueError):
    """Raised when an event, patch, range or request fails validation."""

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        """Structured rejection payload."""
        payload: dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class HierarchyCycleError(ValidationError):
    """Raised when a parent assignment would create a self reference or cycle."""

    pass


class NotFoundError(ChronologiconError, LookupError):
    """Raised when a referenced event or job does not exist."""

    pass


class JobStateError(ChronologiconError, RuntimeError):
    """Raised on an illegal ingestion job status transition."""

    pass


class StoreError(ChronologiconError, RuntimeError):
    """Raised when the event store rejects an operation."""

    pass


class ConstraintViolationError(StoreError):
    """Raised when a uniqueness or check constraint rejects a write."""

    pass


class StoreUnavailableError(StoreError):
    """Raised when the backing database cannot be reached."""

    pass


class SourceUnavailableError(ChronologiconError, OSError):
    """Raised when an ingestion source cannot be read."""

    pass
