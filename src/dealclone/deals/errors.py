"""Error taxonomy for the deal duplication engine.

- ConfigError: missing deal id or HubSpot credential. Reported as a typed
  error result by the entry points, never raised past them.
- UpstreamFetchError: a read from HubSpot failed or returned malformed data.
- UpstreamWriteError: a record create/update failed. Fatal for duplication.
- RelationshipSyncError: a single association write failed. Always absorbed
  by the RelationshipSynchronizer and recorded on its SyncReport.
"""

from __future__ import annotations


class DealCloneError(Exception):
    """Base class for all duplication engine errors.

    Attributes:
        message: Human-readable description of the failure.
        deal_id: Deal the failing operation was acting on, if known.
        status_code: Upstream HTTP status code, if the failure came from HubSpot.
    """

    def __init__(
        self,
        message: str,
        *,
        deal_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.deal_id = deal_id
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code})"
        return self.message


class ConfigError(DealCloneError):
    """Raised when a required identifier or credential is missing."""


class UpstreamFetchError(DealCloneError):
    """Raised when a HubSpot read fails or returns malformed data."""


class UpstreamWriteError(DealCloneError):
    """Raised when a HubSpot record create or update fails."""


class RelationshipSyncError(DealCloneError):
    """Raised by an association writer when a single edge cannot be created."""
