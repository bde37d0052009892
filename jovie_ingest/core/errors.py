"""Exception types raised across the ingestion pipeline."""

from __future__ import annotations

from enum import Enum


class IngestionError(Exception):
    """Base class for ingestion errors."""


class DuplicateJobError(IngestionError):
    """An active job already exists for the same profile and dedup key."""

    def __init__(self, existing_job_id: str, dedup_key: str = "") -> None:
        self.existing_job_id = existing_job_id
        self.dedup_key = dedup_key
        super().__init__(
            f"Active job {existing_job_id} already exists for dedup key '{dedup_key}'"
        )


class ExtractionErrorCode(str, Enum):
    """Machine-readable reason attached to ExtractionFailed."""

    INVALID_URL = "INVALID_URL"
    INVALID_HOST = "INVALID_HOST"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    FETCH_FAILED = "FETCH_FAILED"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"


class FetchTransientError(IngestionError):
    """A fetch attempt failed in a way worth retrying (timeout, 5xx, transport)."""

    def __init__(self, message: str, status_code: int | None = None, timeout: bool = False) -> None:
        self.status_code = status_code
        self.timeout = timeout
        super().__init__(message)


class ExtractionFailed(IngestionError):
    """Permanent fetch or parse failure. The job fails and is not retried."""

    def __init__(
        self,
        message: str,
        code: ExtractionErrorCode = ExtractionErrorCode.FETCH_FAILED,
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code.value}] {super().__str__()}"


class MergeConflict(IngestionError):
    """A concurrent write was detected while merging; the merge is aborted."""


class InvalidStatusTransition(IngestionError):
    """A profile status event is not allowed from the current status."""

    def __init__(self, current: str, event: str) -> None:
        self.current = current
        self.event = event
        super().__init__(f"Cannot apply event '{event}' to ingestion status '{current}'")


class InvalidJobState(IngestionError):
    """A queue operation was attempted on a job in the wrong status."""
