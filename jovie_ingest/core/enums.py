"""Enums for ingestion jobs, social links and profile status."""

from enum import Enum


class JobType(str, Enum):
    """Kind of ingestion job, one per source platform strategy."""

    IMPORT_LINKTREE = "import_linktree"
    IMPORT_BEACONS = "import_beacons"
    IMPORT_LAYLO = "import_laylo"
    IMPORT_YOUTUBE = "import_youtube"
    IMPORT_INSTAGRAM = "import_instagram"
    IMPORT_SPOTIFY = "import_spotify"
    IMPORT_LYRICS = "import_lyrics"


class JobStatus(str, Enum):
    """Lifecycle status of an ingestion job.

    IDLE marks a job that completed successfully.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    IDLE = "idle"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """Whether the job still holds its dedup key."""
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)


ACTIVE_JOB_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)


class JobOutcome(str, Enum):
    """Outcome reported when acknowledging a job."""

    SUCCESS = "success"
    FAILURE = "failure"


class IngestionStatus(str, Enum):
    """Per-profile ingestion status."""

    IDLE = "idle"
    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"


class IngestionEvent(str, Enum):
    """Events that drive the per-profile status state machine."""

    ENQUEUED = "enqueued"
    CLAIMED = "claimed"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class LinkSource(str, Enum):
    """Provenance of a social link."""

    MANUAL = "manual"
    SCRAPED = "scraped"
    VERIFIED = "verified"

    @property
    def precedence(self) -> int:
        """Rank used by the merge engine, higher wins."""
        return _LINK_SOURCE_PRECEDENCE[self]


_LINK_SOURCE_PRECEDENCE = {
    LinkSource.SCRAPED: 0,
    LinkSource.MANUAL: 1,
    LinkSource.VERIFIED: 2,
}


class PlatformCategory(str, Enum):
    """Grouping of known platforms."""

    DSP = "dsp"
    SOCIAL = "social"
    EARNINGS = "earnings"
    WEBSITES = "websites"


class MergeAction(str, Enum):
    """What the merge engine did with one candidate link."""

    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"
