"""Pydantic v2 models for Jovie ingestion.

These models define:
- Job payloads, a discriminated union tagged by ``job_type``
- Domain views of creator profiles, social links and ingestion jobs
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from jovie_ingest.core.enums import IngestionStatus, JobStatus, JobType, LinkSource

# Follow-up jobs are never created deeper than this.
MAX_JOB_DEPTH = 3


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


# ============================================================================
# Job Payloads
# ============================================================================


class _JobPayloadBase(BaseModel):
    """Fields shared by every job payload."""

    creator_profile_id: str = Field(min_length=1)
    source_url: str = Field(min_length=1)
    depth: int = Field(default=0, ge=0, le=MAX_JOB_DEPTH)

    @field_validator("source_url")
    @classmethod
    def url_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source_url cannot be empty")
        return v.strip()


class LinktreePayload(_JobPayloadBase):
    job_type: Literal["import_linktree"] = "import_linktree"


class BeaconsPayload(_JobPayloadBase):
    job_type: Literal["import_beacons"] = "import_beacons"


class LayloPayload(_JobPayloadBase):
    job_type: Literal["import_laylo"] = "import_laylo"


class YouTubePayload(_JobPayloadBase):
    job_type: Literal["import_youtube"] = "import_youtube"


class InstagramPayload(_JobPayloadBase):
    job_type: Literal["import_instagram"] = "import_instagram"


class SpotifyPayload(_JobPayloadBase):
    job_type: Literal["import_spotify"] = "import_spotify"


class LyricsPayload(_JobPayloadBase):
    job_type: Literal["import_lyrics"] = "import_lyrics"


JobPayload = Annotated[
    Union[
        LinktreePayload,
        BeaconsPayload,
        LayloPayload,
        YouTubePayload,
        InstagramPayload,
        SpotifyPayload,
        LyricsPayload,
    ],
    Field(discriminator="job_type"),
]

_JOB_PAYLOAD_ADAPTER: TypeAdapter[JobPayload] = TypeAdapter(JobPayload)

PAYLOAD_MODELS: dict[JobType, type[_JobPayloadBase]] = {
    JobType.IMPORT_LINKTREE: LinktreePayload,
    JobType.IMPORT_BEACONS: BeaconsPayload,
    JobType.IMPORT_LAYLO: LayloPayload,
    JobType.IMPORT_YOUTUBE: YouTubePayload,
    JobType.IMPORT_INSTAGRAM: InstagramPayload,
    JobType.IMPORT_SPOTIFY: SpotifyPayload,
    JobType.IMPORT_LYRICS: LyricsPayload,
}


def parse_job_payload(data: dict[str, Any]) -> JobPayload:
    """
    Validate a raw payload dict against the union.

    Raises:
        pydantic.ValidationError: If the payload does not match its job type.
    """
    return _JOB_PAYLOAD_ADAPTER.validate_python(data)


def build_job_payload(
    job_type: JobType, creator_profile_id: str, source_url: str, depth: int = 0
) -> JobPayload:
    """Build the payload model for a job type."""
    model = PAYLOAD_MODELS[job_type]
    return model(creator_profile_id=creator_profile_id, source_url=source_url, depth=depth)


# ============================================================================
# Domain Entities
# ============================================================================


class CreatorProfile(BaseModel):
    """
    Creator profile as seen by the ingestion pipeline.

    Only the columns ingestion reads or writes are modeled here.
    """

    id: UUID = Field(default_factory=uuid4)
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    display_name_locked: bool = False
    avatar_locked: bool = False
    ingestion_status: IngestionStatus = IngestionStatus.IDLE
    last_ingestion_error: str | None = None
    merge_version: int = 0
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @field_validator("username")
    @classmethod
    def username_normalized(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("username cannot be empty")
        return v


class LinkEvidence(BaseModel):
    """Where a link was seen and which extraction signals produced it."""

    sources: list[str] = Field(default_factory=list)
    signals: list[str] = Field(default_factory=list)

    def merged_with(self, other: "LinkEvidence") -> "LinkEvidence":
        """Union of both evidence sets, preserving first-seen order."""
        return LinkEvidence(
            sources=list(dict.fromkeys([*self.sources, *other.sources])),
            signals=list(dict.fromkeys([*self.signals, *other.signals])),
        )


class SocialLink(BaseModel):
    """A link on a creator profile, unique per (profile, platform, canonical id)."""

    id: UUID = Field(default_factory=uuid4)
    creator_profile_id: UUID
    platform_id: str
    canonical_id: str
    url: str
    source: LinkSource = LinkSource.SCRAPED
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    source_platform: str | None = None
    evidence: LinkEvidence = Field(default_factory=LinkEvidence)
    display_text: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def canonical_identity(self) -> str:
        return f"{self.platform_id}:{self.canonical_id}"


class IngestionJob(BaseModel):
    """
    A queued ingestion job.

    Jobs are never deleted. ``status`` IDLE means the job succeeded.
    """

    id: UUID = Field(default_factory=uuid4)
    creator_profile_id: UUID
    job_type: JobType
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    dedup_key: str
    depth: int = Field(default=0, ge=0, le=MAX_JOB_DEPTH)
    priority: int = 0
    attempts: int = 0
    source_host: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def typed_payload(self) -> JobPayload:
        """Validate and return the payload as its job-type model."""
        return parse_job_payload({**self.payload, "job_type": self.job_type.value})
