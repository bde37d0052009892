"""
Strategy Base Module
====================

Defines the common interface for per-platform ingestion strategies.
A strategy is responsible for:
1. Fetching the remote profile document (network I/O, may fail transiently)
2. Extracting candidate links and profile metadata (pure parsing)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.core.errors import ExtractionErrorCode, ExtractionFailed
from jovie_ingest.core.schema import PAYLOAD_MODELS
from jovie_ingest.ingestion.fetcher import Fetcher, RawDocument
from jovie_ingest.ingestion.normalizer import NormalizedLink, Unrecognized, UrlNormalizer
from jovie_ingest.ingestion.platforms import PlatformRegistry, get_default_platform_registry
from jovie_ingest.ingestion.strategies.html import (
    clean_display_name,
    is_default_avatar,
    json_ld_profile,
    meta_content,
    parse_html,
    unwrap_redirect,
)

logger = logging.getLogger(__name__)

# Link shorteners and trackers hide the real destination; they are never
# followed during extraction.
SHORTENER_HOSTS: tuple[str, ...] = (
    "bit.ly",
    "t.co",
    "goo.gl",
    "ow.ly",
    "tinyurl.com",
    "buff.ly",
    "lnkd.in",
    "fb.me",
    "smarturl.it",
    "rebrand.ly",
)


@dataclass
class LinkCandidate:
    """A raw URL found in a document, before normalization."""

    url: str
    signal: str  # "next_data", "anchor", "json_ld", "meta", "bio_text"...
    confidence: float  # 0.0 - 1.0
    text: str | None = None


@dataclass
class ExtractedLink:
    """
    A candidate link resolved to a platform identity.

    Tracks how the link was found for provenance.
    """

    raw_url: str
    platform_id: str
    canonical_id: str
    url: str
    confidence: float  # 0.0 - 1.0
    source_platform: str
    signals: list[str] = field(default_factory=list)
    display_text: str | None = None

    def __post_init__(self) -> None:
        """Validate confidence is in range."""
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be between 0.0 and 1.0, got {self.confidence}")

    @property
    def canonical_identity(self) -> str:
        return f"{self.platform_id}:{self.canonical_id}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "raw_url": self.raw_url,
            "platform_id": self.platform_id,
            "canonical_id": self.canonical_id,
            "url": self.url,
            "confidence": self.confidence,
            "source_platform": self.source_platform,
            "signals": list(self.signals),
            "display_text": self.display_text,
        }


@dataclass
class ExtractionResult:
    """
    Links and metadata extracted from one source document.

    Ephemeral: consumed by the merge engine, never persisted as-is.
    """

    source_url: str
    source_platform: str
    links: list[ExtractedLink] = field(default_factory=list)
    display_name: str | None = None
    avatar_url: str | None = None
    dropped: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source_url": self.source_url,
            "source_platform": self.source_platform,
            "links": [link.to_dict() for link in self.links],
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "dropped": self.dropped,
        }


class BaseStrategy(ABC):
    """
    Abstract base class for per-platform ingestion strategies.

    Subclasses must implement:
    - collect_candidates: yield raw link candidates from a parsed document

    and may override:
    - document_url: which page to fetch for a canonical profile URL
    - profile_metadata: display name and avatar extraction
    """

    # Strategy identification (override in subclasses)
    JOB_TYPE: ClassVar[JobType]
    PLATFORM_ID: ClassVar[str] = "base"
    STRATEGY_VERSION: ClassVar[str] = "1.0.0"

    # Hosts the fetched page must stay on after redirects
    VALID_HOSTS: ClassVar[tuple[str, ...]] = ()
    # Extra hosts ignored during extraction (CDNs, the platform's own assets)
    SKIP_HOSTS: ClassVar[tuple[str, ...]] = ()
    # Suffixes stripped from page titles, e.g. " | Linktree"
    DISPLAY_NAME_SUFFIXES: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        registry: PlatformRegistry | None = None,
    ) -> None:
        """
        Initialize the strategy.

        Args:
            fetcher: Fetcher used by fetch_document (a default one is created if omitted)
            registry: Platform registry for normalization
        """
        self.fetcher = fetcher or Fetcher()
        self.registry = registry or get_default_platform_registry()
        self.normalizer = UrlNormalizer(self.registry)

    @property
    def payload_model(self) -> type:
        """Pydantic model validating this strategy's job payload."""
        return PAYLOAD_MODELS[self.JOB_TYPE]

    def validate_url(self, url: str) -> str | None:
        """
        Check that a URL is a profile on this strategy's platform.

        Returns:
            Canonical profile URL, or None if the URL is not handled here
        """
        result = self.normalizer.normalize(url)
        if (
            isinstance(result, NormalizedLink)
            and result.platform_id == self.PLATFORM_ID
            and self.accepts_canonical_id(result.canonical_id)
        ):
            return result.url
        return None

    @classmethod
    def accepts_canonical_id(cls, canonical_id: str) -> bool:
        """Check whether a canonical id on this platform is an ingestible profile."""
        return True

    def document_url(self, canonical_url: str) -> str:
        """URL actually fetched for a canonical profile URL."""
        return canonical_url

    async def fetch_document(self, source_url: str) -> RawDocument:
        """
        Fetch the source document.

        Raises:
            ExtractionFailed: For URLs this strategy does not handle, and for
                any permanent or exhausted fetch failure
        """
        canonical_url = self.validate_url(source_url)
        if canonical_url is None:
            raise ExtractionFailed(
                f"{source_url} is not a valid {self.PLATFORM_ID} profile URL",
                code=ExtractionErrorCode.INVALID_URL,
            )
        return await self.fetcher.fetch(
            self.document_url(canonical_url), allowed_hosts=self.VALID_HOSTS or None
        )

    def extract(self, document: RawDocument) -> ExtractionResult:
        """
        Extract links and metadata from a fetched document.

        Never raises for malformed-but-present documents: anything that
        cannot be parsed is simply missing from the result.
        """
        try:
            soup = parse_html(document.text or "")
        except Exception:
            logger.warning(f"{self.PLATFORM_ID}: unparseable document {document.url}", exc_info=True)
            soup = parse_html("")

        candidates: list[LinkCandidate] = []
        try:
            candidates = list(self.collect_candidates(document, soup))
        except Exception:
            logger.warning(f"{self.PLATFORM_ID}: link collection failed for {document.url}", exc_info=True)

        display_name: str | None = None
        avatar_url: str | None = None
        try:
            display_name, avatar_url = self.profile_metadata(document, soup)
        except Exception:
            logger.warning(f"{self.PLATFORM_ID}: metadata extraction failed for {document.url}", exc_info=True)

        return self.build_result(document, candidates, display_name, avatar_url)

    @abstractmethod
    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterable[LinkCandidate]:
        """
        Yield raw link candidates found in the document.

        Args:
            document: Fetched document
            soup: Parsed HTML of the document

        Returns:
            Iterable of LinkCandidate (order does not matter)
        """
        pass

    def profile_metadata(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> tuple[str | None, str | None]:
        """
        Extract display name and avatar URL.

        Falls back from OpenGraph / Twitter meta tags to JSON-LD.
        """
        name = meta_content(soup, "og:title", "twitter:title")
        avatar = meta_content(soup, "og:image", "twitter:image")

        if not name or not avatar:
            profile = json_ld_profile(soup)
            if profile:
                name = name or profile.get("name")
                image = profile.get("image")
                if isinstance(image, dict):
                    image = image.get("url")
                avatar = avatar or (image if isinstance(image, str) else None)

        if not name and soup.title and soup.title.string:
            name = soup.title.string

        return self.clean_name(name), self.clean_avatar(avatar)

    def clean_name(self, name: str | None) -> str | None:
        return clean_display_name(name, self.DISPLAY_NAME_SUFFIXES)

    def clean_avatar(self, url: str | None) -> str | None:
        if not url or is_default_avatar(url):
            return None
        if url.startswith("//"):
            url = "https:" + url
        return url if url.startswith(("http://", "https://")) else None

    def should_skip_host(self, host: str) -> bool:
        """Check whether links to a host are ignored during extraction."""
        host = host.lower()
        for skipped in (*SHORTENER_HOSTS, *self.VALID_HOSTS, *self.SKIP_HOSTS):
            if host == skipped or host.endswith("." + skipped):
                return True
        own = self.registry.get(self.PLATFORM_ID)
        return own is not None and own.owns_host(host)

    def build_result(
        self,
        document: RawDocument,
        candidates: Iterable[LinkCandidate],
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> ExtractionResult:
        """
        Normalize candidates and collapse duplicates.

        Unrecognized URLs, shortener links and links back to the source
        platform are dropped. Duplicate identities keep the highest
        confidence and the union of signals.
        """
        result = ExtractionResult(
            source_url=document.url,
            source_platform=self.PLATFORM_ID,
            display_name=display_name,
            avatar_url=avatar_url,
        )
        by_identity: dict[str, ExtractedLink] = {}

        for candidate in candidates:
            try:
                url = unwrap_redirect(candidate.url.strip(), base_url=document.final_url)
                if url.startswith("//"):
                    url = "https:" + url
                host = (urlsplit(url if "://" in url else f"https://{url}").hostname or "").lower()
                if not host or self.should_skip_host(host):
                    continue
                normalized = self.normalizer.normalize(url)
            except ValueError:
                logger.debug(f"{self.PLATFORM_ID}: dropping malformed {candidate.url!r}")
                result.dropped += 1
                continue

            if isinstance(normalized, Unrecognized):
                logger.debug(f"{self.PLATFORM_ID}: dropping {candidate.url} ({normalized.reason})")
                result.dropped += 1
                continue

            identity = normalized.canonical_identity
            existing = by_identity.get(identity)
            if existing is None:
                by_identity[identity] = ExtractedLink(
                    raw_url=candidate.url,
                    platform_id=normalized.platform_id,
                    canonical_id=normalized.canonical_id,
                    url=normalized.url,
                    confidence=candidate.confidence,
                    source_platform=self.PLATFORM_ID,
                    signals=[candidate.signal],
                    display_text=candidate.text or None,
                )
                continue

            if candidate.signal not in existing.signals:
                existing.signals.append(candidate.signal)
            if candidate.confidence > existing.confidence:
                existing.confidence = candidate.confidence
                existing.raw_url = candidate.url
            if not existing.display_text and candidate.text:
                existing.display_text = candidate.text

        result.links = list(by_identity.values())
        return result

    def get_info(self) -> dict[str, str]:
        """Get strategy information."""
        return {
            "name": self.PLATFORM_ID,
            "job_type": self.JOB_TYPE.value,
            "version": self.STRATEGY_VERSION,
        }
