"""
Document Fetcher Module
=======================

HTTP fetching for ingestion strategies: per-host rate limiting, a
descriptive User-Agent, bounded per-attempt timeouts and retries for
transient failures only.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import httpx

from jovie_ingest.core.errors import ExtractionErrorCode, ExtractionFailed, FetchTransientError

if TYPE_CHECKING:
    from jovie_ingest.ingestion.config import IngestionConfig

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTED_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "application/json")


@dataclass
class RawDocument:
    """A fetched remote document."""

    url: str
    final_url: str
    status_code: int
    content_type: str
    text: str
    content_hash: str
    fetched_at: datetime

    @property
    def host(self) -> str:
        """Host of the final (post-redirect) URL."""
        return (urlsplit(self.final_url).hostname or "").lower()


class TokenBucket:
    """
    Token bucket rate limiter for per-host rate limiting.

    Allows bursting up to burst_limit requests, then enforces
    the steady-state rate of requests_per_second.
    """

    def __init__(self, requests_per_second: float, burst_limit: int) -> None:
        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.tokens = float(burst_limit)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """
        Acquire a token, waiting if necessary.

        This method blocks until a token is available.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.last_update = now

            # Add tokens based on elapsed time
            self.tokens = min(
                self.burst_limit, self.tokens + elapsed * self.requests_per_second
            )

            if self.tokens < 1.0:
                # Need to wait for tokens
                wait_time = (1.0 - self.tokens) / self.requests_per_second
                await asyncio.sleep(wait_time)
                self.tokens = 0.0
                self.last_update = time.monotonic()
            else:
                self.tokens -= 1.0


class Fetcher:
    """
    Fetches documents for ingestion strategies.

    Features:
    - Per-host token bucket rate limiting
    - Bounded timeout per attempt
    - Retries on timeouts, transport errors and 5xx, with exponential backoff
    - Immediate ExtractionFailed on 404, 429, other 4xx, bad content type
    """

    def __init__(
        self,
        user_agent: str = "jovie-link-ingestion/1.0 (+https://jov.ie)",
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_backoff_seconds: float = 1.0,
        config: IngestionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.config = config
        self._transport = transport
        self._rate_limiters: dict[str, TokenBucket] = {}

    @classmethod
    def from_config(
        cls, config: IngestionConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> Fetcher:
        """Create a fetcher from ingestion configuration."""
        global_config = config.global_config
        return cls(
            user_agent=global_config.user_agent,
            timeout=global_config.request_timeout,
            max_retries=global_config.max_retries,
            retry_backoff_seconds=global_config.retry_backoff_seconds,
            config=config,
            transport=transport,
        )

    def _get_rate_limiter(self, host: str) -> TokenBucket:
        """Get or create a rate limiter for a host."""
        if host not in self._rate_limiters:
            if self.config is not None:
                limit = self.config.rate_limit_for(host)
                self._rate_limiters[host] = TokenBucket(
                    requests_per_second=limit.requests_per_second,
                    burst_limit=limit.burst_limit,
                )
            else:
                self._rate_limiters[host] = TokenBucket(requests_per_second=1.0, burst_limit=5)
        return self._rate_limiters[host]

    @staticmethod
    def compute_hash(content: bytes) -> str:
        """
        Compute SHA-256 hash of content.

        Args:
            content: Raw bytes to hash

        Returns:
            Hex-encoded SHA-256 hash
        """
        return hashlib.sha256(content).hexdigest()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            },
        )

    async def fetch(
        self,
        url: str,
        allowed_hosts: tuple[str, ...] | None = None,
        accepted_content_types: tuple[str, ...] = DEFAULT_ACCEPTED_CONTENT_TYPES,
    ) -> RawDocument:
        """
        Fetch a URL with rate limiting and bounded retries.

        Args:
            url: URL to fetch
            allowed_hosts: If set, the final URL must stay on one of these
                hosts (or their subdomains)
            accepted_content_types: Content types treated as parseable

        Returns:
            RawDocument

        Raises:
            ExtractionFailed: On any permanent failure, or once transient
                retries are exhausted
        """
        host = (urlsplit(url).hostname or "").lower()
        if not host:
            raise ExtractionFailed(f"Invalid URL: {url}", code=ExtractionErrorCode.INVALID_URL)

        last_error: FetchTransientError | None = None
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            await self._get_rate_limiter(host).acquire()
            try:
                return await self._fetch_once(url, allowed_hosts, accepted_content_types)
            except FetchTransientError as e:
                last_error = e
                logger.warning(f"Transient error fetching {url}: {e} (attempt {attempt + 1}/{attempts})")

            # Wait before retry with exponential backoff
            if attempt < attempts - 1:
                await asyncio.sleep(self.retry_backoff_seconds * (2**attempt))

        code = (
            ExtractionErrorCode.FETCH_TIMEOUT
            if last_error is not None and last_error.timeout
            else ExtractionErrorCode.FETCH_FAILED
        )
        raise ExtractionFailed(
            f"Giving up on {url} after {attempts} attempts: {last_error}",
            code=code,
            status_code=last_error.status_code if last_error else None,
        ) from last_error

    async def _fetch_once(
        self,
        url: str,
        allowed_hosts: tuple[str, ...] | None,
        accepted_content_types: tuple[str, ...],
    ) -> RawDocument:
        """Perform a single attempt and classify the outcome."""
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise FetchTransientError(f"Timeout after {self.timeout}s", timeout=True) from e
        except httpx.TransportError as e:
            raise FetchTransientError(f"Transport error: {e}") from e
        except httpx.HTTPError as e:
            raise ExtractionFailed(f"HTTP error fetching {url}: {e}") from e

        status = response.status_code
        if status >= 500:
            raise FetchTransientError(f"Server error {status}", status_code=status)
        if status == 404:
            raise ExtractionFailed(
                f"Profile not found: {url}", code=ExtractionErrorCode.NOT_FOUND, status_code=status
            )
        if status == 429:
            raise ExtractionFailed(
                f"Rate limited by {urlsplit(url).hostname}",
                code=ExtractionErrorCode.RATE_LIMITED,
                status_code=status,
            )
        if status >= 400:
            raise ExtractionFailed(
                f"HTTP {status} fetching {url}",
                code=ExtractionErrorCode.FETCH_FAILED,
                status_code=status,
            )

        final_url = str(response.url)
        if allowed_hosts:
            final_host = (response.url.host or "").lower()
            if not any(final_host == h or final_host.endswith("." + h) for h in allowed_hosts):
                raise ExtractionFailed(
                    f"Redirected off-platform to {final_host}",
                    code=ExtractionErrorCode.INVALID_HOST,
                    status_code=status,
                )

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type and not content_type.startswith(accepted_content_types):
            raise ExtractionFailed(
                f"Unsupported content type '{content_type}' for {url}",
                code=ExtractionErrorCode.INVALID_CONTENT_TYPE,
                status_code=status,
            )

        content = response.content
        if not content.strip():
            raise ExtractionFailed(
                f"Empty response from {url}",
                code=ExtractionErrorCode.EMPTY_RESPONSE,
                status_code=status,
            )

        return RawDocument(
            url=url,
            final_url=final_url,
            status_code=status,
            content_type=content_type,
            text=response.text,
            content_hash=self.compute_hash(content),
            fetched_at=datetime.now(UTC),
        )
