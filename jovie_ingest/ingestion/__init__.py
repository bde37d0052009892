"""
Jovie Link Ingestion
====================

This package provides the pipeline that discovers a creator's social and
streaming links from their public profile pages.

Pipeline Stages:
1. Enqueue - A profile URL becomes a deduplicated job in the database queue
2. Claim - A worker atomically claims the next runnable job
3. Fetch - The job type's strategy fetches the page with rate limits and retries
4. Extract - The strategy pulls candidate links and profile metadata
5. Normalize - Candidates resolve to (platform, canonical id) identities
6. Merge - Links are merged into the profile with precedence rules, and
   newly found profiles are enqueued as follow-up jobs
"""

from jovie_ingest.ingestion.config import (
    GlobalConfig,
    IngestionConfig,
    MergeConfig,
    RateLimitConfig,
    get_default_config,
)
from jovie_ingest.ingestion.fetcher import (
    Fetcher,
    RawDocument,
    TokenBucket,
)
from jovie_ingest.ingestion.platforms import (
    PlatformDescriptor,
    PlatformRegistry,
    get_default_platform_registry,
)
from jovie_ingest.ingestion.normalizer import (
    NormalizedLink,
    Unrecognized,
    UrlNormalizer,
    normalize,
)
from jovie_ingest.ingestion.state import IngestionStatusManager
from jovie_ingest.ingestion.queue import JobQueue, build_dedup_key
from jovie_ingest.ingestion.merge import MergeEngine, MergeResult
from jovie_ingest.ingestion.orchestrator import IngestionOrchestrator, JobRunResult

__all__ = [
    # Config
    "GlobalConfig",
    "IngestionConfig",
    "MergeConfig",
    "RateLimitConfig",
    "get_default_config",
    # Fetcher
    "Fetcher",
    "RawDocument",
    "TokenBucket",
    # Platforms
    "PlatformDescriptor",
    "PlatformRegistry",
    "get_default_platform_registry",
    # Normalizer
    "NormalizedLink",
    "Unrecognized",
    "UrlNormalizer",
    "normalize",
    # Queue / state
    "IngestionStatusManager",
    "JobQueue",
    "build_dedup_key",
    # Merge
    "MergeEngine",
    "MergeResult",
    # Orchestrator
    "IngestionOrchestrator",
    "JobRunResult",
]
