"""
Strategy Registry Module
========================

Central registry mapping job types to ingestion strategies.
Provides factory functions for creating strategies by job type.
"""

from __future__ import annotations

from typing import Type

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import Fetcher
from jovie_ingest.ingestion.platforms import PlatformRegistry
from jovie_ingest.ingestion.strategies.base import (
    BaseStrategy,
    ExtractedLink,
    ExtractionResult,
    LinkCandidate,
)
from jovie_ingest.ingestion.strategies.beacons import BeaconsStrategy
from jovie_ingest.ingestion.strategies.instagram import InstagramStrategy
from jovie_ingest.ingestion.strategies.laylo import LayloStrategy
from jovie_ingest.ingestion.strategies.linktree import LinktreeStrategy
from jovie_ingest.ingestion.strategies.lyrics import LyricsStrategy
from jovie_ingest.ingestion.strategies.spotify import SpotifyStrategy
from jovie_ingest.ingestion.strategies.youtube import YouTubeStrategy


# Registry mapping job types to their strategy classes
STRATEGY_REGISTRY: dict[JobType, Type[BaseStrategy]] = {
    JobType.IMPORT_LINKTREE: LinktreeStrategy,
    JobType.IMPORT_BEACONS: BeaconsStrategy,
    JobType.IMPORT_LAYLO: LayloStrategy,
    JobType.IMPORT_YOUTUBE: YouTubeStrategy,
    JobType.IMPORT_INSTAGRAM: InstagramStrategy,
    JobType.IMPORT_SPOTIFY: SpotifyStrategy,
    JobType.IMPORT_LYRICS: LyricsStrategy,
}

_missing = set(JobType) - set(STRATEGY_REGISTRY)
if _missing:
    raise RuntimeError(f"No strategy registered for job types: {sorted(m.value for m in _missing)}")


def get_strategy(
    job_type: JobType | str,
    fetcher: Fetcher | None = None,
    registry: PlatformRegistry | None = None,
) -> BaseStrategy:
    """
    Get a strategy instance for a job type.

    Args:
        job_type: Job type (enum or its string value)
        fetcher: Optional fetcher shared across strategies
        registry: Optional platform registry

    Returns:
        Strategy instance

    Raises:
        ValueError: If the job type is unknown
    """
    strategy_class = STRATEGY_REGISTRY[JobType(job_type)]
    return strategy_class(fetcher=fetcher, registry=registry)


def register_strategy(job_type: JobType, strategy_class: Type[BaseStrategy]) -> None:
    """
    Register (or replace) the strategy for a job type.

    Args:
        job_type: Job type to register the strategy under
        strategy_class: Strategy class (must inherit from BaseStrategy)
    """
    if not issubclass(strategy_class, BaseStrategy):
        raise TypeError(f"{strategy_class} must inherit from BaseStrategy")
    STRATEGY_REGISTRY[job_type] = strategy_class


def list_strategies() -> list[JobType]:
    """
    List all job types with a registered strategy.

    Returns:
        List of job types
    """
    return list(STRATEGY_REGISTRY.keys())


def strategy_for_platform(platform_id: str) -> Type[BaseStrategy] | None:
    """
    Find the strategy class that ingests pages of a platform.

    Args:
        platform_id: Platform id from the registry (e.g. "spotify")

    Returns:
        Strategy class, or None if no strategy handles the platform
    """
    for strategy_class in STRATEGY_REGISTRY.values():
        if strategy_class.PLATFORM_ID == platform_id:
            return strategy_class
    return None


def get_strategy_info(job_type: JobType | str) -> dict[str, str] | None:
    """
    Get information about a strategy.

    Args:
        job_type: Job type of the strategy

    Returns:
        Dict with strategy info, or None if not found
    """
    try:
        strategy_class = STRATEGY_REGISTRY.get(JobType(job_type))
    except ValueError:
        return None
    if strategy_class is None:
        return None

    return {
        "job_type": JobType(job_type).value,
        "platform": strategy_class.PLATFORM_ID,
        "version": strategy_class.STRATEGY_VERSION,
        "class": strategy_class.__name__,
    }


__all__ = [
    # Registry functions
    "get_strategy",
    "register_strategy",
    "list_strategies",
    "strategy_for_platform",
    "get_strategy_info",
    "STRATEGY_REGISTRY",
    # Base classes
    "BaseStrategy",
    "ExtractedLink",
    "ExtractionResult",
    "LinkCandidate",
    # Concrete strategies
    "BeaconsStrategy",
    "InstagramStrategy",
    "LayloStrategy",
    "LinktreeStrategy",
    "LyricsStrategy",
    "SpotifyStrategy",
    "YouTubeStrategy",
]
