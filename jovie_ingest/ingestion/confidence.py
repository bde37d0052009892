"""
Link Confidence Scoring
=======================

Scores a scraped link from its extraction confidence and the evidence
gathered for it. Seeing the same link on several source pages, through
several extraction signals, or under a handle matching the creator's
username all raise the score.
"""

from __future__ import annotations

import re

from jovie_ingest.core.schema import LinkEvidence

# Added per distinct source page beyond the first
SOURCE_BOOST = 0.05
MAX_SOURCE_BOOST = 0.15

# Added per distinct extraction signal beyond the first
SIGNAL_BOOST = 0.05
MAX_SIGNAL_BOOST = 0.1

USERNAME_MATCH_BOOST = 0.05

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_handle(value: str | None) -> str:
    """Lowercase a username or handle and drop everything but letters and digits."""
    return _NON_ALNUM.sub("", (value or "").lower())


def handle_matches_username(canonical_id: str, username: str | None) -> bool:
    """Check whether a platform handle is the creator's own username."""
    handle = normalize_handle(canonical_id.rsplit("/", 1)[-1])
    return bool(handle) and handle == normalize_handle(username)


def compute_link_confidence(
    base_confidence: float,
    evidence: LinkEvidence,
    username: str | None = None,
    canonical_id: str | None = None,
) -> float:
    """
    Score a link.

    Args:
        base_confidence: Confidence of the best extraction that found the link
        evidence: Union of every source and signal seen for the link
        username: The creator profile's username
        canonical_id: Platform-specific identifier of the link

    Returns:
        Confidence in [0.0, 1.0], rounded to two decimals
    """
    score = base_confidence
    score += min(MAX_SOURCE_BOOST, SOURCE_BOOST * max(0, len(set(evidence.sources)) - 1))
    score += min(MAX_SIGNAL_BOOST, SIGNAL_BOOST * max(0, len(set(evidence.signals)) - 1))
    if canonical_id and handle_matches_username(canonical_id, username):
        score += USERNAME_MATCH_BOOST
    return round(max(0.0, min(1.0, score)), 2)
