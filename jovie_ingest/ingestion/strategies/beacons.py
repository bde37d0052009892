"""
Beacons Strategy
================

Extracts links from ``beacons.ai/<handle>`` pages using anchors, JSON-LD
``sameAs`` lists and any embedded Next.js data.
"""

from __future__ import annotations

from collections.abc import Iterator

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import RawDocument
from jovie_ingest.ingestion.strategies.base import BaseStrategy, LinkCandidate
from jovie_ingest.ingestion.strategies.html import (
    iter_anchors,
    iter_json_ld,
    iter_json_urls,
    load_script_json,
)


class BeaconsStrategy(BaseStrategy):
    """Strategy for Beacons link-in-bio pages."""

    JOB_TYPE = JobType.IMPORT_BEACONS
    PLATFORM_ID = "beacons"
    STRATEGY_VERSION = "1.0.0"

    VALID_HOSTS = ("beacons.ai", "beacons.page")
    SKIP_HOSTS = ("cdn.beacons.ai", "beacons-assets.com")
    DISPLAY_NAME_SUFFIXES = (" | Beacons", " - Beacons", " on Beacons", "| Beacons")

    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterator[LinkCandidate]:
        for item in iter_json_ld(soup):
            same_as = item.get("sameAs") or []
            if isinstance(same_as, str):
                same_as = [same_as]
            for url in same_as:
                if isinstance(url, str):
                    yield LinkCandidate(url=url, signal="json_ld", confidence=0.85)

        next_data = load_script_json(soup, "__NEXT_DATA__")
        if next_data is not None:
            for url, parent in iter_json_urls(next_data):
                title = parent.get("title") if isinstance(parent, dict) else None
                yield LinkCandidate(
                    url=url,
                    signal="next_data",
                    confidence=0.8,
                    text=title if isinstance(title, str) else None,
                )

        for href, text in iter_anchors(soup, base_url=document.final_url):
            yield LinkCandidate(url=href, signal="anchor", confidence=0.7, text=text)
