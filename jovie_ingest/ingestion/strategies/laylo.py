"""
Laylo Strategy
==============

Extracts links from ``laylo.com/<handle>`` drop pages.
"""

from __future__ import annotations

from collections.abc import Iterator

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import RawDocument
from jovie_ingest.ingestion.strategies.base import BaseStrategy, LinkCandidate
from jovie_ingest.ingestion.strategies.html import iter_anchors, iter_json_urls, load_script_json


class LayloStrategy(BaseStrategy):
    """Strategy for Laylo creator pages."""

    JOB_TYPE = JobType.IMPORT_LAYLO
    PLATFORM_ID = "laylo"
    STRATEGY_VERSION = "1.0.0"

    VALID_HOSTS = ("laylo.com",)
    SKIP_HOSTS = ("laylo-assets.com", "cdn.laylo.com")
    DISPLAY_NAME_SUFFIXES = (" | Laylo", " on Laylo", " - Laylo")

    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterator[LinkCandidate]:
        next_data = load_script_json(soup, "__NEXT_DATA__")
        if next_data is not None:
            for url, _parent in iter_json_urls(
                next_data, keys=("url", "link", "href", "socialUrl", "website")
            ):
                yield LinkCandidate(url=url, signal="next_data", confidence=0.85)

        for href, text in iter_anchors(soup, base_url=document.final_url):
            yield LinkCandidate(url=href, signal="anchor", confidence=0.7, text=text)
