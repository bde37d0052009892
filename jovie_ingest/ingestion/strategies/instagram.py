"""
Instagram Strategy
==================

Extracts bio links from public Instagram profiles. Instagram serves most
data from embedded JSON (``external_url``, ``bio_links``); the bio text in
``og:description`` is scanned for bare URLs as a weaker signal.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import RawDocument
from jovie_ingest.ingestion.strategies.base import BaseStrategy, LinkCandidate
from jovie_ingest.ingestion.strategies.html import (
    find_urls_in_text,
    iter_anchors,
    meta_content,
)

_EXTERNAL_URL = re.compile(r'"external_url"\s*:\s*"((?:[^"\\]|\\.)+)"')
_BIO_LINK_URL = re.compile(r'"bio_links"\s*:\s*\[(.*?)\]', re.DOTALL)
_URL_FIELD = re.compile(r'"(?:url|lynx_url)"\s*:\s*"((?:[^"\\]|\\.)+)"')
_OG_TITLE_HANDLE = re.compile(r"\s*\(@[^)]*\).*$")


def _json_unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value


class InstagramStrategy(BaseStrategy):
    """Strategy for Instagram profile bios."""

    JOB_TYPE = JobType.IMPORT_INSTAGRAM
    PLATFORM_ID = "instagram"
    STRATEGY_VERSION = "1.0.0"

    VALID_HOSTS = ("instagram.com",)
    SKIP_HOSTS = ("cdninstagram.com", "fbcdn.net")
    DISPLAY_NAME_SUFFIXES = (" • Instagram photos and videos", " | Instagram")

    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterator[LinkCandidate]:
        for match in _EXTERNAL_URL.finditer(document.text):
            yield LinkCandidate(url=_json_unescape(match.group(1)), signal="external_url", confidence=0.9)

        for block in _BIO_LINK_URL.finditer(document.text):
            for match in _URL_FIELD.finditer(block.group(1)):
                yield LinkCandidate(url=_json_unescape(match.group(1)), signal="bio_links", confidence=0.9)

        for href, text in iter_anchors(soup, base_url=document.final_url):
            if "l.instagram.com" in href:
                yield LinkCandidate(url=href, signal="anchor", confidence=0.75, text=text)

        bio = meta_content(soup, "og:description", "description") or ""
        for url in find_urls_in_text(bio):
            yield LinkCandidate(url=url, signal="bio_text", confidence=0.6)

    def clean_name(self, name: str | None) -> str | None:
        # "Test Artist (@testartist) • Instagram photos and videos"
        if name:
            name = _OG_TITLE_HANDLE.sub("", name)
        return super().clean_name(name)
