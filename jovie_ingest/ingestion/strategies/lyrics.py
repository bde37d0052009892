"""
Lyrics Strategy
===============

Extracts social handles from Genius artist pages
(``genius.com/artists/<slug>``). Genius exposes the artist's Instagram,
Twitter and Facebook names in its preloaded page state rather than as
links, so handles are turned into profile URLs.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import RawDocument
from jovie_ingest.ingestion.strategies.base import BaseStrategy, LinkCandidate
from jovie_ingest.ingestion.strategies.html import iter_anchors

# Handles appear as "instagram_name":"foo", possibly backslash-escaped
# inside JSON.parse('...') state.
_HANDLE_FIELDS: dict[str, str] = {
    "instagram_name": "https://instagram.com/{}",
    "twitter_name": "https://twitter.com/{}",
    "facebook_name": "https://facebook.com/{}",
}
_HANDLE_PATTERN = r'\\?"{field}\\?"\s*:\s*\\?"([A-Za-z0-9._]+)\\?"'


class LyricsStrategy(BaseStrategy):
    """Strategy for Genius artist pages."""

    JOB_TYPE = JobType.IMPORT_LYRICS
    PLATFORM_ID = "genius"
    STRATEGY_VERSION = "1.0.0"

    VALID_HOSTS = ("genius.com",)
    SKIP_HOSTS = ("images.genius.com", "assets.genius.com", "t2.genius.com")
    DISPLAY_NAME_SUFFIXES = (" Lyrics, Songs, and Albums | Genius", " | Genius", " Lyrics")

    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterator[LinkCandidate]:
        for field_name, template in _HANDLE_FIELDS.items():
            pattern = re.compile(_HANDLE_PATTERN.format(field=field_name))
            for match in pattern.finditer(document.text):
                yield LinkCandidate(
                    url=template.format(match.group(1)),
                    signal="artist_handle",
                    confidence=0.85,
                )

        for href, text in iter_anchors(soup, base_url=document.final_url):
            yield LinkCandidate(url=href, signal="anchor", confidence=0.65, text=text)
