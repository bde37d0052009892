"""
Spotify Strategy
================

Extracts social links from Spotify artist pages. The web player embeds
its initial state as JSON (plain or base64 encoded) containing the
artist's ``externalLinks``; anchors in the About section are a fallback.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import RawDocument
from jovie_ingest.ingestion.strategies.base import BaseStrategy, LinkCandidate
from jovie_ingest.ingestion.strategies.html import iter_anchors, iter_json_urls, walk_json

STATE_SCRIPT_IDS = ("initialState", "initial-state", "__NEXT_DATA__")


class SpotifyStrategy(BaseStrategy):
    """Strategy for Spotify artist pages."""

    JOB_TYPE = JobType.IMPORT_SPOTIFY
    PLATFORM_ID = "spotify"
    STRATEGY_VERSION = "1.0.0"

    VALID_HOSTS = ("open.spotify.com", "spotify.com")
    SKIP_HOSTS = ("scdn.co", "spotifycdn.com", "spotify.link")
    DISPLAY_NAME_SUFFIXES = (" | Spotify", " - Spotify", " on Spotify")

    @classmethod
    def accepts_canonical_id(cls, canonical_id: str) -> bool:
        # Artist ids are bare; albums, tracks and users carry a "kind/" prefix
        return "/" not in canonical_id

    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterator[LinkCandidate]:
        state = self._initial_state(soup)
        if state is not None:
            for key, value, _parent in walk_json(state):
                if key == "externalLinks" and isinstance(value, dict):
                    for item in value.get("items") or []:
                        if isinstance(item, dict) and isinstance(item.get("url"), str):
                            yield LinkCandidate(
                                url=item["url"],
                                signal="external_links",
                                confidence=0.95,
                                text=item.get("name"),
                            )
            for url, _parent in iter_json_urls(state):
                yield LinkCandidate(url=url, signal="embedded_json", confidence=0.8)

        for href, text in iter_anchors(soup, base_url=document.final_url):
            yield LinkCandidate(url=href, signal="anchor", confidence=0.7, text=text)

    @staticmethod
    def _initial_state(soup: BeautifulSoup) -> Any | None:
        for script_id in STATE_SCRIPT_IDS:
            script = soup.find("script", id=script_id)
            if script is None:
                continue
            raw = (script.string or script.get_text() or "").strip()
            if not raw:
                continue
            try:
                return json.loads(raw)
            except ValueError:
                pass
            try:
                return json.loads(base64.b64decode(raw, validate=False))
            except (binascii.Error, ValueError):
                continue
        return None
