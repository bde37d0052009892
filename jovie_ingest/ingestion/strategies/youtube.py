"""
YouTube Strategy
================

Extracts the external links a channel lists on its About tab. YouTube
renders the page from the ``ytInitialData`` JavaScript object; outbound
links are wrapped in ``youtube.com/redirect?q=`` URLs.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import RawDocument
from jovie_ingest.ingestion.strategies.base import BaseStrategy, LinkCandidate
from jovie_ingest.ingestion.strategies.html import (
    extract_json_assignment,
    iter_anchors,
    walk_json,
)


class YouTubeStrategy(BaseStrategy):
    """Strategy for YouTube channel pages."""

    JOB_TYPE = JobType.IMPORT_YOUTUBE
    PLATFORM_ID = "youtube"
    STRATEGY_VERSION = "1.0.0"

    VALID_HOSTS = ("youtube.com",)
    SKIP_HOSTS = ("ytimg.com", "googlevideo.com", "ggpht.com", "google.com", "youtu.be")
    DISPLAY_NAME_SUFFIXES = (" - YouTube",)

    def document_url(self, canonical_url: str) -> str:
        return canonical_url.rstrip("/") + "/about"

    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterator[LinkCandidate]:
        data = extract_json_assignment(document.text, "ytInitialData")
        if data is not None:
            yield from self._links_from_initial_data(data)

        for href, text in iter_anchors(soup, base_url=document.final_url):
            if "/redirect" in href:
                yield LinkCandidate(url=href, signal="anchor", confidence=0.7, text=text)

    def _links_from_initial_data(self, data: Any) -> Iterator[LinkCandidate]:
        for key, value, _parent in walk_json(data):
            if key == "channelExternalLinkViewModel" and isinstance(value, dict):
                # {"title": {"content": "Instagram"}, "link": {"content": "instagram.com/foo"}}
                link = (value.get("link") or {}).get("content")
                title = (value.get("title") or {}).get("content")
                if isinstance(link, str) and link:
                    yield LinkCandidate(
                        url=link,
                        signal="yt_initial_data",
                        confidence=0.9,
                        text=title if isinstance(title, str) else None,
                    )
            elif key == "urlEndpoint" and isinstance(value, dict):
                url = value.get("url")
                if isinstance(url, str) and "redirect" in url:
                    yield LinkCandidate(url=url, signal="yt_initial_data", confidence=0.85)

    def profile_metadata(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> tuple[str | None, str | None]:
        data = extract_json_assignment(document.text, "ytInitialData")
        renderer = ((data or {}).get("metadata") or {}).get("channelMetadataRenderer") or {}
        name = renderer.get("title")
        thumbnails = (renderer.get("avatar") or {}).get("thumbnails") or []
        avatar = thumbnails[-1].get("url") if thumbnails and isinstance(thumbnails[-1], dict) else None

        fallback_name, fallback_avatar = super().profile_metadata(document, soup)
        return self.clean_name(name) or fallback_name, self.clean_avatar(avatar) or fallback_avatar
