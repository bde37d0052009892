"""
Linktree Strategy
=================

Extracts links from ``linktr.ee/<handle>`` pages. Linktree is a Next.js
site, so the link list is read from ``__NEXT_DATA__`` first and visible
anchors second.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup

from jovie_ingest.core.enums import JobType
from jovie_ingest.ingestion.fetcher import RawDocument
from jovie_ingest.ingestion.strategies.base import BaseStrategy, LinkCandidate
from jovie_ingest.ingestion.strategies.html import iter_anchors, load_script_json


class LinktreeStrategy(BaseStrategy):
    """Strategy for Linktree profile pages."""

    JOB_TYPE = JobType.IMPORT_LINKTREE
    PLATFORM_ID = "linktree"
    STRATEGY_VERSION = "1.0.0"

    VALID_HOSTS = ("linktr.ee", "linktree.com")
    SKIP_HOSTS = ("ugc.production.linktr.ee", "assets.production.linktr.ee")
    DISPLAY_NAME_SUFFIXES = (" | Linktree", " - Linktree", "| Linktree")

    def collect_candidates(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> Iterator[LinkCandidate]:
        page_props = self._page_props(soup)
        for link in page_props.get("links") or []:
            if isinstance(link, dict) and isinstance(link.get("url"), str):
                yield LinkCandidate(
                    url=link["url"],
                    signal="next_data",
                    confidence=0.9,
                    text=link.get("title"),
                )
        for social in page_props.get("socialLinks") or []:
            if isinstance(social, dict) and isinstance(social.get("url"), str):
                yield LinkCandidate(url=social["url"], signal="next_data_social", confidence=0.95)

        for href, text in iter_anchors(soup, base_url=document.final_url):
            yield LinkCandidate(url=href, signal="anchor", confidence=0.7, text=text)

    def profile_metadata(
        self, document: RawDocument, soup: BeautifulSoup
    ) -> tuple[str | None, str | None]:
        account = self._page_props(soup).get("account") or {}
        name = account.get("pageTitle") or account.get("username")
        avatar = account.get("profilePictureUrl")
        if name or avatar:
            fallback_name, fallback_avatar = super().profile_metadata(document, soup)
            return self.clean_name(name) or fallback_name, self.clean_avatar(avatar) or fallback_avatar
        return super().profile_metadata(document, soup)

    @staticmethod
    def _page_props(soup: BeautifulSoup) -> dict[str, Any]:
        data = load_script_json(soup, "__NEXT_DATA__")
        if not isinstance(data, dict):
            return {}
        page_props = (data.get("props") or {}).get("pageProps") or {}
        return page_props if isinstance(page_props, dict) else {}
