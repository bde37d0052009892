"""
HTML Parsing Helpers
====================

Shared, side-effect free helpers for pulling links and profile metadata
out of fetched pages: meta tags, anchors, JSON-LD, ``__NEXT_DATA__`` and
inline JavaScript JSON assignments.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any
from urllib.parse import parse_qs, unquote, urljoin, urlsplit

from bs4 import BeautifulSoup

# Hosts that wrap outbound links as ?q= / ?u= redirects.
REDIRECT_WRAPPERS: dict[str, tuple[str, ...]] = {
    "youtube.com": ("q",),
    "www.youtube.com": ("q",),
    "l.instagram.com": ("u",),
    "l.facebook.com": ("u",),
    "lm.facebook.com": ("u",),
    "href.li": (),
    "l.linktr.ee": ("url", "u"),
    "www.google.com": ("q", "url"),
}

DEFAULT_AVATAR_PATTERNS: tuple[str, ...] = (
    "default-avatar",
    "default_avatar",
    "default-profile",
    "blank-profile",
    "placeholder",
    "no-avatar",
    "avatar-default",
)

_DOMAIN_TOKEN = re.compile(
    r"(?:https?://)?(?:www\.)?[a-z0-9][a-z0-9-]*(?:\.[a-z0-9-]+)*\.[a-z]{2,}(?:/[^\s\"'<>]*)?",
    re.IGNORECASE,
)


def parse_html(text: str) -> BeautifulSoup:
    """Parse a document with the stdlib-backed parser."""
    return BeautifulSoup(text, "html.parser")


def meta_content(soup: BeautifulSoup, *keys: str) -> str | None:
    """
    Return the first non-empty meta tag content for the given keys.

    Keys are matched against both ``property`` and ``name`` attributes,
    so ``og:title`` and ``twitter:title`` work alike.
    """
    for key in keys:
        tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        if tag is not None:
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return None


def iter_anchors(soup: BeautifulSoup, base_url: str | None = None) -> Iterator[tuple[str, str]]:
    """Yield (absolute href, link text) for every anchor with an href."""
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#"):
            continue
        if base_url and not re.match(r"^[a-z][a-z0-9+.-]*:", href, re.IGNORECASE):
            try:
                href = urljoin(base_url, href)
            except ValueError:
                continue
        yield href, anchor.get_text(" ", strip=True)


def iter_json_ld(soup: BeautifulSoup) -> Iterator[dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening @graph and lists."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except (TypeError, ValueError):
            continue
        stack: list[Any] = [data]
        while stack:
            item = stack.pop(0)
            if isinstance(item, list):
                stack.extend(item)
            elif isinstance(item, dict):
                if "@graph" in item:
                    stack.extend(item["@graph"] if isinstance(item["@graph"], list) else [item["@graph"]])
                yield item


def json_ld_profile(soup: BeautifulSoup) -> dict[str, Any] | None:
    """Return the first JSON-LD Person / ProfilePage / WebPage object."""
    for item in iter_json_ld(soup):
        types = item.get("@type")
        types = types if isinstance(types, list) else [types]
        if any(t in ("Person", "ProfilePage", "WebPage", "MusicGroup", "Organization") for t in types):
            main = item.get("mainEntity")
            if isinstance(main, dict):
                return main
            return item
    return None


def load_script_json(soup: BeautifulSoup, script_id: str) -> Any | None:
    """Load JSON from a ``<script id=...>`` tag such as ``__NEXT_DATA__``."""
    script = soup.find("script", id=script_id)
    if script is None:
        return None
    try:
        return json.loads(script.string or script.get_text() or "")
    except (TypeError, ValueError):
        return None


def extract_json_assignment(text: str, name: str) -> Any | None:
    """
    Pull a JSON object assigned to a JavaScript variable out of raw HTML.

    Handles ``var ytInitialData = {...};`` and ``window["ytInitialData"] = {...}``.
    """
    pattern = re.compile(
        r"(?:var\s+|window\.|window\[\s*[\"'])" + re.escape(name) + r"(?:[\"']\s*\])?\s*=\s*",
    )
    match = pattern.search(text)
    if match is None:
        return None
    start = text.find("{", match.end())
    if start == -1 or text[match.end():start].strip():
        return None
    try:
        value, _ = json.JSONDecoder().raw_decode(text, start)
    except ValueError:
        return None
    return value


def walk_json(obj: Any) -> Iterator[tuple[str | None, Any, dict[str, Any] | None]]:
    """Depth-first walk yielding (key, value, parent dict) for every value."""
    stack: list[tuple[str | None, Any, dict[str, Any] | None]] = [(None, obj, None)]
    while stack:
        key, value, parent = stack.pop()
        yield key, value, parent
        if isinstance(value, dict):
            for k, v in reversed(list(value.items())):
                stack.append((k, v, value))
        elif isinstance(value, list):
            for v in reversed(value):
                stack.append((key, v, parent))


def iter_json_urls(obj: Any, keys: tuple[str, ...] = ("url", "href", "link")) -> Iterator[tuple[str, dict[str, Any] | None]]:
    """Yield (url, parent dict) for string values under the given keys."""
    for key, value, parent in walk_json(obj):
        if key in keys and isinstance(value, str) and looks_like_url(value):
            yield value.strip(), parent


def looks_like_url(value: str) -> bool:
    """Cheap check for absolute or scheme-less web URLs."""
    value = value.strip()
    if value.startswith(("http://", "https://", "//")):
        return True
    return bool(re.match(r"^(?:www\.)?[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}(?:/|$)", value, re.IGNORECASE))


def find_urls_in_text(text: str) -> list[str]:
    """Find URL-ish tokens (``instagram.com/foo``) in free text such as a bio."""
    return [m.group(0).rstrip(".,;:!?)") for m in _DOMAIN_TOKEN.finditer(text or "")]


def unwrap_redirect(url: str, base_url: str | None = None) -> str:
    """
    Unwrap known outbound redirect wrappers.

    ``https://www.youtube.com/redirect?q=https%3A%2F%2Finstagram.com%2Ffoo``
    becomes ``https://instagram.com/foo``. Other URLs are returned as-is.
    """
    try:
        if base_url and url.startswith("/"):
            url = urljoin(base_url, url)
        parts = urlsplit(url)
    except ValueError:
        return url
    host = (parts.hostname or "").lower()
    params = REDIRECT_WRAPPERS.get(host)
    if params is None:
        return url
    if host.endswith("youtube.com") and parts.path != "/redirect":
        return url
    if not params:
        # href.li/?https://target
        return unquote(parts.query) or url
    query = parse_qs(parts.query)
    for param in params:
        values = query.get(param)
        if values and values[0]:
            return unquote(values[0])
    return url


def clean_display_name(name: str | None, suffixes: tuple[str, ...] = ()) -> str | None:
    """
    Strip platform suffixes (``" | Linktree"``) and whitespace from a name.

    Returns:
        Cleaned name, or None if nothing meaningful remains
    """
    if not name:
        return None
    cleaned = re.sub(r"\s+", " ", name).strip()
    for suffix in suffixes:
        if cleaned.lower().endswith(suffix.lower()):
            cleaned = cleaned[: -len(suffix)].strip()
    cleaned = cleaned.strip(" |-–•·")
    return cleaned or None


def is_default_avatar(url: str | None) -> bool:
    """Check whether an image URL is a platform placeholder avatar."""
    if not url:
        return True
    lowered = url.lower()
    return any(pattern in lowered for pattern in DEFAULT_AVATAR_PATTERNS)
