"""
URL Normalizer Module
=====================

Canonicalizes raw, user-typed or scraped URLs into a
``(platform_id, canonical_id)`` pair using the platform registry.

Normalization is pure: no network I/O, no side effects. Redirects are
never followed here; only the literal string is inspected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit

from jovie_ingest.ingestion.platforms import PlatformRegistry, get_default_platform_registry


@dataclass(frozen=True)
class NormalizedLink:
    """A URL resolved to a known platform identity."""

    platform_id: str
    canonical_id: str
    url: str
    raw_url: str
    host: str
    typo_corrected: bool = False

    @property
    def canonical_identity(self) -> str:
        return canonical_identity(self.platform_id, self.canonical_id)


@dataclass(frozen=True)
class Unrecognized:
    """
    Normalization outcome for URLs that do not map to a known platform.

    Returned as a value, never raised.
    """

    raw_url: str
    reason: str

    EMPTY = "empty"
    UNSAFE = "unsafe"
    MALFORMED = "malformed"
    UNKNOWN_PLATFORM = "unknown_platform"
    NO_IDENTITY = "no_identity"


NormalizeResult = NormalizedLink | Unrecognized


def canonical_identity(platform_id: str, canonical_id: str) -> str:
    """Build the dedup identity for a link."""
    return f"{platform_id}:{canonical_id}"


class UrlNormalizer:
    """
    Normalizes raw URLs against a platform registry.

    Handles:
    - Unsafe schemes and encoded control characters (rejected)
    - Text typos such as ``instagram,com`` or ``.ocm``
    - Missing scheme, ``www.``/``m.`` prefixes, credentials, ports, fragments
    - Tracking query parameters (``utm_*``, ``fbclid``, ``si``...)
    - Misspelled platform domains
    """

    DANGEROUS_SCHEMES: tuple[str, ...] = (
        "javascript:",
        "data:",
        "vbscript:",
        "file:",
        "mailto:",
        "tel:",
        "blob:",
    )

    TRACKING_PARAMS: frozenset[str] = frozenset(
        {
            "fbclid",
            "gclid",
            "dclid",
            "msclkid",
            "igshid",
            "igsh",
            "_ga",
            "_gl",
            "ref",
            "ref_src",
            "source",
            "si",
            "nd",
            "feature",
            "mc_cid",
            "mc_eid",
        }
    )

    HOST_PREFIXES: tuple[str, ...] = ("www.", "m.", "mobile.", "web.")

    COMMON_TLDS: tuple[str, ...] = ("com", "net", "org", "io", "me", "ai", "tv", "app", "ee", "co")

    # Encoded or literal control characters (newline, CR, tab, NUL)
    _CONTROL_CHARS = re.compile(r"%0[0-9a-f]|%1[0-9a-f]|%7f|[\x00-\x1f\x7f]", re.IGNORECASE)
    _SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
    _COMMA_BEFORE_TLD = re.compile(
        r",(com|net|org|io|me|ai|tv|app|ee|co)(?=$|[/?#])", re.IGNORECASE
    )
    _SWAPPED_COM = re.compile(r"\.(ocm|cmo|vom)(?=$|[/?#:])", re.IGNORECASE)
    _DOUBLE_DOT = re.compile(r"\.{2,}")
    _MULTI_SLASH = re.compile(r"/{2,}")
    _VALID_HOST = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+$")

    def __init__(self, registry: PlatformRegistry | None = None) -> None:
        self.registry = registry or get_default_platform_registry()

    def normalize(self, raw_url: str) -> NormalizeResult:
        """
        Normalize a raw URL.

        Args:
            raw_url: URL exactly as typed or scraped

        Returns:
            NormalizedLink on success, Unrecognized otherwise
        """
        if raw_url is None or not str(raw_url).strip():
            return Unrecognized(raw_url=raw_url or "", reason=Unrecognized.EMPTY)

        text = str(raw_url).strip()
        lowered = text.lower()
        if any(lowered.startswith(s) for s in self.DANGEROUS_SCHEMES):
            return Unrecognized(raw_url=raw_url, reason=Unrecognized.UNSAFE)
        if self._CONTROL_CHARS.search(text):
            return Unrecognized(raw_url=raw_url, reason=Unrecognized.UNSAFE)

        text = self.repair_text(text)
        if text.startswith("//"):
            text = "https:" + text
        elif not self._SCHEME.match(text):
            text = "https://" + text

        try:
            parts = urlsplit(text)
            hostname = parts.hostname
        except ValueError:
            return Unrecognized(raw_url=raw_url, reason=Unrecognized.MALFORMED)

        if parts.scheme.lower() not in ("http", "https"):
            return Unrecognized(raw_url=raw_url, reason=Unrecognized.UNSAFE)

        host = self.clean_host(hostname or "")
        if not host:
            return Unrecognized(raw_url=raw_url, reason=Unrecognized.MALFORMED)

        path = self.clean_path(parts.path)
        query = self.clean_query(parts.query)

        typo_corrected = False
        match = self.registry.match_host(host)
        if match is None:
            corrected = self.registry.correct_host(host)
            if corrected is not None:
                host = corrected
                typo_corrected = True
                match = self.registry.match_host(host)
        if match is None:
            return Unrecognized(raw_url=raw_url, reason=Unrecognized.UNKNOWN_PLATFORM)

        for rule in match.platform.path_rules:
            result = rule.apply(host, path, query)
            if result is not None:
                canonical_id, url = result
                return NormalizedLink(
                    platform_id=match.platform.platform_id,
                    canonical_id=canonical_id,
                    url=url,
                    raw_url=raw_url,
                    host=host,
                    typo_corrected=typo_corrected,
                )

        return Unrecognized(raw_url=raw_url, reason=Unrecognized.NO_IDENTITY)

    def repair_text(self, text: str) -> str:
        """Fix obvious typing mistakes before parsing."""
        text = re.sub(r"\s+", "", text)
        text = self._COMMA_BEFORE_TLD.sub(r".\1", text)
        text = self._SWAPPED_COM.sub(".com", text)
        return text

    def clean_host(self, host: str) -> str:
        """
        Lowercase a host, drop mobile/www prefixes and repair a missing TLD dot.

        Returns:
            Cleaned host, or "" if it is not a plausible hostname
        """
        host = self._DOUBLE_DOT.sub(".", host.lower().strip("."))
        for prefix in self.HOST_PREFIXES:
            if host.startswith(prefix) and host.count(".") >= 2:
                host = host[len(prefix):]
                break

        if "." not in host:
            # "youtubecom" -> "youtube.com"
            for tld in self.COMMON_TLDS:
                if host.endswith(tld) and len(host) > len(tld) + 1:
                    host = f"{host[: -len(tld)]}.{tld}"
                    break

        if not self._VALID_HOST.match(host):
            return ""
        return host

    def clean_path(self, path: str) -> str:
        """Decode, collapse duplicate slashes and drop trailing slashes."""
        path = self._MULTI_SLASH.sub("/", unquote(path))
        return path.rstrip("/")

    def clean_query(self, query: str) -> dict[str, str]:
        """Parse a query string, dropping tracking parameters."""
        cleaned: dict[str, str] = {}
        for key, value in parse_qsl(query, keep_blank_values=False):
            lowered = key.lower()
            if lowered.startswith("utm_") or lowered in self.TRACKING_PARAMS:
                continue
            cleaned.setdefault(key, value)
        return cleaned

    def strip_tracking(self, url: str) -> str:
        """
        Remove tracking parameters from an arbitrary URL.

        Used for links that are not normalized against the registry.
        """
        try:
            parts = urlsplit(url)
        except ValueError:
            return url
        query = urlencode(self.clean_query(parts.query))
        return parts._replace(query=query, fragment="").geturl()


def normalize(raw_url: str, registry: PlatformRegistry | None = None) -> NormalizeResult:
    """
    Normalize a raw URL into a platform identity.

    Pure and deterministic: repeated calls with the same input return equal
    results.

    Examples:
        >>> normalize("HTTP://WWW.Instagram.com/Foo/").canonical_id
        'foo'
        >>> normalize("badurl.notadomain").reason
        'unknown_platform'
    """
    return UrlNormalizer(registry).normalize(raw_url)
