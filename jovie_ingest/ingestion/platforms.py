"""
Platform Registry Module
========================

Data-driven table of known platforms (domains, canonical identity rules,
typo corrections) loaded once from ``data/platforms.yaml``. Descriptors
are immutable after loading.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from jovie_ingest.core.enums import JobType, PlatformCategory

DEFAULT_PLATFORMS_PATH = Path(__file__).parent / "data" / "platforms.yaml"

# Edit-distance typo correction only considers domains at least this long,
# short hosts like x.com are one edit away from too many real sites.
MIN_FUZZY_DOMAIN_LENGTH = 7


@dataclass(frozen=True)
class PathRule:
    """One canonical identity rule for a platform."""

    pattern: re.Pattern[str]
    url_template: str
    id_format: str = "{0}"
    target: str = "path"
    lowercase: bool = True
    reserved: frozenset[str] = frozenset()
    query_param: str | None = None
    path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PathRule:
        """Create from dictionary."""
        target = data.get("target", "path")
        if target not in ("path", "host", "query"):
            raise ValueError(f"Unknown path rule target: {target}")
        if target == "query" and not data.get("query_param"):
            raise ValueError("Query path rules require query_param")
        return cls(
            pattern=re.compile(data["pattern"], re.IGNORECASE),
            url_template=data["url_template"],
            id_format=data.get("id_format", "{0}"),
            target=target,
            lowercase=bool(data.get("lowercase", True)),
            reserved=frozenset(str(r).lower() for r in data.get("reserved", [])),
            query_param=data.get("query_param"),
            path=data.get("path"),
        )

    def apply(self, host: str, path: str, query: dict[str, str]) -> tuple[str, str] | None:
        """
        Apply the rule to a cleaned URL.

        Returns:
            (canonical_id, canonical_url), or None if the rule does not match
        """
        if self.target == "host":
            subject = host
        elif self.target == "query":
            if self.path is not None and path.lower() != self.path.lower():
                return None
            subject = query.get(self.query_param or "", "")
        else:
            subject = path

        match = self.pattern.match(subject)
        if match is None:
            return None

        groups = [g or "" for g in match.groups()]
        if self.lowercase:
            groups = [g.lower() for g in groups]
        if groups and groups[0].lower() in self.reserved:
            return None

        canonical_id = self.id_format.format(*groups)
        return canonical_id, self.url_template.format(*groups, id=canonical_id)


@dataclass(frozen=True)
class PlatformDescriptor:
    """Static description of a known platform."""

    platform_id: str
    name: str
    category: PlatformCategory
    domains: tuple[str, ...]
    path_rules: tuple[PathRule, ...] = ()
    typo_domains: dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    is_official_dsp: bool = False
    job_type: JobType | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlatformDescriptor:
        """Create from dictionary."""
        domains = tuple(d.lower() for d in data.get("domains", []))
        if not domains:
            raise ValueError(f"Platform '{data.get('id')}' has no domains")
        job_type = data.get("job_type")
        return cls(
            platform_id=data["id"],
            name=data.get("name", data["id"]),
            category=PlatformCategory(data.get("category", "websites")),
            domains=domains,
            path_rules=tuple(PathRule.from_dict(r) for r in data.get("path_rules", [])),
            typo_domains={
                str(k).lower(): str(v).lower() for k, v in (data.get("typo_domains") or {}).items()
            },
            is_official_dsp=bool(data.get("is_official_dsp", False)),
            job_type=JobType(job_type) if job_type else None,
        )

    def owns_host(self, host: str) -> bool:
        """Check whether a host is one of this platform's domains or a subdomain."""
        host = host.lower()
        return any(host == d or host.endswith("." + d) for d in self.domains)


@dataclass(frozen=True)
class HostMatch:
    """Result of matching a host against the registry."""

    platform: PlatformDescriptor
    domain: str


class PlatformRegistry:
    """
    Registry of known platforms.

    Host lookups use longest-domain-wins so that ``music.youtube.com``
    resolves to YouTube Music rather than YouTube.
    """

    def __init__(self, platforms: list[PlatformDescriptor]) -> None:
        self._platforms: dict[str, PlatformDescriptor] = {}
        self._domain_index: dict[str, PlatformDescriptor] = {}
        self._typo_index: dict[str, str] = {}

        for platform in platforms:
            if platform.platform_id in self._platforms:
                raise ValueError(f"Duplicate platform id: {platform.platform_id}")
            self._platforms[platform.platform_id] = platform
            for domain in platform.domains:
                if domain in self._domain_index:
                    raise ValueError(
                        f"Domain '{domain}' claimed by both "
                        f"'{self._domain_index[domain].platform_id}' and '{platform.platform_id}'"
                    )
                self._domain_index[domain] = platform
            self._typo_index.update(platform.typo_domains)

    @classmethod
    def from_yaml(cls, path: Path | str) -> PlatformRegistry:
        """
        Load a registry from a YAML file.

        Args:
            path: Path to a platforms.yaml file
        """
        path = Path(path).expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(f"Platform registry not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls([PlatformDescriptor.from_dict(p) for p in data.get("platforms", [])])

    def get(self, platform_id: str) -> PlatformDescriptor | None:
        """Get a platform by id."""
        return self._platforms.get(platform_id)

    def all(self) -> list[PlatformDescriptor]:
        """Get all platforms in definition order."""
        return list(self._platforms.values())

    def by_category(self, category: PlatformCategory | str) -> list[PlatformDescriptor]:
        """Get platforms in one category."""
        category = PlatformCategory(category)
        return [p for p in self._platforms.values() if p.category == category]

    def for_job_type(self, job_type: JobType) -> PlatformDescriptor | None:
        """Get the platform ingested by a job type."""
        for platform in self._platforms.values():
            if platform.job_type == job_type:
                return platform
        return None

    @property
    def known_domains(self) -> list[str]:
        return list(self._domain_index)

    def match_host(self, host: str) -> HostMatch | None:
        """
        Match a host to a platform.

        Walks from the full host towards its registrable suffix, so the first
        hit is the longest matching domain.
        """
        candidate = host.lower().strip(".")
        while candidate:
            platform = self._domain_index.get(candidate)
            if platform is not None:
                return HostMatch(platform=platform, domain=candidate)
            if "." not in candidate:
                break
            candidate = candidate.split(".", 1)[1]
        return None

    def correct_host(self, host: str) -> str | None:
        """
        Correct a misspelled host.

        Explicit typo domains are checked first, then a unique known domain
        within edit distance 1.

        Returns:
            The corrected host, or None if no unambiguous correction exists
        """
        host = host.lower()
        if host in self._typo_index:
            return self._typo_index[host]

        if len(host) < MIN_FUZZY_DOMAIN_LENGTH:
            return None

        matches = [
            domain
            for domain in self._domain_index
            if len(domain) >= MIN_FUZZY_DOMAIN_LENGTH
            and abs(len(domain) - len(host)) <= 1
            and levenshtein_distance(host, domain) <= 1
        ]
        if len(matches) == 1:
            return matches[0]
        return None


def levenshtein_distance(s1: str, s2: str) -> int:
    """
    Calculate the Levenshtein distance between two strings.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Edit distance
    """
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


# Global registry instance
_default_registry: PlatformRegistry | None = None


def get_default_platform_registry() -> PlatformRegistry:
    """
    Get the process-wide platform registry.

    Loaded once from PLATFORMS_CONFIG_PATH if set, otherwise from the
    packaged data/platforms.yaml.
    """
    global _default_registry

    if _default_registry is None:
        path = os.environ.get("PLATFORMS_CONFIG_PATH") or DEFAULT_PLATFORMS_PATH
        _default_registry = PlatformRegistry.from_yaml(path)

    return _default_registry


def reset_default_platform_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
