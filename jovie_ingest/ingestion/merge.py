"""
Merge Engine Module
===================

Folds an extraction result into a creator profile's persisted links.

Rules:
- One link per (profile, platform, canonical id)
- Manual and verified links are never overwritten by scraped ones
- A scraped candidate is scored against the union of its own and the
  stored evidence, and replaces a scraped link when that score is at
  least as high; skipped candidates leave the link untouched
- Display name and avatar are filled only when empty and not locked
- Newly added links on follow-up platforms enqueue follow-up jobs at
  ``depth + 1``, up to the configured maximum depth

A merge is committed or rolled back as a unit by the caller. Concurrent
merges for one profile are detected through ``merge_version`` and raise
MergeConflict.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jovie_ingest.core.enums import LinkSource, MergeAction
from jovie_ingest.core.errors import DuplicateJobError, MergeConflict
from jovie_ingest.core.schema import LinkEvidence, build_job_payload
from jovie_ingest.db.models import CreatorProfileDB, SocialLinkDB, _utc_now
from jovie_ingest.ingestion.confidence import compute_link_confidence
from jovie_ingest.ingestion.config import IngestionConfig, get_default_config
from jovie_ingest.ingestion.platforms import PlatformRegistry, get_default_platform_registry
from jovie_ingest.ingestion.queue import JobQueue, build_dedup_key
from jovie_ingest.ingestion.strategies import STRATEGY_REGISTRY
from jovie_ingest.ingestion.strategies.base import ExtractedLink, ExtractionResult

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of merging one extraction into a profile."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    follow_up_job_ids: list[str] = field(default_factory=list)
    duplicate_follow_ups: int = 0
    display_name_set: bool = False
    avatar_set: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "added": list(self.added),
            "updated": list(self.updated),
            "skipped": list(self.skipped),
            "follow_up_job_ids": list(self.follow_up_job_ids),
            "duplicate_follow_ups": self.duplicate_follow_ups,
            "display_name_set": self.display_name_set,
            "avatar_set": self.avatar_set,
        }


def resolve_action(
    existing_source: LinkSource, existing_confidence: float, candidate_confidence: float
) -> MergeAction:
    """
    Decide what a scraped candidate does to an existing link.

    Scraped data never displaces a manual or verified link. Between scraped
    links the higher confidence wins, ties going to the newer candidate.
    """
    if existing_source.precedence > LinkSource.SCRAPED.precedence:
        return MergeAction.SKIPPED
    if candidate_confidence >= existing_confidence:
        return MergeAction.UPDATED
    return MergeAction.SKIPPED


def dedupe_links(links: list[ExtractedLink]) -> list[ExtractedLink]:
    """Collapse links sharing an identity, keeping the most confident one."""
    by_identity: dict[str, ExtractedLink] = {}
    for link in links:
        current = by_identity.get(link.canonical_identity)
        if current is None:
            by_identity[link.canonical_identity] = link
            continue
        signals = list(dict.fromkeys([*current.signals, *link.signals]))
        best = link if link.confidence > current.confidence else current
        by_identity[link.canonical_identity] = replace(best, signals=signals)
    return list(by_identity.values())


class MergeEngine:
    """
    Applies extraction results to the database.

    Args:
        session: Session whose transaction the merge runs in
        queue: Queue used for follow-up jobs (shares the session)
        config: Ingestion configuration
        registry: Platform registry
    """

    def __init__(
        self,
        session: Session,
        queue: JobQueue | None = None,
        config: IngestionConfig | None = None,
        registry: PlatformRegistry | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_default_config()
        self.registry = registry or get_default_platform_registry()
        self.queue = queue or JobQueue(session, config=self.config, registry=self.registry)

    def merge(
        self,
        profile_id: UUID | str,
        extraction: ExtractionResult,
        depth: int = 0,
        expected_version: int | None = None,
    ) -> MergeResult:
        """
        Merge an extraction into a profile.

        Args:
            profile_id: Creator profile id
            extraction: Links and metadata from one document
            depth: Depth of the job that produced the extraction
            expected_version: ``merge_version`` the caller observed; defaults
                to the version read at the start of the merge

        Returns:
            MergeResult

        Raises:
            ValueError: If the profile does not exist
            MergeConflict: If another merge for the profile committed first
        """
        profile_id = str(profile_id)
        profile = self.session.execute(
            select(CreatorProfileDB)
            .where(CreatorProfileDB.id == profile_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if profile is None:
            raise ValueError(f"Creator profile {profile_id} not found")

        read_version = profile.merge_version if expected_version is None else expected_version
        result = MergeResult()
        new_links: list[ExtractedLink] = []

        existing = {
            (row.platform_id, row.canonical_id): row
            for row in self.session.execute(
                select(SocialLinkDB).where(SocialLinkDB.creator_profile_id == profile_id)
            ).scalars()
        }

        try:
            for link in dedupe_links(extraction.links):
                evidence = LinkEvidence(sources=[extraction.source_url], signals=list(link.signals))
                row = existing.get((link.platform_id, link.canonical_id))

                if row is None:
                    row = SocialLinkDB(
                        creator_profile_id=profile_id,
                        platform_id=link.platform_id,
                        canonical_id=link.canonical_id,
                        url=link.url,
                        source=LinkSource.SCRAPED.value,
                        confidence=compute_link_confidence(
                            link.confidence, evidence, profile.username, link.canonical_id
                        ),
                        source_platform=link.source_platform,
                        evidence_json=evidence.model_dump_json(),
                        display_text=link.display_text,
                    )
                    self.session.add(row)
                    existing[(link.platform_id, link.canonical_id)] = row
                    result.added.append(link.canonical_identity)
                    new_links.append(link)
                    continue

                merged_evidence = self._load_evidence(row).merged_with(evidence)
                confidence = compute_link_confidence(
                    link.confidence, merged_evidence, profile.username, link.canonical_id
                )
                action = resolve_action(LinkSource(row.source), row.confidence, confidence)
                if action == MergeAction.UPDATED:
                    row.evidence_json = merged_evidence.model_dump_json()
                    row.url = link.url
                    row.confidence = confidence
                    row.source_platform = link.source_platform
                    row.display_text = link.display_text or row.display_text
                    result.updated.append(link.canonical_identity)
                else:
                    result.skipped.append(link.canonical_identity)

            self._enrich_profile(profile, extraction, result)
            self.session.flush()
        except IntegrityError as e:
            raise MergeConflict(f"Concurrent link write for profile {profile_id}") from e

        self._enqueue_follow_ups(profile_id, new_links, depth, result)

        bumped = self.session.execute(
            update(CreatorProfileDB)
            .where(
                CreatorProfileDB.id == profile_id,
                CreatorProfileDB.merge_version == read_version,
            )
            .values(merge_version=read_version + 1, updated_at=_utc_now())
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            raise MergeConflict(
                f"Profile {profile_id} changed during merge (expected version {read_version})"
            )
        self.session.expire(profile, ["merge_version", "updated_at"])

        logger.info(
            f"Merged {extraction.source_url} into profile {profile_id}: "
            f"{len(result.added)} added, {len(result.updated)} updated, "
            f"{len(result.skipped)} skipped, {len(result.follow_up_job_ids)} follow-ups"
        )
        return result

    def _load_evidence(self, row: SocialLinkDB) -> LinkEvidence:
        try:
            return LinkEvidence.model_validate(json.loads(row.evidence_json or "{}"))
        except ValueError:
            logger.warning(f"Discarding unreadable evidence on link {row.id}")
            return LinkEvidence()

    def _enrich_profile(
        self, profile: CreatorProfileDB, extraction: ExtractionResult, result: MergeResult
    ) -> None:
        if extraction.display_name and not profile.display_name and not profile.display_name_locked:
            profile.display_name = extraction.display_name
            result.display_name_set = True
        if extraction.avatar_url and not profile.avatar_url and not profile.avatar_locked:
            profile.avatar_url = extraction.avatar_url
            result.avatar_set = True

    def _enqueue_follow_ups(
        self,
        profile_id: str,
        new_links: list[ExtractedLink],
        depth: int,
        result: MergeResult,
    ) -> None:
        """Enqueue ingestion of newly discovered profiles on follow-up platforms."""
        if not new_links:
            return
        max_depth = self.config.global_config.max_depth
        if depth >= max_depth:
            logger.info(f"Depth {depth} reached maximum, not following {len(new_links)} new links")
            return

        follow_up_platforms = set(self.config.merge.follow_up_platforms)
        for link in new_links:
            if link.platform_id not in follow_up_platforms:
                continue
            platform = self.registry.get(link.platform_id)
            if platform is None or platform.job_type is None:
                continue
            strategy_class = STRATEGY_REGISTRY.get(platform.job_type)
            if strategy_class is None or not strategy_class.accepts_canonical_id(link.canonical_id):
                continue

            payload = build_job_payload(platform.job_type, profile_id, link.url, depth + 1)
            try:
                job_id = self.queue.enqueue(
                    profile_id,
                    platform.job_type,
                    payload,
                    dedup_key=build_dedup_key(platform.job_type, link.platform_id, link.canonical_id),
                    depth=depth + 1,
                    priority=self.config.merge.follow_up_priority,
                )
            except DuplicateJobError as e:
                logger.debug(f"Follow-up for {link.canonical_identity} already queued as {e.existing_job_id}")
                result.duplicate_follow_ups += 1
                continue
            result.follow_up_job_ids.append(job_id)
