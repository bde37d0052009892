"""
Ingestion Status Module
=======================

The single writer of a creator profile's ``ingestion_status``. Every
status change goes through ``IngestionStatusManager.apply`` and the
transition table below; nothing else assigns the column.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from jovie_ingest.core.enums import IngestionEvent, IngestionStatus
from jovie_ingest.core.errors import InvalidStatusTransition
from jovie_ingest.db.models import CreatorProfileDB

logger = logging.getLogger(__name__)

_S = IngestionStatus
_E = IngestionEvent

TRANSITIONS: dict[tuple[IngestionStatus, IngestionEvent], IngestionStatus] = {
    (_S.IDLE, _E.ENQUEUED): _S.PENDING,
    (_S.FAILED, _E.ENQUEUED): _S.PENDING,
    (_S.PENDING, _E.ENQUEUED): _S.PENDING,
    # A follow-up enqueued mid-run does not interrupt the running job
    (_S.PROCESSING, _E.ENQUEUED): _S.PROCESSING,
    (_S.PENDING, _E.CLAIMED): _S.PROCESSING,
    (_S.PROCESSING, _E.SUCCEEDED): _S.IDLE,
    (_S.PROCESSING, _E.FAILED): _S.FAILED,
    (_S.PENDING, _E.FAILED): _S.FAILED,
}


def next_status(current: IngestionStatus, event: IngestionEvent) -> IngestionStatus:
    """
    Compute the status reached by applying an event.

    Raises:
        InvalidStatusTransition: If the event is not allowed from ``current``
    """
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidStatusTransition(current.value, event.value) from None


def can_apply(current: IngestionStatus, event: IngestionEvent) -> bool:
    return (current, event) in TRANSITIONS


class IngestionStatusManager:
    """
    Applies status events to creator profiles within a session.

    Changes are flushed but not committed; the caller owns the transaction
    so a status change commits or rolls back together with the work it
    describes.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _get_profile(self, profile_id: UUID | str) -> CreatorProfileDB:
        profile = self.session.get(CreatorProfileDB, str(profile_id))
        if profile is None:
            raise ValueError(f"Creator profile {profile_id} not found")
        return profile

    def current(self, profile_id: UUID | str) -> IngestionStatus:
        """Get a profile's current status."""
        return IngestionStatus(self._get_profile(profile_id).ingestion_status)

    def apply(
        self,
        profile_id: UUID | str,
        event: IngestionEvent,
        error_message: str | None = None,
    ) -> IngestionStatus:
        """
        Apply an event to a profile.

        Args:
            profile_id: Creator profile id
            event: Status event
            error_message: Recorded as ``last_ingestion_error`` on FAILED

        Returns:
            The new status
        """
        profile = self._get_profile(profile_id)
        current = IngestionStatus(profile.ingestion_status)
        new = next_status(current, event)

        profile.ingestion_status = new.value
        if event == IngestionEvent.FAILED:
            profile.last_ingestion_error = error_message or "Ingestion failed"
        elif event == IngestionEvent.SUCCEEDED:
            profile.last_ingestion_error = None
        self.session.flush()

        if new != current:
            logger.info(f"Profile {profile_id}: {current.value} -> {new.value} ({event.value})")
        return new

    def apply_if_allowed(
        self,
        profile_id: UUID | str,
        event: IngestionEvent,
        error_message: str | None = None,
    ) -> IngestionStatus | None:
        """
        Apply an event only if the table allows it from the current status.

        Used by housekeeping (stale sweeps) where the profile may already
        have moved on.
        """
        if not can_apply(self.current(profile_id), event):
            logger.debug(f"Profile {profile_id}: ignoring {event.value}")
            return None
        return self.apply(profile_id, event, error_message)

    def claim(self, profile_id: UUID | str) -> IngestionStatus:
        """
        Move a profile to processing for a claimed job.

        A job can be claimed for a profile that is idle or failed, when it
        was enqueued as a follow-up while an earlier job was still running.
        The profile then passes through pending first.
        """
        if self.current(profile_id) in (IngestionStatus.IDLE, IngestionStatus.FAILED):
            self.apply(profile_id, IngestionEvent.ENQUEUED)
        return self.apply(profile_id, IngestionEvent.CLAIMED)
