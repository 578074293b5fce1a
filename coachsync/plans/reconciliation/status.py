"""Planned-session status state machine for synced completions.

Pure functions; the persistence side lives in service.py.

    PLANNED / MODIFIED --link--> COMPLETED_SYNCED_DRAFT --confirm--> COMPLETED_SYNCED
    COMPLETED_SYNCED --unconfirmed--> COMPLETED_SYNCED_DRAFT

COMPLETED_MANUAL and SKIPPED are set by explicit athlete action elsewhere and
are absorbing here.
"""

from __future__ import annotations

from datetime import datetime

from coachsync.db.models import SessionStatus

MATCHABLE_STATUSES = frozenset({SessionStatus.PLANNED, SessionStatus.MODIFIED})
ABSORBING_STATUSES = frozenset({SessionStatus.COMPLETED_MANUAL, SessionStatus.SKIPPED})

_DEMOTE_WHEN_UNCONFIRMED = frozenset({SessionStatus.PLANNED, SessionStatus.MODIFIED, SessionStatus.COMPLETED_SYNCED})


def status_on_link(confirmed_at: datetime | None) -> SessionStatus:
    """Status a session takes when an activity is first linked to it."""
    return SessionStatus.COMPLETED_SYNCED if confirmed_at else SessionStatus.COMPLETED_SYNCED_DRAFT


def reconcile_status(current: str, confirmed: bool) -> SessionStatus:
    """Next status for a session whose linked activity is (un)confirmed.

    Idempotent: reconcile_status(reconcile_status(s, c), c) == reconcile_status(s, c).
    """
    status = SessionStatus(current)
    if status in ABSORBING_STATUSES:
        return status
    if not confirmed and status in _DEMOTE_WHEN_UNCONFIRMED:
        return SessionStatus.COMPLETED_SYNCED_DRAFT
    if confirmed and status == SessionStatus.COMPLETED_SYNCED_DRAFT:
        return SessionStatus.COMPLETED_SYNCED
    return status
