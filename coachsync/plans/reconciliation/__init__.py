"""Planned-session status reconciliation.

Keeps a planned session's status consistent with whether its synced activity
is confirmed, and self-heals drift on every pass.
"""

from coachsync.plans.reconciliation.service import (
    ActivityNotFoundError,
    confirm_activity,
    reconcile_athlete_sessions,
    reconcile_linked_session,
)
from coachsync.plans.reconciliation.status import reconcile_status, status_on_link

__all__ = [
    "ActivityNotFoundError",
    "confirm_activity",
    "reconcile_athlete_sessions",
    "reconcile_linked_session",
    "reconcile_status",
    "status_on_link",
]
