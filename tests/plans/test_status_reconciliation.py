"""Tests for the planned-session status state machine and its self-heal pass."""

from datetime import date, timedelta

import pytest

from coachsync.db.models import PlannedSession, SessionStatus
from coachsync.ingestion.pipeline import ingest_activity
from coachsync.plans.reconciliation import (
    ActivityNotFoundError,
    confirm_activity,
    reconcile_athlete_sessions,
    reconcile_linked_session,
    reconcile_status,
    status_on_link,
)


class TestReconcileStatus:
    @pytest.mark.parametrize(
        ("current", "confirmed", "expected"),
        [
            (SessionStatus.PLANNED, False, SessionStatus.COMPLETED_SYNCED_DRAFT),
            (SessionStatus.MODIFIED, False, SessionStatus.COMPLETED_SYNCED_DRAFT),
            (SessionStatus.COMPLETED_SYNCED, False, SessionStatus.COMPLETED_SYNCED_DRAFT),
            (SessionStatus.COMPLETED_SYNCED_DRAFT, False, SessionStatus.COMPLETED_SYNCED_DRAFT),
            (SessionStatus.COMPLETED_SYNCED_DRAFT, True, SessionStatus.COMPLETED_SYNCED),
            (SessionStatus.COMPLETED_SYNCED, True, SessionStatus.COMPLETED_SYNCED),
            (SessionStatus.COMPLETED_MANUAL, False, SessionStatus.COMPLETED_MANUAL),
            (SessionStatus.COMPLETED_MANUAL, True, SessionStatus.COMPLETED_MANUAL),
            (SessionStatus.SKIPPED, False, SessionStatus.SKIPPED),
            (SessionStatus.SKIPPED, True, SessionStatus.SKIPPED),
        ],
    )
    def test_transitions(self, current, confirmed, expected):
        assert reconcile_status(current, confirmed) == expected

    @pytest.mark.parametrize("current", list(SessionStatus))
    @pytest.mark.parametrize("confirmed", [True, False])
    def test_idempotent(self, current, confirmed):
        once = reconcile_status(current, confirmed)
        assert reconcile_status(once, confirmed) == once

    def test_accepts_plain_strings(self):
        assert reconcile_status("COMPLETED_SYNCED", False) == SessionStatus.COMPLETED_SYNCED_DRAFT

    def test_status_on_link(self, now):
        assert status_on_link(None) == SessionStatus.COMPLETED_SYNCED_DRAFT
        assert status_on_link(now) == SessionStatus.COMPLETED_SYNCED


@pytest.fixture
def linked_activity(db_session, make_athlete, make_raw_activity):
    """Activity linked to a session whose status has drifted to COMPLETED_SYNCED."""
    make_athlete("ath-1")
    planned = PlannedSession(
        id="ps-1",
        athlete_id="ath-1",
        date=date(2024, 3, 1),
        discipline="RUN",
        status=SessionStatus.COMPLETED_SYNCED,
    )
    db_session.add(planned)
    activity = ingest_activity(db_session, "ath-1", make_raw_activity(), "UTC").activity
    activity.planned_session_id = planned.id
    db_session.commit()
    return activity


class TestReconcileService:
    def test_unconfirmed_synced_session_demoted(self, db_session, linked_activity):
        assert reconcile_linked_session(db_session, linked_activity) is True
        assert db_session.get(PlannedSession, "ps-1").status == SessionStatus.COMPLETED_SYNCED_DRAFT

    def test_second_pass_is_noop(self, db_session, linked_activity):
        reconcile_linked_session(db_session, linked_activity)

        assert reconcile_linked_session(db_session, linked_activity) is False

    def test_unlinked_activity_is_noop(self, db_session, make_athlete, make_raw_activity):
        make_athlete("ath-1")
        activity = ingest_activity(db_session, "ath-1", make_raw_activity(), "UTC").activity

        assert reconcile_linked_session(db_session, activity) is False

    def test_manual_completion_untouched(self, db_session, linked_activity):
        db_session.get(PlannedSession, "ps-1").status = SessionStatus.COMPLETED_MANUAL
        db_session.commit()

        assert reconcile_linked_session(db_session, linked_activity) is False
        assert db_session.get(PlannedSession, "ps-1").status == SessionStatus.COMPLETED_MANUAL

    def test_self_heal_sweep(self, db_session, linked_activity):
        assert reconcile_athlete_sessions(db_session, "ath-1") == 1
        assert reconcile_athlete_sessions(db_session, "ath-1") == 0

        db_session.expire_all()
        assert db_session.get(PlannedSession, "ps-1").status == SessionStatus.COMPLETED_SYNCED_DRAFT


class TestConfirmActivity:
    def test_confirm_promotes_draft(self, db_session, linked_activity, now):
        reconcile_linked_session(db_session, linked_activity)

        confirmed = confirm_activity(db_session, linked_activity.id, now=now)

        assert confirmed.confirmed_at == now
        assert db_session.get(PlannedSession, "ps-1").status == SessionStatus.COMPLETED_SYNCED

    def test_reconfirm_keeps_first_instant(self, db_session, linked_activity, now):
        confirm_activity(db_session, linked_activity.id, now=now)
        again = confirm_activity(db_session, linked_activity.id, now=now + timedelta(days=1))

        assert again.confirmed_at == now

    def test_unknown_activity(self, db_session):
        with pytest.raises(ActivityNotFoundError):
            confirm_activity(db_session, "missing")
