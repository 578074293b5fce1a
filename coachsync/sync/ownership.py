"""Caller/athlete relationship checks used by on-demand polls.

The sync engine trusts whatever resolver it is given and never re-derives
ownership itself.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from coachsync.db.models import Athlete


class UnauthorizedSyncError(Exception):
    """Raised when a caller may not sync the requested athlete."""


class OwnershipResolver(Protocol):
    def assert_can_sync(self, caller_id: str, athlete_id: str) -> None: ...

    def athletes_for_caller(self, caller_id: str) -> list[str]: ...


class DbOwnershipResolver:
    """Athletes may sync themselves; coaches may sync the athletes they coach."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def assert_can_sync(self, caller_id: str, athlete_id: str) -> None:
        if caller_id == athlete_id:
            return
        with self._session_factory() as session:
            athlete = session.get(Athlete, athlete_id)
            if athlete is None or athlete.coach_id != caller_id:
                raise UnauthorizedSyncError(f"Caller {caller_id} may not sync athlete {athlete_id}")

    def athletes_for_caller(self, caller_id: str) -> list[str]:
        with self._session_factory() as session:
            if session.get(Athlete, caller_id) is not None:
                return [caller_id]
            return list(
                session.scalars(select(Athlete.id).where(Athlete.coach_id == caller_id).order_by(Athlete.id)).all()
            )
