"""Per-run sync summary.

Summaries are immutable values combined with `merge`, so per-athlete results
can be folded together whether athletes ran sequentially or in parallel.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Any


@dataclass(frozen=True)
class SyncError:
    athlete_id: str | None
    message: str


@dataclass(frozen=True)
class SyncRunSummary:
    athletes_processed: int = 0
    fetched: int = 0
    created: int = 0
    updated: int = 0
    matched: int = 0
    skipped_unchanged: int = 0
    errors: tuple[SyncError, ...] = field(default_factory=tuple)
    rate_limited: bool = False

    def merge(self, other: SyncRunSummary) -> SyncRunSummary:
        return SyncRunSummary(
            athletes_processed=self.athletes_processed + other.athletes_processed,
            fetched=self.fetched + other.fetched,
            created=self.created + other.created,
            updated=self.updated + other.updated,
            matched=self.matched + other.matched,
            skipped_unchanged=self.skipped_unchanged + other.skipped_unchanged,
            errors=self.errors + other.errors,
            rate_limited=self.rate_limited or other.rate_limited,
        )

    def with_error(self, athlete_id: str | None, message: str, *, rate_limited: bool = False) -> SyncRunSummary:
        return replace(
            self,
            errors=(*self.errors, SyncError(athlete_id=athlete_id, message=message)),
            rate_limited=self.rate_limited or rate_limited,
        )

    def to_dict(self) -> dict[str, Any]:
        """Caller-facing shape."""
        return {
            "athletesProcessed": self.athletes_processed,
            "fetched": self.fetched,
            "created": self.created,
            "updated": self.updated,
            "matched": self.matched,
            "skippedUnchanged": self.skipped_unchanged,
            "errors": [{"athleteId": e.athlete_id, "message": e.message} for e in self.errors],
        }


def combine(summaries) -> SyncRunSummary:
    return reduce(SyncRunSummary.merge, summaries, SyncRunSummary())
