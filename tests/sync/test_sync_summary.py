from coachsync.sync.summary import SyncRunSummary, combine


def test_merge_adds_counts_and_keeps_errors_in_order():
    first = SyncRunSummary(athletes_processed=1, fetched=3, created=2, matched=1).with_error("a", "boom")
    second = SyncRunSummary(athletes_processed=1, fetched=1, updated=1, skipped_unchanged=1).with_error("b", "bang")

    merged = first.merge(second)

    assert merged.to_dict() == {
        "athletesProcessed": 2,
        "fetched": 4,
        "created": 2,
        "updated": 1,
        "matched": 1,
        "skippedUnchanged": 1,
        "errors": [{"athleteId": "a", "message": "boom"}, {"athleteId": "b", "message": "bang"}],
    }


def test_summaries_are_not_mutated():
    base = SyncRunSummary(created=1)

    base.merge(SyncRunSummary(created=5))
    base.with_error("a", "boom")

    assert base.created == 1
    assert base.errors == ()


def test_rate_limited_is_sticky():
    limited = SyncRunSummary().with_error("a", "429", rate_limited=True)

    assert combine([SyncRunSummary(), limited, SyncRunSummary()]).rate_limited


def test_combine_empty():
    assert combine([]) == SyncRunSummary()
