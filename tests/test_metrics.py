from datetime import date

from occurrence_engine.metrics import (
    compute_action_stats,
    compute_category_stats,
    compute_daily_stats,
    compute_stats,
    select_occurrences_in_range,
    window_bounds,
)
from occurrence_engine.schema import CANCELED, DONE, MISSED, PLANNED, SKIPPED, Action, Occurrence, Snapshot

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)


def occ(occ_id: str, action_id: str, status: str, day: date = MONDAY, **overrides) -> Occurrence:
    values = {"id": occ_id, "action_id": action_id, "date": day, "start": "09:00", "slot_key": "09:00", "status": status}
    values.update(overrides)
    return Occurrence(**values)


def sample_snapshot() -> Snapshot:
    return Snapshot(
        actions=[
            Action(id="run", category_id="health"),
            Action(id="read", category_id="learning"),
            Action(id="loose"),
        ],
        occurrences=[
            occ("1", "run", DONE, points=2.5),
            occ("2", "run", MISSED, day=TUESDAY),
            occ("3", "read", SKIPPED),
            occ("4", "read", PLANNED, day=TUESDAY),
            occ("5", "loose", CANCELED),
            occ("6", "run", PLANNED, start=None, slot_key="--:--"),
        ],
    )


def test_compute_stats_buckets():
    stats = compute_stats(sample_snapshot().occurrences)
    assert stats.expected == 5
    assert stats.done == 1
    assert stats.missed == 1
    assert stats.canceled == 2
    assert stats.planned == 1
    assert stats.remaining == 2
    assert stats.score == 2.5
    assert stats.completion_rate == 1 / 5


def test_unknown_status_counts_as_planned():
    stats = compute_stats([occ("1", "run", "paused"), occ("2", "run", " Done ")])
    assert stats.expected == 2
    assert stats.planned == 1
    assert stats.remaining == 1
    assert stats.done == 1


def test_empty_input_has_zero_completion_rate():
    stats = compute_stats([])
    assert stats.expected == 0
    assert stats.completion_rate == 0.0


def test_untimed_rows_never_count():
    untimed = occ("u", "run", DONE, start=None, slot_key=None)
    assert compute_stats([untimed]).expected == 0
    windowed = occ("w", "run", DONE, start=None, window_start="08:00", window_end="10:00")
    assert compute_stats([windowed]).expected == 1


def test_compute_stats_does_not_mutate_input():
    rows = sample_snapshot().occurrences
    before = list(rows)
    compute_stats(rows)
    assert rows == before


def test_select_filters():
    snapshot = sample_snapshot()
    assert len(select_occurrences_in_range(snapshot, MONDAY, MONDAY)) == 4
    assert [o.id for o in select_occurrences_in_range(snapshot, MONDAY, TUESDAY, action_ids=["read"])] == ["3", "4"]
    assert [o.id for o in select_occurrences_in_range(snapshot, MONDAY, TUESDAY, category_id="health")] == ["1", "2", "6"]
    assert select_occurrences_in_range(snapshot, "bad", TUESDAY) == []


def test_daily_stats_include_empty_days():
    by_date, totals = compute_daily_stats(sample_snapshot(), MONDAY, date(2026, 3, 4))
    assert list(by_date) == [MONDAY, TUESDAY, date(2026, 3, 4)]
    assert by_date[MONDAY].expected == 3
    assert by_date[date(2026, 3, 4)].completion_rate == 0.0
    assert totals.expected == 5
    assert totals.done == 1


def test_action_and_category_stats():
    snapshot = sample_snapshot()
    by_action = compute_action_stats(snapshot, MONDAY, TUESDAY)
    assert list(by_action) == ["loose", "read", "run"]
    assert by_action["run"].expected == 2
    assert by_action["run"].completion_rate == 0.5

    by_category = compute_category_stats(snapshot, MONDAY, TUESDAY)
    assert list(by_category) == ["health", "learning"]
    assert by_category["learning"].canceled == 1


def test_window_bounds():
    assert window_bounds("7d", TUESDAY) == (date(2026, 2, 25), TUESDAY)
    assert window_bounds("unknown", TUESDAY) == (TUESDAY, TUESDAY)
