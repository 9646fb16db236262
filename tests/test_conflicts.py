from datetime import date

from occurrence_engine.config import EngineConfig
from occurrence_engine.conflicts import (
    classify_occurrence,
    resolve_exact,
    resolve_nearest,
    resolve_window_conflicts_for_day,
    resolve_window_gap,
)
from occurrence_engine.schema import DONE, NO_TIME_SLOT, WINDOW, Occurrence
from occurrence_engine.timeutil import parse_time

DAY = date(2026, 3, 2)


def fixed(occ_id: str, start: str, duration: int, day: date = DAY) -> Occurrence:
    return Occurrence(id=occ_id, action_id=occ_id, date=day, start=start, slot_key=start, duration_minutes=duration)


def window_item(occ_id: str, window_start: str, window_end: str, duration: int) -> Occurrence:
    return Occurrence(
        id=occ_id,
        action_id=occ_id,
        date=DAY,
        slot_key=NO_TIME_SLOT,
        duration_minutes=duration,
        time_type=WINDOW,
        window_start=window_start,
        window_end=window_end,
    )


def test_window_gap_opens_between_fixed_items():
    placed = resolve_window_gap(DAY, [fixed("a", "09:00", 60), fixed("b", "11:00", 60)], window_item("w", "10:00", "12:00", 30))
    assert placed.resolved_start == "10:00"
    assert placed.conflict is False
    assert placed.start is None


def test_window_gap_fails_when_fixed_item_covers_window():
    placed = resolve_window_gap(DAY, [fixed("a", "09:00", 180)], window_item("w", "10:00", "11:00", 60))
    assert placed.resolved_start is None
    assert placed.conflict is True


def test_window_narrower_than_duration_never_places():
    narrow = window_item("w", "10:00", "10:30", 60)
    alone = resolve_window_gap(DAY, [], narrow)
    with_later_fixed = resolve_window_gap(DAY, [fixed("a", "14:00", 60)], narrow)
    assert (alone.resolved_start, alone.conflict) == (None, True)
    assert (with_later_fixed.resolved_start, with_later_fixed.conflict) == (None, True)


def test_window_gap_is_idempotent():
    fixed_items = [fixed("a", "09:00", 60), fixed("b", "11:00", 60)]
    first = resolve_window_gap(DAY, fixed_items, window_item("w", "10:00", "12:00", 30))
    second = resolve_window_gap(DAY, fixed_items, first)
    assert second is first


def test_exact_never_relocates():
    busy = [fixed("a", "09:00", 60)]
    assert resolve_exact(busy, DAY, "09:30", 30).start == "09:30"
    assert resolve_exact(busy, DAY, "09:30", 30).conflict is True
    assert resolve_exact(busy, DAY, "10:00", 30).conflict is False
    assert resolve_exact([], DAY, "09:30", 30).start == "09:30"


def test_exact_ignores_other_days():
    busy = [fixed("a", "09:00", 60, day=date(2026, 3, 3))]
    assert resolve_exact(busy, DAY, "09:00", 30).conflict is False


def test_nearest_keeps_free_preferred_time():
    placement = resolve_nearest([fixed("a", "12:00", 60)], DAY, "09:00", 30)
    assert placement.start == "09:00"
    assert placement.conflict is False


def test_nearest_scans_later_before_earlier():
    placement = resolve_nearest([fixed("a", "09:00", 15)], DAY, "09:00", 15)
    assert placement.start == "09:15"
    assert placement.conflict is False


def test_nearest_falls_back_earlier_when_later_is_busy():
    busy = [fixed("a", "09:00", 30), fixed("b", "09:30", 600)]
    placement = resolve_nearest(busy, DAY, "09:00", 30)
    assert placement.start == "08:30"


def test_nearest_stays_inside_day_bounds():
    busy = [fixed("a", "05:00", 17 * 60)]
    placement = resolve_nearest(busy, DAY, "21:45", 15)
    assert placement.start == "21:45"
    assert placement.conflict is True

    config = EngineConfig()
    for preferred in ("05:00", "12:00", "21:45"):
        start = resolve_nearest([fixed("x", preferred, 30)], DAY, preferred, 30, config=config).start
        assert parse_time("05:00") <= parse_time(start) < parse_time("22:00")


def test_nearest_candidates_prefer_later_on_ties():
    busy = [fixed("a", "10:00", 60)]
    placement = resolve_nearest(busy, DAY, "10:00", 60, candidate_slots=["09:00", "10:00", "11:00"])
    assert placement.start == "11:00"
    assert placement.conflict is False


def test_nearest_candidates_only_return_listed_values():
    busy = [fixed("a", "09:00", 180)]
    placement = resolve_nearest(busy, DAY, "09:00", 30, candidate_slots=["09:00", "10:00"])
    assert placement.start == "09:00"
    assert placement.conflict is True


def test_day_pass_places_windows_in_window_start_order():
    occurrences = [
        fixed("a", "09:00", 60),
        window_item("w2", "10:00", "12:00", 60),
        window_item("w1", "09:00", "12:00", 60),
    ]
    placed = resolve_window_conflicts_for_day(occurrences, DAY)
    by_id = {occ.id: occ for occ in placed}
    assert by_id["w1"].resolved_start == "10:00"
    assert by_id["w2"].resolved_start == "11:00"
    assert resolve_window_conflicts_for_day(placed, DAY) is placed


def test_day_pass_ignores_terminal_rows():
    done = Occurrence(id="a", action_id="a", date=DAY, start="10:00", duration_minutes=60, status=DONE)
    occurrences = [done, window_item("w", "10:00", "11:00", 60)]
    placed = resolve_window_conflicts_for_day(occurrences, DAY)
    assert placed[1].resolved_start == "10:00"


def test_classification():
    assert classify_occurrence(fixed("a", "09:00", 30)) == "fixed"
    assert classify_occurrence(window_item("w", "10:00", "11:00", 30)) == "window"
    assert classify_occurrence(Occurrence(id="n", action_id="n", date=DAY)) == "anytime"
