from datetime import date, datetime

from occurrence_engine.timeutil import (
    add_minutes,
    build_window_dates,
    coerce_date,
    combine,
    date_range,
    format_time,
    normalize_time,
    overlaps,
    parse_time,
    time_from_stamp,
)


def test_parse_and_format_round_clock_values():
    assert parse_time("09:30") == 570
    assert parse_time(" 00:00 ") == 0
    assert format_time(1439) == "23:59"
    assert normalize_time("7:05") is None


def test_parse_time_rejects_out_of_range_values():
    assert parse_time("24:00") is None
    assert parse_time("12:60") is None
    assert parse_time(None) is None
    assert format_time(24 * 60) is None
    assert format_time(-1) is None


def test_add_minutes_stays_inside_the_day():
    assert add_minutes("09:00", 30) == "09:30"
    assert add_minutes("23:45", 30) is None


def test_overlap_is_half_open():
    assert overlaps(540, 60, 570, 60)
    assert not overlaps(540, 60, 600, 30)
    assert not overlaps(600, 30, 540, 60)
    assert overlaps(540, 180, 600, 60)


def test_time_from_stamp_extracts_clock():
    assert time_from_stamp("2026-03-02T07:45") == "07:45"
    assert time_from_stamp("2026-03-02") is None


def test_coerce_date_accepts_common_shapes():
    assert coerce_date("2026-03-02") == date(2026, 3, 2)
    assert coerce_date(datetime(2026, 3, 2, 8, 0)) == date(2026, 3, 2)
    assert coerce_date("not a date") is None
    assert coerce_date(None) is None


def test_date_helpers():
    assert date_range(date(2026, 3, 2), date(2026, 3, 4)) == [date(2026, 3, 2), date(2026, 3, 3), date(2026, 3, 4)]
    assert date_range(date(2026, 3, 4), date(2026, 3, 2)) == []
    assert len(build_window_dates(date(2026, 3, 2), 7)) == 7
    assert build_window_dates(date(2026, 3, 2), 0) == []
    assert combine(date(2026, 3, 2), "09:15") == datetime(2026, 3, 2, 9, 15)
