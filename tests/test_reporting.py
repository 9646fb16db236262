import csv
import io
from datetime import date, datetime

import pytest

from occurrence_engine.reporting import build_report, completion_trend, export_report_to_csv
from occurrence_engine.schema import DONE, MISSED, PLANNED, Action, Occurrence, Snapshot

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
GENERATED = datetime(2026, 3, 4, 7, 30)


def occ(occ_id: str, action_id: str, status: str, day: date) -> Occurrence:
    return Occurrence(id=occ_id, action_id=action_id, date=day, start="09:00", slot_key="09:00", status=status)


def sample_snapshot() -> Snapshot:
    return Snapshot(
        actions=[Action(id="run", category_id="health", title="Morning run"), Action(id="read", category_id="learning")],
        occurrences=[
            occ("1", "run", DONE, MONDAY),
            occ("2", "read", MISSED, MONDAY),
            occ("3", "run", DONE, TUESDAY),
            occ("4", "read", PLANNED, TUESDAY),
        ],
    )


def test_build_report_sections():
    report = build_report(sample_snapshot(), MONDAY, TUESDAY, generated_at=GENERATED)
    assert report["meta"]["generated_at"] == "2026-03-04T07:30:00"
    assert report["totals"]["expected"] == 4
    assert report["totals"]["done"] == 2
    assert [row["date"] for row in report["by_date"]] == ["2026-03-02", "2026-03-03"]
    assert [row["action_id"] for row in report["by_action"]] == ["read", "run"]
    assert report["by_action"][1]["title"] == "Morning run"
    assert [row["category_id"] for row in report["by_category"]] == ["health", "learning"]


def test_build_report_is_deterministic():
    first = build_report(sample_snapshot(), MONDAY, TUESDAY, generated_at=GENERATED)
    second = build_report(sample_snapshot(), MONDAY, TUESDAY, generated_at=GENERATED)
    assert first == second


def test_inverted_range_gives_empty_report():
    report = build_report(sample_snapshot(), TUESDAY, MONDAY, generated_at=GENERATED)
    assert report["by_date"] == []
    assert report["totals"]["completion_rate"] == 0.0


def test_csv_export_has_score_percentage():
    report = build_report(sample_snapshot(), MONDAY, TUESDAY, generated_at=GENERATED)
    exported = export_report_to_csv(report)
    assert exported["actions"].splitlines()[0].startswith("action_id,title,category_id,")
    daily = list(csv.DictReader(io.StringIO(exported["daily"])))
    assert daily[0]["score_pct"] == "50"
    actions = list(csv.DictReader(io.StringIO(exported["actions"])))
    assert actions[1]["action_id"] == "run"
    assert actions[1]["score_pct"] == "100"


def test_completion_trend():
    rows = [
        {"expected": 2, "completion_rate": 0.0},
        {"expected": 0, "completion_rate": 0.0},
        {"expected": 2, "completion_rate": 0.5},
        {"expected": 2, "completion_rate": 1.0},
    ]
    trend = completion_trend(rows)
    assert trend["days"] == 3
    assert trend["mean"] == pytest.approx(0.5)
    assert trend["slope"] == pytest.approx(0.5)
    assert completion_trend([]) == {"days": 0, "mean": 0.0, "std": 0.0, "slope": 0.0}
