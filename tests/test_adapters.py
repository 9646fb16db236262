import json
from datetime import date, datetime

import pytest

from occurrence_engine.adapters.csv_adapter import parse as parse_csv
from occurrence_engine.adapters.json_adapter import dump, parse as parse_json
from occurrence_engine.migration import seed_rules_and_regenerate


def sample_payload() -> dict:
    return {
        "actions": [
            {"id": "run", "category_id": "health", "days_of_week": [1, 3, 5], "start_time": "09:00", "duration_minutes": 30},
            {"id": "gym", "weekly_slots": {"2": [{"start": "18:00", "end": "19:00"}]}},
        ],
        "rules": [],
        "occurrences": [
            {"id": "o1", "action_id": "run", "date": "2026-03-02", "start": "09:00", "status": "done", "points": 3},
        ],
    }


def test_csv_parse_success(tmp_path):
    path = tmp_path / "history.csv"
    path.write_text(
        "action_id,date,start,status,duration_minutes,points\n"
        "run,2026-03-02,09:00,done,30,2\n"
        "run,2026-03-03,,skipped,,\n",
        encoding="utf-8",
    )
    occurrences = parse_csv(str(path))
    assert len(occurrences) == 2
    assert occurrences[0].points == 2.0
    assert occurrences[1].start is None
    assert occurrences[1].slot_key == "--:--"
    assert occurrences[0].id != occurrences[1].id


def test_csv_parse_invalid_row(tmp_path):
    path = tmp_path / "history.csv"
    path.write_text("action_id,date,status\nrun,bad,done\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Row 2"):
        parse_csv(str(path))


def test_csv_parse_invalid_status(tmp_path):
    path = tmp_path / "history.csv"
    path.write_text("action_id,date,status\nrun,2026-03-02,finished\n", encoding="utf-8")
    with pytest.raises(ValueError):
        parse_csv(str(path))


def test_json_parse_success(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(sample_payload()), encoding="utf-8")
    snapshot = parse_json(str(path))
    assert [action.id for action in snapshot.actions] == ["run", "gym"]
    assert snapshot.actions[0].days_of_week == (1, 3, 5)
    assert snapshot.actions[1].weekly_slots[2][0].end == "19:00"
    assert snapshot.occurrences[0].date == date(2026, 3, 2)
    assert snapshot.occurrences[0].points == 3.0


def test_json_parse_malformed(tmp_path):
    path = tmp_path / "snapshot.json"
    payload = sample_payload()
    payload["occurrences"].append({"id": "o2", "action_id": "run", "date": "bad"})
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(ValueError, match="Occurrence 2"):
        parse_json(str(path))


def test_json_payload_must_be_an_object(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        parse_json(str(path))


def test_dump_then_parse_keeps_materialized_state(tmp_path):
    source = tmp_path / "snapshot.json"
    source.write_text(json.dumps(sample_payload()), encoding="utf-8")
    now = datetime(2026, 3, 2, 6, 0)
    migrated = seed_rules_and_regenerate(parse_json(str(source)), now, "2026-03-02", "2026-03-08")

    target = tmp_path / "migrated.json"
    dump(migrated, str(target))
    assert parse_json(str(target)) == migrated
