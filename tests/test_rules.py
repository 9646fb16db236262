from dataclasses import replace
from datetime import date, datetime

from occurrence_engine.rules import build_rules_from_action, build_source_key, list_active_rules, sync_rules_for_actions
from occurrence_engine.schema import ANYTIME, ONE_OFF, Action, Schedule, SlotRange, Snapshot

NOW = datetime(2026, 3, 1, 8, 0)
LATER = datetime(2026, 3, 2, 8, 0)


def sample_action(**overrides) -> Action:
    values = {
        "id": "run",
        "days_of_week": (1, 3, 5),
        "time_mode": "FIXED",
        "start_time": "09:00",
        "duration_minutes": 30,
    }
    values.update(overrides)
    return Action(**values)


def test_fixed_action_gives_one_fixed_rule():
    rules = build_rules_from_action(sample_action())
    assert len(rules) == 1
    rule = rules[0]
    assert rule.kind == "recurring"
    assert rule.time_type == "fixed"
    assert rule.start_time == "09:00"
    assert rule.days_of_week == (1, 3, 5)
    assert rule.source_key == build_source_key(rule)
    assert rule.id.startswith("rule_")


def test_source_key_is_stable_and_content_sensitive():
    first = build_rules_from_action(sample_action())[0]
    again = build_rules_from_action(sample_action())[0]
    moved = build_rules_from_action(sample_action(start_time="10:00"))[0]
    assert first.source_key == again.source_key
    assert first.id == again.id
    assert first.source_key != moved.source_key


def test_weekly_table_gives_one_rule_per_slot():
    action = sample_action(
        days_of_week=(),
        weekly_slots={1: (SlotRange("09:00", "10:00"),), 3: (SlotRange("18:00", "18:45"), SlotRange("20:00"))},
    )
    rules = build_rules_from_action(action)
    assert [(r.days_of_week, r.start_time, r.duration_minutes) for r in rules] == [
        ((1,), "09:00", 60),
        ((3,), "18:00", 45),
        ((3,), "20:00", 30),
    ]


def test_slots_mode_gives_one_rule_per_slot():
    action = sample_action(time_mode="SLOTS", start_time=None, schedule=Schedule(time_slots=("07:00", "19:00")))
    rules = build_rules_from_action(action)
    assert [rule.start_time for rule in rules] == ["07:00", "19:00"]


def test_window_and_untimed_actions_give_window_rules():
    window = build_rules_from_action(
        sample_action(time_mode="WINDOW", start_time=None, window_start="19:00", window_end="22:00")
    )
    assert window[0].time_type == "window"
    assert (window[0].window_start, window[0].window_end) == ("19:00", "22:00")
    untimed = build_rules_from_action(sample_action(time_mode=None, start_time=None))
    assert untimed[0].time_type == "window"
    assert untimed[0].window_start is None


def test_one_off_and_anytime():
    one_off = build_rules_from_action(sample_action(kind=ONE_OFF, days_of_week=(), one_off_date=date(2026, 3, 4)))
    assert one_off[0].kind == "one_time"
    assert one_off[0].start_date == date(2026, 3, 4)
    assert build_rules_from_action(sample_action(kind=ONE_OFF, days_of_week=())) == []
    assert build_rules_from_action(sample_action(kind=ANYTIME)) == []


def test_sync_is_idempotent():
    snapshot = Snapshot(actions=[sample_action()])
    first = sync_rules_for_actions(snapshot, NOW)
    assert len(first.rules) == 1
    assert first.rules[0].created_at == NOW
    assert sync_rules_for_actions(first, LATER) is first


def test_sync_deactivates_stale_rules_and_reactivates_on_match():
    first = sync_rules_for_actions(Snapshot(actions=[sample_action()]), NOW)
    original = first.rules[0]

    edited = sync_rules_for_actions(replace(first, actions=[sample_action(start_time="10:00")]), LATER)
    assert len(edited.rules) == 2
    assert edited.rules[0].is_active is False
    assert edited.rules[0].updated_at == LATER
    assert edited.rules[1].is_active is True

    reverted = sync_rules_for_actions(replace(edited, actions=[sample_action()]), LATER)
    assert len(reverted.rules) == 2
    assert reverted.rules[0].id == original.id
    assert reverted.rules[0].is_active is True
    assert reverted.rules[0].created_at == NOW
    assert [rule.id for rule in list_active_rules(reverted)] == [original.id]


def test_sync_limits_to_requested_actions():
    snapshot = Snapshot(actions=[sample_action(), sample_action(id="read")])
    synced = sync_rules_for_actions(snapshot, NOW, action_ids=["read"])
    assert [rule.action_id for rule in synced.rules] == ["read"]
    assert list_active_rules(synced, ["run"]) == []
