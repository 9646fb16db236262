"""Demo script for occurrence-engine."""

import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from occurrence_engine.adapters.json_adapter import parse
from occurrence_engine.execution import next_planned_occurrence, resolve_executable_occurrence
from occurrence_engine.migration import seed_rules_and_regenerate
from occurrence_engine.occurrences import set_status_by_id
from occurrence_engine.reporting import build_report


def main() -> None:
    snapshot = parse("examples/sample_snapshot.json")
    now = datetime(2026, 3, 4, 8, 0)
    snapshot = seed_rules_and_regenerate(snapshot, now, "2026-03-02", "2026-03-08")
    print("Rules:", len(snapshot.rules), "Occurrences:", len(snapshot.occurrences))

    eligible = [action.id for action in snapshot.actions]
    picked = resolve_executable_occurrence(snapshot, now, action_ids=eligible)
    print("Execute now:", picked)
    print("Next:", next_planned_occurrence(snapshot.occurrences, now))

    if picked.occurrence_id:
        occurrences = set_status_by_id(snapshot.occurrences, picked.occurrence_id, "done", now)
        snapshot = replace(snapshot, occurrences=occurrences)
    report = build_report(snapshot, "2026-03-02", "2026-03-08", generated_at=now)
    print("Totals:", report["totals"])


if __name__ == "__main__":
    main()
