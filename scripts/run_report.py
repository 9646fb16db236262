"""Materialize a snapshot's rules and print a completion report."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from occurrence_engine.adapters import json_adapter
from occurrence_engine.config import DEFAULT_CONFIG, load_config
from occurrence_engine.invariants import check_invariants
from occurrence_engine.migration import seed_rules_and_regenerate
from occurrence_engine.reporting import build_report, completion_trend, export_report_to_csv


def main() -> None:
    parser = argparse.ArgumentParser(description="Build an occurrence-engine completion report")
    parser.add_argument("--data", required=True, help="Path to a JSON snapshot")
    parser.add_argument("--from", dest="from_date", required=True, help="First day, YYYY-MM-DD")
    parser.add_argument("--to", dest="to_date", required=True, help="Last day, YYYY-MM-DD")
    parser.add_argument("--now", help="Current instant, YYYY-MM-DDTHH:MM (defaults to the end of --to)")
    parser.add_argument("--config", help="Optional YAML engine configuration")
    parser.add_argument("--save", action="store_true", help="Write the migrated snapshot back to --data")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(Path(args.config)) if args.config else DEFAULT_CONFIG
    to_date = date.fromisoformat(args.to_date)
    now = datetime.fromisoformat(args.now) if args.now else datetime.combine(to_date, datetime.max.time())

    snapshot = json_adapter.parse(args.data)
    migrated = seed_rules_and_regenerate(snapshot, now, args.from_date, args.to_date, config=config)
    check_invariants(migrated, now.date(), config)

    report = build_report(migrated, args.from_date, args.to_date, generated_at=now)
    report["trend"] = completion_trend(report["by_date"])
    print(json.dumps(report, indent=2))

    outputs_dir = Path("outputs")
    outputs_dir.mkdir(parents=True, exist_ok=True)
    for name, text in export_report_to_csv(report).items():
        out_path = outputs_dir / f"report_{name}.csv"
        out_path.write_text(text, encoding="utf-8")
        print(f"Saved {name} rows to {out_path}")

    if args.save and migrated is not snapshot:
        json_adapter.dump(migrated, args.data)
        print(f"Saved migrated snapshot to {args.data}")


if __name__ == "__main__":
    main()
