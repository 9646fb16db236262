"""Advisory consistency checks over a snapshot.

Issues are reported and logged, never repaired.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date

from occurrence_engine.config import DEFAULT_CONFIG, EngineConfig
from occurrence_engine.dedupe import effective_slot, occurrence_key
from occurrence_engine.schema import PLANNED, Snapshot

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5


@dataclass(frozen=True)
class InvariantIssue:
    kind: str
    count: int
    sample: tuple[str, ...]


def _duplicates(keys: list[str]) -> list[str]:
    counts = Counter(keys)
    return sorted(key for key, count in counts.items() if count > 1)


def _issue(kind: str, keys: list[str]) -> InvariantIssue:
    return InvariantIssue(kind=kind, count=len(keys), sample=tuple(keys[:SAMPLE_SIZE]))


def _missing_bounds(occ) -> bool:
    if occ.end or occ.window_end:
        return False
    return not (occ.start and occ.duration_minutes)


def check_invariants(
    snapshot: Snapshot, today: date, config: EngineConfig = DEFAULT_CONFIG
) -> list[InvariantIssue]:
    """Return duplicate-key, dangling-reference and missing-bounds issues.

    Args:
        snapshot: State to inspect.
        today: Caller-supplied current date; planned rows before it must
            carry an end or a window end.
        config: ``diagnostics=False`` disables the checks.

    Returns:
        Issues found, in a fixed order of kinds. Each one is also logged as
        a warning.
    """
    if not config.diagnostics:
        return []

    rules = [rule for rule in snapshot.rules if rule is not None]
    occurrences = [occ for occ in snapshot.occurrences if occ is not None]
    action_ids = {action.id for action in snapshot.actions if action is not None}
    rule_ids = {rule.id for rule in rules}
    issues: list[InvariantIssue] = []

    rule_keys = [f"{rule.action_id}::{rule.source_key}" for rule in rules if rule.action_id and rule.source_key]
    duplicates = _duplicates(rule_keys)
    if duplicates:
        issues.append(_issue("duplicate_rule_source_key", duplicates))

    rule_dates = [f"{occ.rule_id}::{occ.date.isoformat()}" for occ in occurrences if occ.rule_id and occ.date]
    duplicates = _duplicates(rule_dates)
    if duplicates:
        issues.append(_issue("duplicate_rule_date", duplicates))

    slot_keys = []
    for occ in occurrences:
        slot = effective_slot(occ)
        if occ.action_id and occ.date and slot:
            action_id, day, slot = occurrence_key(occ.action_id, occ.date, slot)
            slot_keys.append(f"{action_id}::{day.isoformat()}::{slot}")
    duplicates = _duplicates(slot_keys)
    if duplicates:
        issues.append(_issue("duplicate_occurrence_key", duplicates))

    dangling = sorted(
        {f"occurrence:{occ.id}" for occ in occurrences if occ.action_id not in action_ids}
        | {f"rule:{rule.id}" for rule in rules if rule.action_id not in action_ids}
        | {f"occurrence:{occ.id}" for occ in occurrences if occ.rule_id and occ.rule_id not in rule_ids}
    )
    if dangling:
        issues.append(_issue("dangling_reference", dangling))

    missing = [
        occ.id or f"{occ.action_id}:{occ.date}"
        for occ in occurrences
        if occ.status == PLANNED and occ.date is not None and occ.date < today and _missing_bounds(occ)
    ]
    if missing:
        issues.append(_issue("missing_bounds", missing))

    for issue in issues:
        logger.warning("Invariant %s: %d found, e.g. %s", issue.kind, issue.count, ", ".join(issue.sample))
    return issues
