"""Schema migration: seed recurrence rules from legacy actions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from occurrence_engine.config import DEFAULT_CONFIG, EngineConfig
from occurrence_engine.planner import regenerate_window_from_rules
from occurrence_engine.rules import sync_rules_for_actions
from occurrence_engine.schema import Snapshot

logger = logging.getLogger(__name__)


def _rule_state(snapshot: Snapshot) -> dict[str, set[tuple[str, str, bool]]]:
    state: dict[str, set[tuple[str, str, bool]]] = {}
    for rule in snapshot.rules:
        if rule is None or not rule.action_id:
            continue
        state.setdefault(rule.action_id, set()).add((rule.id, rule.source_key, rule.is_active))
    return state


def seed_rules_and_regenerate(
    snapshot: Snapshot,
    now: datetime,
    from_date=None,
    to_date=None,
    action_ids: Optional[Iterable[str]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Snapshot:
    """Upsert rules for every action and regenerate those whose rules changed.

    Safe to run on every startup: a second pass finds the same source keys,
    leaves the rule list untouched and regenerates nothing.

    Args:
        snapshot: Current state.
        now: Caller-supplied current instant.
        from_date: First day of the regeneration range.
        to_date: Last day of the regeneration range.
        action_ids: Restrict the pass to these actions.
        config: Engine configuration.

    Returns:
        The migrated snapshot, or the input itself when already current.
    """
    if not isinstance(now, datetime):
        return snapshot
    before = _rule_state(snapshot)
    synced = sync_rules_for_actions(snapshot, now, action_ids, config)
    if synced is snapshot:
        return snapshot

    after = _rule_state(synced)
    affected = sorted(aid for aid in set(before) | set(after) if before.get(aid) != after.get(aid))
    result = synced
    for action_id in affected:
        result = regenerate_window_from_rules(result, action_id, now, from_date, to_date, config)
    logger.info("Seeded rules for %d actions", len(affected))
    return result
