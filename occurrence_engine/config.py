"""Engine configuration.

Every tunable constant of the planner, the conflict resolver and the
missed-detection pass lives here. Values can be overridden from a YAML
file; unknown keys are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class EngineConfig:
    """Tunable constants for materialization and placement."""

    window_days: int = 14
    lookback_days: int = 7
    horizon_days: int = 14
    day_start: str = "05:00"
    day_end: str = "22:00"
    search_step_minutes: int = 15
    default_duration_minutes: int = 30
    default_start: str = "09:00"
    default_window_start: str = "00:00"
    default_window_end: str = "23:59"
    missed_grace_minutes: int = 0  # extra minutes after the end instant before "missed"
    diagnostics: bool = True


DEFAULT_CONFIG = EngineConfig()


def _build(data: dict[str, Any]) -> EngineConfig:
    valid = {f.name for f in fields(EngineConfig)}
    filtered = {k: v for k, v in data.items() if k in valid}
    return EngineConfig(**filtered)


def load_config(config_path: Path) -> EngineConfig:
    """Load engine configuration from a YAML file.

    Args:
        config_path: Path to the YAML document. A top-level ``engine``
            mapping is used when present, otherwise the document itself.

    Returns:
        Populated EngineConfig.

    Raises:
        FileNotFoundError: If config file does not exist.
        yaml.YAMLError: If YAML is malformed.
    """
    raw = yaml.safe_load(Path(config_path).read_text())
    if not isinstance(raw, dict):
        return EngineConfig()
    section = raw.get("engine", raw)
    if not isinstance(section, dict):
        return EngineConfig()
    return _build(section)
