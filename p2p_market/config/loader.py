# p2p_market/config/loader.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from p2p_market.config import project_rules as R

logger = logging.getLogger(__name__)


def _coerce(name: str, value: Any) -> Any:
    """
    Cast a YAML value to the type of the current rule.
    bool is checked before int because bool is an int subclass.
    """
    current = getattr(R, name)
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        raise ValueError(f"Rule {name} expects a boolean, got {value!r}")
    if isinstance(current, int):
        try:
            out = int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Rule {name} expects an integer, got {value!r}") from e
        if out <= 0:
            raise ValueError(f"Rule {name} must be > 0, got {out}")
        return out
    return value


def load_rules_yaml(path: str | Path) -> Dict[str, Any]:
    """
    Loads rule overrides from YAML.
    - top-level mapping of RULE_NAME: value (case-insensitive keys)
    - unknown keys are rejected so a typo never silently does nothing
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Rules YAML not found: {p}")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Rules YAML must be a mapping: {p}")

    overrides: Dict[str, Any] = {}
    for key, value in raw.items():
        name = str(key).strip().upper()
        if name not in R.OVERRIDABLE_RULES:
            raise ValueError(f"Unknown rule in {p}: {key}")
        overrides[name] = _coerce(name, value)
    return overrides


def apply_rules_overrides(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """
    Overlay YAML rules onto project_rules. Path defaults to $P2P_RULES_YAML;
    with neither set this is a no-op.
    """
    if path is None:
        path = os.environ.get("P2P_RULES_YAML")
    if not path:
        return {}

    overrides = load_rules_yaml(path)
    for name, value in overrides.items():
        setattr(R, name, value)
        logger.info("rule override %s=%r (from %s)", name, value, path)
    return overrides
