"""Configuration helpers for the trajectory tracks pipeline.

Provides YAML loading and small utilities for accessing nested configuration
values with defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence

import yaml


def load_config(path: str | Path) -> Dict[str, Any]:
    """Load a YAML configuration file; an empty file yields ``{}``."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        loaded = yaml.safe_load(fh) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config root must be a mapping, got {type(loaded).__name__}")
    return loaded


def get_nested(config: Dict[str, Any], keys: str | Sequence[str], default: Any) -> Any:
    """
    Look up ``"section.key"`` (or a key list) in the config; a missing
    section, a missing key or a non-mapping section yields ``default``.
    """

    if isinstance(keys, str):
        keys = keys.split(".")
    current: Any = config
    for key in keys:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current
