"""Engine configuration: defaults merged with an optional ``gridcalc.yaml``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from gridcalc.viewport import (
    DEFAULT_BUFFER,
    DEFAULT_COL_COUNT,
    DEFAULT_COL_WIDTH,
    DEFAULT_ROW_COUNT,
    DEFAULT_ROW_HEIGHT,
)

CONFIG_FILENAME = "gridcalc.yaml"

DEFAULT_CONFIG = {
    "row_count": DEFAULT_ROW_COUNT,
    "col_count": DEFAULT_COL_COUNT,
    "default_row_height": DEFAULT_ROW_HEIGHT,
    "default_col_width": DEFAULT_COL_WIDTH,
    "buffer": DEFAULT_BUFFER,
    "logging_enabled": False,
    "logging_dir": None,  # default: directory holding gridcalc.yaml
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

# key -> minimum accepted value
_INT_KEYS = {
    "row_count": 1,
    "col_count": 1,
    "default_row_height": 1,
    "default_col_width": 1,
    "buffer": 0,
    "logging_tail_bytes": 1,
}


def load_config(path: Path | str | None = None, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Load configuration, with defaults.

    Args:
        path: A directory containing ``gridcalc.yaml`` or the YAML file
            itself.  ``None`` uses the defaults only.
        overrides: Values applied last (e.g. from CLI flags).

    Returns:
        Merged configuration dict.  Unknown keys are kept.

    Raises:
        ValueError: If a numeric setting is not an integer within range,
            or the YAML document is not a mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = _config_path(path)
    if config_path is not None and config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path}: expected a mapping at the top level")
        config.update(user_config)
        if config.get("logging_dir") is None:
            config["logging_dir"] = str(config_path.parent)
    if overrides:
        config.update(overrides)
    return validate_config(config)


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    for key, minimum in _INT_KEYS.items():
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Config key {key!r} must be an integer, got {value!r}")
        if value < minimum:
            raise ValueError(f"Config key {key!r} must be >= {minimum}, got {value}")
    return config


def _config_path(path: Path | str | None) -> Path | None:
    if path is None:
        return None
    p = Path(path)
    if p.is_dir():
        return p / CONFIG_FILENAME
    return p
