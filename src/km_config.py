"""Bridge configuration loader for MaestroBridge.

Loads runtime settings from configs/maestro_bridge.yaml: which osascript
binary to run, the Keyboard Maestro application names, where the Engine
and Editor logs live, and where staged plist payloads are written.

Usage:
    from km_config import get_config

    cfg = get_config()
    cfg.engine_log_path
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from paths import BRIDGE_CONFIG_PATH, EDITOR_LOG_PATH, ENGINE_LOG_PATH

CONFIG_ENV_VAR = "MAESTRO_BRIDGE_CONFIG"


@dataclass
class BridgeConfig:
    """Runtime settings for the Keyboard Maestro bridge."""
    osascript: str = "osascript"
    engine_app: str = "Keyboard Maestro Engine"
    editor_app: str = "Keyboard Maestro"
    engine_log_path: Path = ENGINE_LOG_PATH
    editor_log_path: Path = EDITOR_LOG_PATH
    scratch_dir: Path | None = None  # None → tempfile.gettempdir()
    payload_prefix: str = "km_payload_"
    log_lines: int = 100
    error_summary_lines: int = 5000
    error_summary_hours: float = 24.0
    recent_error_limit: int = 10
    log_level: str = "INFO"


_PATH_KEYS = {"engine_log_path", "editor_log_path", "scratch_dir"}
_INT_KEYS = {"log_lines", "error_summary_lines", "recent_error_limit"}


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _PATH_KEYS:
        return Path(os.path.expanduser(str(value)))
    if key in _INT_KEYS:
        return int(value)
    if key == "error_summary_hours":
        return float(value)
    return str(value)


def load_config(config_path: str | Path | None = None) -> BridgeConfig:
    """Load bridge settings from YAML.

    Resolution order: explicit path, then $MAESTRO_BRIDGE_CONFIG, then
    configs/maestro_bridge.yaml. A missing default file yields the built-in
    defaults; a missing explicit file raises FileNotFoundError.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
        ValueError: If the file is not a mapping or has unknown keys.
    """
    explicit = config_path is not None or bool(os.environ.get(CONFIG_ENV_VAR))
    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or BRIDGE_CONFIG_PATH)

    if not path.exists():
        if explicit:
            raise FileNotFoundError(f"Bridge config not found: {path}")
        return BridgeConfig()

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return BridgeConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Bridge config must be a mapping, got {type(raw).__name__}")

    section = raw.get("bridge", raw)
    if not isinstance(section, dict):
        raise ValueError("'bridge' section must be a mapping")

    known = {f.name for f in fields(BridgeConfig)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ValueError(f"Unknown bridge config keys: {', '.join(unknown)}")

    kwargs = {}
    for key, value in section.items():
        coerced = _coerce(key, value)
        if coerced is None and key != "scratch_dir":
            continue
        kwargs[key] = coerced
    return BridgeConfig(**kwargs)


_CONFIG: BridgeConfig | None = None


def get_config() -> BridgeConfig:
    """Return the process-wide config, loading it on first use."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def reset_config(config: BridgeConfig | None = None) -> None:
    """Replace (or clear) the cached config. Used by tests and the CLI."""
    global _CONFIG
    _CONFIG = config
