"""Keyboard Maestro global variables, via the Engine.

Variables are plain text. Keyboard Maestro returns an empty string for a
variable that was never set, so "unset" and "empty" look the same from
here; deleting sets the value to %Delete%.
"""

from __future__ import annotations

import logging

from applescript import ScriptBuilder
from km_config import get_config
from km_errors import BridgeError, ValidationError, operation_context
from script_runner import run_applescript

logger = logging.getLogger(__name__)

# Suffixes probed by search_variables()
SEARCH_SUFFIXES = ("", "1", "2", "3")


def _builder() -> ScriptBuilder:
    return ScriptBuilder.from_config(get_config())


def _require_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    return name


def get_variable(name: str) -> str:
    _require_name(name)
    with operation_context(f'get variable "{name}"'):
        return run_applescript(_builder().build_get_variable(name))


def set_variable(name: str, value: str) -> str:
    _require_name(name)
    if value is None:
        raise ValidationError("value is required for set action")
    with operation_context(f'set variable "{name}"'):
        run_applescript(_builder().build_set_variable(name, value))
    return f'Variable "{name}" set successfully'


def delete_variable(name: str) -> str:
    _require_name(name)
    with operation_context(f'delete variable "{name}"'):
        run_applescript(_builder().build_delete_variable(name))
    return f'Variable "{name}" deleted successfully'


def search_variables(prefix: str) -> list[str]:
    """Guess variable names by probing `prefix`, `prefix1` … `prefix3`.

    This is lossy: Keyboard Maestro cannot enumerate variables, so only
    those exact names are tried, and a variable holding an empty string is
    indistinguishable from one that does not exist. Probe failures are
    logged and skipped.
    """
    _require_name(prefix)
    found = []
    for suffix in SEARCH_SUFFIXES:
        candidate = f"{prefix}{suffix}"
        try:
            value = get_variable(candidate)
        except BridgeError as exc:
            logger.debug("Variable probe %r failed: %s", candidate, exc)
            continue
        if value:
            found.append(candidate)
    return found
