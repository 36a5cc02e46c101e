"""
High-level action builders.
===========================
Common Keyboard Maestro actions without hand-written XML. Each builder
produces an action dict, serializes it with plistlib (which handles all
XML escaping), and appends it through km_macros.add_action(), so every
action added here is verified like any other.

Usage:
    from action_templates import add_notification_action

    add_notification_action("Daily Backup", "Backup", "Finished")
"""

from __future__ import annotations

import plistlib
from typing import Any
from xml.parsers.expat import ExpatError

import km_macros
from km_errors import ValidationError
from payload_exchange import wrap_plist


def action_plist(action: dict[str, Any]) -> str:
    """Serialize an action dict to a complete plist document.

    Raises:
        ValidationError: A value holds control characters (e.g. ESC) that
            XML plists cannot encode.
    """
    try:
        return plistlib.dumps(action, fmt=plistlib.FMT_XML).decode("utf-8")
    except ValueError as exc:
        action_type = action.get("MacroActionType", "action")
        raise ValidationError(
            f"{action_type} action contains control characters plist cannot encode: {exc}"
        ) from exc


def parse_action_fragments(fragments: str | None, name: str = "actions") -> list[dict]:
    """Parse concatenated <dict>…</dict> action fragments into a list.

    Used for the then/else branches of If-Then-Else actions. Fragments are
    checked here, before anything reaches Keyboard Maestro.
    """
    if not fragments or not fragments.strip():
        return []
    document = wrap_plist(f"<array>{fragments.strip()}</array>")
    try:
        parsed = plistlib.loads(document.encode("utf-8"))
    except (plistlib.InvalidFileException, ValueError, ExpatError) as exc:
        raise ValidationError(f"{name} is not valid action XML: {exc}") from exc
    if not all(isinstance(item, dict) for item in parsed):
        raise ValidationError(f"{name} must contain only <dict> action elements")
    return parsed


# =============================================================================
# ACTION DICTS
# =============================================================================

def notification_action(title: str, message: str, subtitle: str | None = None) -> dict:
    return {
        "MacroActionType": "Notification",
        "Title": title,
        "Subtitle": subtitle or "",
        "Text": message,
    }


def pause_action(seconds: float) -> dict:
    # Keyboard Maestro stores the pause time as text
    return {
        "MacroActionType": "Pause",
        "Time": f"{seconds:g}",
        "TimeOutAbortsMacro": True,
    }


def set_variable_action(variable: str, value: str) -> dict:
    return {
        "MacroActionType": "SetVariableToText",
        "Variable": variable,
        "Text": value,
    }


def calculation_action(variable: str, expression: str) -> dict:
    return {
        "MacroActionType": "SetVariableToCalculation",
        "Variable": variable,
        "Text": expression,
        "UseFormat": False,
    }


def display_text_action(title: str, text: str) -> dict:
    return {
        "MacroActionType": "Alert",
        "Title": title,
        "Text": text,
    }


def _if_then_else(condition: dict, then_actions: list[dict], else_actions: list[dict]) -> dict:
    return {
        "MacroActionType": "IfThenElse",
        "Conditions": {
            "ConditionList": [condition],
            "ConditionListMatch": "All",
        },
        "ThenActions": then_actions,
        "ElseActions": else_actions,
        "TimeOutAbortsMacro": True,
    }


def if_variable_contains_action(
    variable: str,
    contains_value: str,
    then_actions_xml: str | None = None,
    else_actions_xml: str | None = None,
) -> dict:
    condition = {
        "ConditionType": "Variable",
        "Variable": variable,
        "VariableConditionType": "Contains",
        "VariableValue": contains_value,
    }
    return _if_then_else(
        condition,
        parse_action_fragments(then_actions_xml, "thenActionsXml"),
        parse_action_fragments(else_actions_xml, "elseActionsXml"),
    )


def if_calculation_action(
    calculation: str,
    then_actions_xml: str | None = None,
    else_actions_xml: str | None = None,
) -> dict:
    condition = {
        "ConditionType": "Calculation",
        "Text": calculation,
    }
    return _if_then_else(
        condition,
        parse_action_fragments(then_actions_xml, "thenActionsXml"),
        parse_action_fragments(else_actions_xml, "elseActionsXml"),
    )


def execute_macro_action(macro_uid: str, parameter: str | None = None) -> dict:
    action = {
        "MacroActionType": "ExecuteMacro",
        "MacroUID": macro_uid,
        "UseParameter": bool(parameter),
        "TimeOutAbortsMacro": True,
        "Asynchronously": False,
    }
    if parameter:
        action["Parameter"] = parameter
    return action


def shell_script_action(script: str, save_to_variable: str | None = None) -> dict:
    action = {
        "MacroActionType": "ExecuteShellScript",
        "DisplayKind": "Variable" if save_to_variable else "None",
        "Text": script,
        "UseText": True,
        "TimeOutAbortsMacro": True,
        "TrimResults": True,
    }
    if save_to_variable:
        action["Variable"] = save_to_variable
    return action


# =============================================================================
# ADD HELPERS
# =============================================================================

def _add(macro_identifier: str, action: dict) -> str:
    km_macros.require_text(macro_identifier, "macroIdentifier")
    return km_macros.add_action(macro_identifier, action_plist(action))


def add_notification_action(
    macro_identifier: str, title: str, message: str, subtitle: str | None = None,
) -> str:
    km_macros.require_text(title, "title")
    km_macros.require_text(message, "message")
    return _add(macro_identifier, notification_action(title, message, subtitle))


def add_pause_action(macro_identifier: str, seconds: float) -> str:
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        raise ValidationError("seconds is required and must be a number")
    if seconds < 0:
        raise ValidationError(f"seconds must not be negative, got {seconds}")
    return _add(macro_identifier, pause_action(seconds))


def add_set_variable_action(macro_identifier: str, variable: str, value: str) -> str:
    km_macros.require_text(variable, "variable")
    if value is None:
        raise ValidationError("value is required")
    return _add(macro_identifier, set_variable_action(variable, value))


def add_calculation_action(macro_identifier: str, variable: str, expression: str) -> str:
    km_macros.require_text(variable, "variable")
    km_macros.require_text(expression, "expression")
    return _add(macro_identifier, calculation_action(variable, expression))


def add_display_text_action(macro_identifier: str, title: str, text: str) -> str:
    km_macros.require_text(title, "title")
    km_macros.require_text(text, "text")
    return _add(macro_identifier, display_text_action(title, text))


def add_if_variable_contains_action(
    macro_identifier: str,
    variable: str,
    contains_value: str,
    then_actions_xml: str | None = None,
    else_actions_xml: str | None = None,
) -> str:
    km_macros.require_text(variable, "variable")
    km_macros.require_text(contains_value, "containsValue")
    action = if_variable_contains_action(variable, contains_value, then_actions_xml, else_actions_xml)
    return _add(macro_identifier, action)


def add_if_calculation_action(
    macro_identifier: str,
    calculation: str,
    then_actions_xml: str | None = None,
    else_actions_xml: str | None = None,
) -> str:
    km_macros.require_text(calculation, "calculation")
    action = if_calculation_action(calculation, then_actions_xml, else_actions_xml)
    return _add(macro_identifier, action)


def add_execute_macro_action(
    macro_identifier: str, macro_to_execute: str, parameter: str | None = None,
) -> str:
    """Add an Execute Macro action; the target is resolved to its UID first."""
    km_macros.require_text(macro_identifier, "macroIdentifier")
    km_macros.require_text(macro_to_execute, "macroToExecute")
    target = km_macros.resolve_macro(macro_to_execute)
    return _add(macro_identifier, execute_macro_action(target.uid, parameter))


def add_shell_script_action(
    macro_identifier: str, script: str, save_to_variable: str | None = None,
) -> str:
    km_macros.require_text(script, "script")
    return _add(macro_identifier, shell_script_action(script, save_to_variable))
