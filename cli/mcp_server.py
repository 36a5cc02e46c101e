#!/usr/bin/env python3
"""
MaestroBridge MCP Server — structured tool access to Keyboard Maestro.

Exposes macro inspection and editing, variables, and Engine log analysis
as MCP tools. Every tool drives Keyboard Maestro through generated
AppleScript and always answers with text: results on success,
"Error: …" on failure.

Install:
    pip install -e .

Run standalone (for testing):
    python cli/mcp_server.py

Configure in an MCP client (e.g. project .mcp.json):
    {
      "mcpServers": {
        "keyboard-maestro": {
          "command": "python",
          "args": ["cli/mcp_server.py"],
          "env": {}
        }
      }
    }

Macro identifiers accept a name or a UID. Names are not unique: when a
name collides with another macro's name or UID, the first match wins.
Use km_resolve_macro to check, and pass UIDs for edits.
"""

from __future__ import annotations

import inspect
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

# Project paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"

# Ensure src/ is importable
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

try:
    from mcp.server.fastmcp import FastMCP
except ImportError:
    print("Error: mcp package not installed. Run: pip install mcp", file=sys.stderr)
    sys.exit(1)

import action_templates
import km_logs
import km_macros
import km_variables
from km_config import get_config
from km_errors import BridgeError
from result_decoder import to_json

logger = logging.getLogger("maestro_bridge")

_MCP_INSTRUCTIONS = (
    "Keyboard Maestro bridge. Inspect and edit macros, groups, actions and "
    "triggers, manage variables, and read Engine logs. Actions and triggers "
    "are addressed by 1-based position; positions shift after inserts, "
    "deletes and moves, so re-list before chaining edits. Prefer UIDs over "
    "names for edits."
)


def _build_mcp_server() -> FastMCP:
    """Instantiate FastMCP across mcp package versions."""
    try:
        sig = inspect.signature(FastMCP.__init__)
        if "instructions" in sig.parameters:
            return FastMCP("keyboard-maestro", instructions=_MCP_INSTRUCTIONS)
        if "description" in sig.parameters:
            return FastMCP("keyboard-maestro", description=_MCP_INSTRUCTIONS)
    except (TypeError, ValueError):
        pass
    return FastMCP("keyboard-maestro")


mcp = _build_mcp_server()


# ── Helpers ──────────────────────────────────────────────────────────

def _respond(fn: Callable, *args, as_json: bool = False) -> str:
    """Call a bridge operation and turn any failure into an error payload."""
    try:
        result = fn(*args)
    except BridgeError as exc:
        logger.info("%s failed: %s", getattr(fn, "__name__", fn), exc)
        return f"Error: {exc}"
    except Exception as exc:
        logger.exception("Unexpected failure in %s", getattr(fn, "__name__", fn))
        return f"Error: {exc}"
    return to_json(result) if as_json else result


def _optional(value: str | None) -> str | None:
    return value if value else None


# ── Log Analysis Tools ───────────────────────────────────────────────

@mcp.tool()
def km_get_errors(hours: float = 24) -> str:
    """Get recent errors and failures from the Keyboard Maestro Engine log.

    Returns errors grouped by macro with counts, the latest message and
    timestamp per macro, and the 10 most recent errors overall.

    Args:
        hours: How many hours back to look for errors (default: 24)
    """
    return _respond(km_logs.get_error_summary, hours, as_json=True)


@mcp.tool()
def km_get_log(
    lines: int = 100,
    errors_only: bool = False,
    macro_filter: str | None = None,
    hours: float | None = None,
) -> str:
    """Get parsed log entries from the Keyboard Maestro Engine log.

    Args:
        lines: Number of most recent lines to read (default: 100)
        errors_only: Only return error entries
        macro_filter: Filter to a macro name (case-insensitive partial match)
        hours: Only return entries from the last N hours
    """
    def _read():
        since = datetime.now() - timedelta(hours=hours) if hours is not None else None
        return km_logs.read_engine_log(
            lines=lines,
            errors_only=errors_only,
            since=since,
            macro_filter=_optional(macro_filter),
        )
    return _respond(_read, as_json=True)


@mcp.tool()
def km_get_editor_log(lines: int = 100) -> str:
    """Get parsed entries from the Keyboard Maestro Editor log.

    Args:
        lines: Number of most recent lines to read (default: 100)
    """
    return _respond(km_logs.read_editor_log, lines, as_json=True)


# ── Macro Management Tools ───────────────────────────────────────────

@mcp.tool()
def km_list_macros() -> str:
    """List all macros with their names, UIDs, enabled state and group."""
    return _respond(km_macros.list_macros, as_json=True)


@mcp.tool()
def km_search_macros(query: str) -> str:
    """Search for macros whose name contains the query. Returns names and UIDs.

    Args:
        query: Search query string
    """
    return _respond(km_macros.search_macros, query, as_json=True)


@mcp.tool()
def km_get_macro(identifier: str) -> str:
    """Get name, UID and enabled state of a macro.

    Args:
        identifier: Macro name or UID
    """
    return _respond(km_macros.get_macro, identifier, as_json=True)


@mcp.tool()
def km_resolve_macro(identifier: str) -> str:
    """Resolve a macro name or UID to exactly one macro.

    Fails when nothing matches, or when the identifier matches several
    macros (duplicate names, or a name equal to another macro's UID).

    Args:
        identifier: Macro name or UID
    """
    return _respond(km_macros.resolve_macro, identifier, as_json=True)


@mcp.tool()
def km_get_macro_xml(identifier: str) -> str:
    """Get the full XML definition of a macro.

    Args:
        identifier: Macro name or UID
    """
    return _respond(km_macros.get_macro_xml, identifier)


@mcp.tool()
def km_create_macro(
    name: str,
    action_xml: str | None = None,
    group_name: str | None = None,
) -> str:
    """Create a new macro. Optionally add an initial action and choose its group.

    Args:
        name: Name for the new macro
        action_xml: Optional plist XML for an initial action, e.g.
            <dict><key>MacroActionType</key><string>DisplayLargeText</string><key>Text</key><string>Hello</string></dict>
        group_name: Optional group name or UID (defaults to the Global Macro Group)
    """
    return _respond(km_macros.create_macro, name, _optional(action_xml), _optional(group_name))


@mcp.tool()
def km_clone_macro(identifier: str, new_name: str | None = None) -> str:
    """Duplicate an existing macro, optionally giving the copy a new name.

    Args:
        identifier: The macro to duplicate (name or UID)
        new_name: Optional name for the new macro
    """
    return _respond(km_macros.duplicate_macro, identifier, _optional(new_name))


@mcp.tool()
def km_rename_macro(identifier: str, new_name: str) -> str:
    """Rename a macro. Its UID does not change.

    Args:
        identifier: Macro name or UID
        new_name: New name
    """
    return _respond(km_macros.rename_macro, identifier, new_name)


@mcp.tool()
def km_delete_macro(identifier: str) -> str:
    """Delete a macro by name or UID. WARNING: This cannot be undone!

    Args:
        identifier: Macro name or UID to delete
    """
    return _respond(km_macros.delete_macro, identifier)


@mcp.tool()
def km_enable_macro(identifier: str, enabled: bool) -> str:
    """Enable or disable a macro.

    Args:
        identifier: Macro name or UID
        enabled: Whether to enable (true) or disable (false) the macro
    """
    return _respond(km_macros.set_macro_enabled, identifier, enabled)


@mcp.tool()
def km_run_macro(identifier: str, parameter: str | None = None) -> str:
    """Execute a macro by name or UID.

    Args:
        identifier: Macro name or UID to execute
        parameter: Optional parameter to pass to the macro
    """
    return _respond(km_macros.execute_macro, identifier, _optional(parameter))


@mcp.tool()
def km_move_macro(macro_identifier: str, group_identifier: str) -> str:
    """Move a macro to a different macro group.

    Args:
        macro_identifier: Macro name or UID to move
        group_identifier: Target group name or UID
    """
    return _respond(km_macros.move_macro_to_group, macro_identifier, group_identifier)


@mcp.tool()
def km_manage_group(
    action: str,
    identifier: str | None = None,
    enabled: bool | None = None,
) -> str:
    """Manage macro groups: create, delete, toggle, list.

    Args:
        action: One of "create", "delete", "toggle", "list"
        identifier: Group name (create) or name/UID (delete, toggle)
        enabled: Enable/disable state (required for toggle)
    """
    if action == "list":
        return _respond(km_macros.list_groups, as_json=True)
    if action == "create":
        return _respond(km_macros.create_group, identifier)
    if action == "delete":
        return _respond(km_macros.delete_group, identifier)
    if action == "toggle":
        if enabled is None:
            return "Error: enabled is required for toggle action"
        return _respond(km_macros.toggle_group, identifier, enabled)
    return f"Error: Unknown group action: {action}"


# ── Variable Tools ───────────────────────────────────────────────────

@mcp.tool()
def km_manage_variable(action: str, name: str, value: str | None = None) -> str:
    """Manage Keyboard Maestro global variables: get, set, delete.

    Args:
        action: One of "get", "set", "delete"
        name: Variable name
        value: Value to set (required for "set")
    """
    if action == "get":
        result = _respond(km_variables.get_variable, name)
        return result or "(empty)"
    if action == "set":
        return _respond(km_variables.set_variable, name, value)
    if action == "delete":
        return _respond(km_variables.delete_variable, name)
    return f"Error: Unknown variable action: {action}"


@mcp.tool()
def km_search_variables(prefix: str) -> str:
    """Guess variables named PREFIX, PREFIX1, PREFIX2 or PREFIX3 that hold a value.

    Lossy: Keyboard Maestro cannot list variables, so only those exact names
    are probed and empty variables are never reported.

    Args:
        prefix: Variable name prefix
    """
    return _respond(km_variables.search_variables, prefix, as_json=True)


# ── Action Editing Tools ─────────────────────────────────────────────

@mcp.tool()
def km_list_actions(macro_identifier: str) -> str:
    """List all actions in a macro with their 1-based index, name and enabled state.

    Args:
        macro_identifier: Macro name or UID
    """
    return _respond(km_macros.list_actions, macro_identifier, as_json=True)


@mcp.tool()
def km_add_action(macro_identifier: str, action_xml: str) -> str:
    """Append an action to a macro from plist XML.

    The action count is checked before and after; XML that Keyboard Maestro
    silently ignores is reported as an error.

    Args:
        macro_identifier: Macro name or UID
        action_xml: Plist XML for the action, e.g.
            <dict><key>MacroActionType</key><string>Notification</string><key>Title</key><string>Hello</string></dict>
    """
    return _respond(km_macros.add_action, macro_identifier, action_xml)


@mcp.tool()
def km_get_action_xml(macro_identifier: str, action_index: int) -> str:
    """Get the XML of one action in a macro. Actions are 1-indexed.

    Args:
        macro_identifier: Macro name or UID
        action_index: Action index (1-based)
    """
    return _respond(km_macros.get_action_xml, macro_identifier, action_index)


@mcp.tool()
def km_set_action_xml(macro_identifier: str, action_index: int, xml: str) -> str:
    """Replace the XML of one action. Use km_get_action_xml first to get the current XML.

    Args:
        macro_identifier: Macro name or UID
        action_index: Action index (1-based)
        xml: New XML for the action
    """
    return _respond(km_macros.set_action_xml, macro_identifier, action_index, xml)


@mcp.tool()
def km_search_replace_action(
    macro_identifier: str,
    action_index: int,
    search_text: str,
    replace_text: str,
) -> str:
    """Search and replace literal text inside one action (case-sensitive).

    Args:
        macro_identifier: Macro name or UID
        action_index: Action index (1-based)
        search_text: Text to search for
        replace_text: Text to replace with
    """
    return _respond(
        km_macros.search_replace_in_action,
        macro_identifier, action_index, search_text, replace_text,
    )


@mcp.tool()
def km_delete_action(macro_identifier: str, action_index: int) -> str:
    """Delete one action from a macro. Later actions shift up. WARNING: This cannot be undone!

    Args:
        macro_identifier: Macro name or UID
        action_index: Action index to delete (1-based)
    """
    return _respond(km_macros.delete_action, macro_identifier, action_index)


@mcp.tool()
def km_move_action(macro_identifier: str, action_index: int, new_index: int) -> str:
    """Move an action so it ends up at new_index. Other actions shift to make room.

    A new_index past the last action moves the action to the end. Moving
    down lands the action at new_index, not before the action currently there.

    Args:
        macro_identifier: Macro name or UID
        action_index: Current 1-based index of the action to move
        new_index: New 1-based index for the action
    """
    return _respond(km_macros.move_action, macro_identifier, action_index, new_index)


# ── Trigger Editing Tools ────────────────────────────────────────────

@mcp.tool()
def km_list_triggers(macro_identifier: str) -> str:
    """List the triggers of a macro with their 1-based index and trigger type.

    Args:
        macro_identifier: Macro name or UID
    """
    return _respond(km_macros.list_triggers, macro_identifier, as_json=True)


@mcp.tool()
def km_add_trigger(macro_identifier: str, trigger_xml: str) -> str:
    """Add a trigger to a macro from plist XML. The trigger count is verified.

    Args:
        macro_identifier: Macro name or UID
        trigger_xml: Plist XML for the trigger, e.g.
            <dict><key>MacroTriggerType</key><string>TypedString</string><key>TypedString</key><string>foo</string></dict>
    """
    return _respond(km_macros.add_trigger, macro_identifier, trigger_xml)


@mcp.tool()
def km_get_trigger_xml(macro_identifier: str, trigger_index: int) -> str:
    """Get the XML of one trigger in a macro. Triggers are 1-indexed.

    Args:
        macro_identifier: Macro name or UID
        trigger_index: Trigger index (1-based)
    """
    return _respond(km_macros.get_trigger_xml, macro_identifier, trigger_index)


@mcp.tool()
def km_set_trigger_xml(macro_identifier: str, trigger_index: int, xml: str) -> str:
    """Replace the XML of one trigger. Use km_get_trigger_xml first to see the format.

    Args:
        macro_identifier: Macro name or UID
        trigger_index: Trigger index (1-based)
        xml: New XML for the trigger
    """
    return _respond(km_macros.set_trigger_xml, macro_identifier, trigger_index, xml)


@mcp.tool()
def km_delete_trigger(macro_identifier: str, trigger_index: int) -> str:
    """Delete one trigger from a macro. Triggers are 1-indexed.

    Args:
        macro_identifier: Macro name or UID
        trigger_index: Trigger index to delete (1-based)
    """
    return _respond(km_macros.delete_trigger, macro_identifier, trigger_index)


# ── High-level Action Helper Tools ───────────────────────────────────

@mcp.tool()
def km_add_notification(
    macro_identifier: str,
    title: str,
    message: str,
    subtitle: str | None = None,
) -> str:
    """Add a notification action. Simpler than km_add_action with raw XML.

    Args:
        macro_identifier: Macro name or UID
        title: Notification title
        message: Notification body text
        subtitle: Optional subtitle
    """
    return _respond(
        action_templates.add_notification_action,
        macro_identifier, title, message, _optional(subtitle),
    )


@mcp.tool()
def km_add_pause(macro_identifier: str, seconds: float) -> str:
    """Add a pause action.

    Args:
        macro_identifier: Macro name or UID
        seconds: Number of seconds to pause
    """
    return _respond(action_templates.add_pause_action, macro_identifier, seconds)


@mcp.tool()
def km_add_set_variable(macro_identifier: str, variable: str, value: str) -> str:
    """Add an action that sets a variable to text.

    Args:
        macro_identifier: Macro name or UID
        variable: Variable name to set
        value: Value to set the variable to
    """
    return _respond(action_templates.add_set_variable_action, macro_identifier, variable, value)


@mcp.tool()
def km_add_calculation(macro_identifier: str, variable: str, expression: str) -> str:
    """Add an action that sets a variable to a calculation (e.g. "Counter + 1").

    Args:
        macro_identifier: Macro name or UID
        variable: Variable name to set
        expression: Calculation expression (e.g. "Counter + 1", "Price * Quantity")
    """
    return _respond(action_templates.add_calculation_action, macro_identifier, variable, expression)


@mcp.tool()
def km_add_display_text(macro_identifier: str, title: str, text: str) -> str:
    """Add an action that displays text in a window.

    Args:
        macro_identifier: Macro name or UID
        title: Window title
        text: Text to display
    """
    return _respond(action_templates.add_display_text_action, macro_identifier, title, text)


@mcp.tool()
def km_add_if_variable_contains(
    macro_identifier: str,
    variable: str,
    contains_value: str,
    then_actions_xml: str | None = None,
    else_actions_xml: str | None = None,
) -> str:
    """Add an If-Then-Else action that checks whether a variable contains a value.

    Args:
        macro_identifier: Macro name or UID
        variable: Variable name to check
        contains_value: Value to look for
        then_actions_xml: Optional actions for the true branch: one or more
            concatenated <dict>…</dict> action elements
        else_actions_xml: Optional actions for the false branch, same format
    """
    return _respond(
        action_templates.add_if_variable_contains_action,
        macro_identifier, variable, contains_value,
        _optional(then_actions_xml), _optional(else_actions_xml),
    )


@mcp.tool()
def km_add_if_calculation(
    macro_identifier: str,
    calculation: str,
    then_actions_xml: str | None = None,
    else_actions_xml: str | None = None,
) -> str:
    """Add an If-Then-Else action that checks a calculation (e.g. "Counter >= 5").

    Args:
        macro_identifier: Macro name or UID
        calculation: Calculation condition
        then_actions_xml: Optional actions for the true branch: one or more
            concatenated <dict>…</dict> action elements
        else_actions_xml: Optional actions for the false branch, same format
    """
    return _respond(
        action_templates.add_if_calculation_action,
        macro_identifier, calculation,
        _optional(then_actions_xml), _optional(else_actions_xml),
    )


@mcp.tool()
def km_add_execute_macro(
    macro_identifier: str,
    macro_to_execute: str,
    parameter: str | None = None,
) -> str:
    """Add an action that executes another macro.

    Args:
        macro_identifier: Macro name or UID to add the action to
        macro_to_execute: Name or UID of the macro to execute (must be unambiguous)
        parameter: Optional parameter to pass to the executed macro
    """
    return _respond(
        action_templates.add_execute_macro_action,
        macro_identifier, macro_to_execute, _optional(parameter),
    )


@mcp.tool()
def km_add_shell_script(
    macro_identifier: str,
    script: str,
    save_to_variable: str | None = None,
) -> str:
    """Add an action that executes a shell script.

    Args:
        macro_identifier: Macro name or UID
        script: Shell script to execute
        save_to_variable: Optional variable name to save the script output to
    """
    return _respond(
        action_templates.add_shell_script_action,
        macro_identifier, script, _optional(save_to_variable),
    )


# ── Resources & Prompts ──────────────────────────────────────────────

@mcp.resource(
    "keyboard-maestro://errors",
    name="Recent Engine Errors",
    description="Engine log errors from the configured window, grouped by macro",
    mime_type="application/json",
)
def resource_errors() -> str:
    """Resource: error summary over the default window."""
    return km_get_errors(get_config().error_summary_hours)


@mcp.prompt(
    name="km_debug_macro",
    description="Find out why a macro is failing and propose a fix to the failing action.",
)
def prompt_debug_macro(macro: str) -> str:
    return (
        f'Debug the Keyboard Maestro macro "{macro}". '
        "Run km_resolve_macro to get its UID, then km_get_log with that name as "
        "macro_filter and errors_only=true. List its actions with km_list_actions, "
        "read the failing action with km_get_action_xml, and propose a corrected "
        "XML for km_set_action_xml. Ask before applying it."
    )


# ── Entry Point ──────────────────────────────────────────────────────

def configure_logging(level: str | None = None) -> None:
    """Log to stderr; stdout carries the MCP protocol."""
    logging.basicConfig(
        level=getattr(logging, (level or get_config().log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


if __name__ == "__main__":
    configure_logging()
    logger.info("Keyboard Maestro MCP server running on stdio")
    mcp.run()
