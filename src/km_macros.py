"""
Keyboard Maestro macro operations.

Each operation validates its parameters, builds one AppleScript program,
runs it through osascript and decodes the output. Failures are re-raised
with the attempted operation in the message ("Failed to add action: …")
while keeping their error class.

Addressing: `identifier` parameters accept a macro (or group) name or UID
and resolve to the first entity whose name or UID equals it. Names are not
unique; resolve_macro() reports collisions explicitly.

Positions: actions and triggers are addressed by 1-based position only.
Inserting, deleting or moving one renumbers everything after it, and a
concurrent edit in the Keyboard Maestro editor can shift positions between
two calls.
"""

from __future__ import annotations

import logging

from applescript import ScriptBuilder
from km_config import get_config
from km_errors import (
    AmbiguousReferenceError,
    BridgeError,
    EntityNotFoundError,
    ValidationError,
    operation_context,
)
from payload_exchange import staged_payload
from result_decoder import (
    ActionSummary,
    GroupSummary,
    MacroRef,
    MacroSummary,
    TriggerSummary,
    decode_actions,
    decode_count,
    decode_groups,
    decode_macro_refs,
    decode_macro_summary,
    decode_macros,
    decode_triggers,
)
from script_runner import run_applescript
from verified_mutation import verify_by_diff

logger = logging.getLogger(__name__)


def _builder() -> ScriptBuilder:
    return ScriptBuilder.from_config(get_config())


# ── Validation ───────────────────────────────────────────────────────

def require_text(value, name: str) -> str:
    """Reject missing or blank string parameters."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value


def require_position(value, name: str) -> int:
    """Reject anything but a 1-based integer position."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise ValidationError(f"{name} must be 1 or greater (positions are 1-based), got {value}")
    return value


def require_bool(value, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} is required and must be true or false")
    return value


# ── Listing & lookup ─────────────────────────────────────────────────

def list_macros() -> list[MacroSummary]:
    """All macros with their UID, enabled flag and owning group."""
    with operation_context("list macros"):
        raw = run_applescript(_builder().build_list_macros())
    return decode_macros(raw)


def search_macros(query: str) -> list[MacroSummary]:
    """Macros whose name contains `query`."""
    require_text(query, "query")
    with operation_context("search macros"):
        raw = run_applescript(_builder().build_search_macros(query))
    return decode_macros(raw)


def get_macro(identifier: str) -> MacroSummary:
    require_text(identifier, "identifier")
    with operation_context("get macro"):
        raw = run_applescript(_builder().build_get_macro(identifier))
        summary = decode_macro_summary(raw)
        if summary is None:
            raise EntityNotFoundError(f'No macro named or with UID "{identifier}"')
    return summary


def resolve_macro(identifier: str) -> MacroRef:
    """Resolve a name or UID to exactly one macro.

    Raises:
        EntityNotFoundError: Nothing matched.
        AmbiguousReferenceError: Several macros share the name, or the
            identifier is one macro's name and another macro's UID.
    """
    require_text(identifier, "identifier")
    with operation_context("resolve macro"):
        raw = run_applescript(_builder().build_resolve_macro(identifier))
        refs = decode_macro_refs(raw)
        if not refs:
            raise EntityNotFoundError(f'No macro named or with UID "{identifier}"')
        if len(refs) > 1:
            matches = ", ".join(f'"{r.name}" ({r.uid})' for r in refs)
            raise AmbiguousReferenceError(
                f'"{identifier}" matches {len(refs)} macros: {matches}. Use a UID.'
            )
    return refs[0]


def get_macro_xml(identifier: str) -> str:
    require_text(identifier, "identifier")
    with operation_context("get macro XML"):
        return run_applescript(_builder().build_get_macro_xml(identifier))


# ── Macro mutations ──────────────────────────────────────────────────

def create_macro(name: str, action_xml: str | None = None, group: str | None = None) -> str:
    """Create a macro, optionally in `group`, optionally with one initial action.

    The initial action goes through add_action(), so it is verified. When it
    is rejected the macro still exists; the error says so and gives its UID.
    """
    require_text(name, "name")
    with operation_context("create macro"):
        macro_id = run_applescript(_builder().build_create_macro(name, group or None)).strip()

    if action_xml:
        try:
            add_action(macro_id, action_xml)
        except BridgeError as exc:
            raise type(exc)(
                f'Macro "{name}" was created with ID {macro_id}, '
                f"but its initial action was not added: {exc}"
            ) from exc

    return f'Macro "{name}" created successfully with ID: {macro_id}'


def duplicate_macro(identifier: str, new_name: str | None = None) -> str:
    require_text(identifier, "identifier")
    with operation_context("duplicate macro"):
        macro_id = run_applescript(_builder().build_duplicate_macro(identifier, new_name or None))
    return f'Macro "{identifier}" duplicated successfully. New ID: {macro_id.strip()}'


def rename_macro(identifier: str, new_name: str) -> str:
    require_text(identifier, "identifier")
    require_text(new_name, "newName")
    with operation_context("rename macro"):
        run_applescript(_builder().build_rename_macro(identifier, new_name))
    return f'Macro "{identifier}" renamed to "{new_name}"'


def delete_macro(identifier: str) -> str:
    require_text(identifier, "identifier")
    with operation_context("delete macro"):
        run_applescript(_builder().build_delete_macro(identifier))
    return f'Macro "{identifier}" deleted successfully'


def set_macro_enabled(identifier: str, enabled: bool) -> str:
    require_text(identifier, "identifier")
    require_bool(enabled, "enabled")
    verb = "enable" if enabled else "disable"
    with operation_context(f"{verb} macro"):
        run_applescript(_builder().build_set_macro_enabled(identifier, enabled))
    return f'Macro "{identifier}" {verb}d successfully'


def move_macro_to_group(macro_identifier: str, group_identifier: str) -> str:
    require_text(macro_identifier, "macroIdentifier")
    require_text(group_identifier, "groupIdentifier")
    with operation_context("move macro"):
        run_applescript(_builder().build_move_macro_to_group(macro_identifier, group_identifier))
    return f'Macro "{macro_identifier}" moved to group "{group_identifier}"'


def execute_macro(identifier: str, parameter: str | None = None) -> str:
    require_text(identifier, "identifier")
    with operation_context("execute macro"):
        run_applescript(_builder().build_execute_macro(identifier, parameter))
    return f'Macro "{identifier}" executed successfully'


# ── Groups ───────────────────────────────────────────────────────────

def list_groups() -> list[GroupSummary]:
    with operation_context("list groups"):
        raw = run_applescript(_builder().build_list_groups())
    return decode_groups(raw)


def create_group(name: str) -> str:
    require_text(name, "identifier")
    with operation_context("create macro group"):
        group_id = run_applescript(_builder().build_create_group(name))
    return f'Macro Group "{name}" created successfully with ID: {group_id.strip()}'


def delete_group(identifier: str) -> str:
    require_text(identifier, "identifier")
    with operation_context("delete macro group"):
        run_applescript(_builder().build_delete_group(identifier))
    return f'Macro Group "{identifier}" deleted successfully'


def toggle_group(identifier: str, enabled: bool) -> str:
    require_text(identifier, "identifier")
    require_bool(enabled, "enabled")
    verb = "enable" if enabled else "disable"
    with operation_context(f"{verb} macro group"):
        run_applescript(_builder().build_set_group_enabled(identifier, enabled))
    return f'Macro Group "{identifier}" {verb}d successfully'


# ── Actions ──────────────────────────────────────────────────────────

def _count_actions(identifier: str) -> int:
    return decode_count(run_applescript(_builder().build_count_actions(identifier)))


def _count_triggers(identifier: str) -> int:
    return decode_count(run_applescript(_builder().build_count_triggers(identifier)))


def count_actions(macro_identifier: str) -> int:
    require_text(macro_identifier, "macroIdentifier")
    with operation_context("count actions"):
        return _count_actions(macro_identifier)


def list_actions(macro_identifier: str) -> list[ActionSummary]:
    require_text(macro_identifier, "macroIdentifier")
    with operation_context("list actions"):
        raw = run_applescript(_builder().build_list_actions(macro_identifier))
    return decode_actions(raw)


def add_action(macro_identifier: str, action_xml: str) -> str:
    """Append an action built from plist XML, and confirm it exists.

    Keyboard Maestro silently ignores XML it cannot turn into an action, so
    the action count is read before and after. An unchanged count fails
    with MutationNotAppliedError even though the script itself succeeded.
    """
    require_text(macro_identifier, "macroIdentifier")
    require_text(action_xml, "actionXml")
    builder = _builder()

    def _apply() -> str:
        with staged_payload(action_xml) as path:
            return run_applescript(builder.build_add_action(macro_identifier, path))

    with operation_context("add action"):
        verify_by_diff(
            observe=lambda: _count_actions(macro_identifier),
            act=_apply,
            description="Action was not created - XML may be invalid or malformed",
        )
    return f'Action added to macro "{macro_identifier}"'


def get_action_xml(macro_identifier: str, action_index: int) -> str:
    require_text(macro_identifier, "macroIdentifier")
    action_index = require_position(action_index, "actionIndex")
    with operation_context("get action XML"):
        return run_applescript(_builder().build_get_action_xml(macro_identifier, action_index))


def set_action_xml(macro_identifier: str, action_index: int, xml: str) -> str:
    require_text(macro_identifier, "macroIdentifier")
    action_index = require_position(action_index, "actionIndex")
    require_text(xml, "xml")
    builder = _builder()
    with operation_context("set action XML"):
        with staged_payload(xml) as path:
            run_applescript(builder.build_set_action_xml(macro_identifier, action_index, path))
    return f'Action {action_index} in macro "{macro_identifier}" updated successfully'


def delete_action(macro_identifier: str, action_index: int) -> str:
    require_text(macro_identifier, "macroIdentifier")
    action_index = require_position(action_index, "actionIndex")
    with operation_context("delete action"):
        run_applescript(_builder().build_delete_action(macro_identifier, action_index))
    return f'Action {action_index} deleted from macro "{macro_identifier}"'


def move_action(macro_identifier: str, action_index: int, new_index: int) -> str:
    """Move an action so it ends up at `new_index`; past-the-end means last."""
    require_text(macro_identifier, "macroIdentifier")
    action_index = require_position(action_index, "actionIndex")
    new_index = require_position(new_index, "newIndex")
    with operation_context("move action"):
        run_applescript(_builder().build_move_action(macro_identifier, action_index, new_index))
    return f'Moved action {action_index} to index {new_index} in macro "{macro_identifier}"'


def search_replace_in_action(
    macro_identifier: str,
    action_index: int,
    search_text: str,
    replace_text: str,
) -> str:
    """Literal, case-sensitive search and replace inside one action's XML."""
    require_text(macro_identifier, "macroIdentifier")
    action_index = require_position(action_index, "actionIndex")
    if not search_text:
        raise ValidationError("searchText is required")
    if replace_text is None:
        raise ValidationError("replaceText is required")
    with operation_context("search/replace in action"):
        run_applescript(_builder().build_search_replace_in_action(
            macro_identifier, action_index, search_text, replace_text,
        ))
    return (
        f'Replaced "{search_text}" with "{replace_text}" in action {action_index} '
        f'of macro "{macro_identifier}"'
    )


# ── Triggers ─────────────────────────────────────────────────────────

def count_triggers(macro_identifier: str) -> int:
    require_text(macro_identifier, "macroIdentifier")
    with operation_context("count triggers"):
        return _count_triggers(macro_identifier)


def list_triggers(macro_identifier: str) -> list[TriggerSummary]:
    """Trigger types by position, read from the macro's XML."""
    require_text(macro_identifier, "macroIdentifier")
    with operation_context("list triggers"):
        xml = run_applescript(_builder().build_get_macro_xml(macro_identifier))
    return decode_triggers(xml)


def add_trigger(macro_identifier: str, trigger_xml: str) -> str:
    """Append a trigger built from plist XML, verified the same way as add_action()."""
    require_text(macro_identifier, "macroIdentifier")
    require_text(trigger_xml, "triggerXml")
    builder = _builder()

    def _apply() -> str:
        with staged_payload(trigger_xml) as path:
            return run_applescript(builder.build_add_trigger(macro_identifier, path))

    with operation_context("add trigger"):
        verify_by_diff(
            observe=lambda: _count_triggers(macro_identifier),
            act=_apply,
            description="Trigger was not created - XML may be invalid or malformed",
        )
    return f'Trigger added to macro "{macro_identifier}"'


def get_trigger_xml(macro_identifier: str, trigger_index: int) -> str:
    require_text(macro_identifier, "macroIdentifier")
    trigger_index = require_position(trigger_index, "triggerIndex")
    with operation_context("get trigger XML"):
        return run_applescript(_builder().build_get_trigger_xml(macro_identifier, trigger_index))


def set_trigger_xml(macro_identifier: str, trigger_index: int, xml: str) -> str:
    require_text(macro_identifier, "macroIdentifier")
    trigger_index = require_position(trigger_index, "triggerIndex")
    require_text(xml, "xml")
    builder = _builder()
    with operation_context("set trigger XML"):
        with staged_payload(xml) as path:
            run_applescript(builder.build_set_trigger_xml(macro_identifier, trigger_index, path))
    return f'Trigger {trigger_index} in macro "{macro_identifier}" updated successfully'


def delete_trigger(macro_identifier: str, trigger_index: int) -> str:
    require_text(macro_identifier, "macroIdentifier")
    trigger_index = require_position(trigger_index, "triggerIndex")
    with operation_context("delete trigger"):
        run_applescript(_builder().build_delete_trigger(macro_identifier, trigger_index))
    return f'Trigger {trigger_index} deleted from macro "{macro_identifier}"'
