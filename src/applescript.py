"""
AppleScript Builder
===================
Turns Keyboard Maestro edit intents into AppleScript programs for osascript.

Every user-supplied string goes through escape_applescript_str() before it
lands inside a string literal, so the generated program stays well-formed
whatever the input contains (quotes, backslashes, newlines, emoji).
Action and trigger positions are 1-based and interpolated as integer
literals. Plist payloads never appear inline: scripts that need one read it
from a staged file (see payload_exchange.py).

Usage:
    from applescript import ScriptBuilder

    b = ScriptBuilder()
    script = b.build_delete_action("Daily Backup", 3)

Addressing: macros and groups are selected with
    first macro whose name is "X" or id is "X"
which picks whichever comes first when a macro's name equals another
macro's UID. Use km_macros.resolve_macro() when that matters.
"""

from __future__ import annotations

from result_decoder import FIELD_DELIMITER, RECORD_DELIMITER

EDITOR_APP = "Keyboard Maestro"
ENGINE_APP = "Keyboard Maestro Engine"

# Keyboard Maestro deletes a variable when it is set to this value
DELETE_SENTINEL = "%Delete%"


def escape_applescript_str(text: str) -> str:
    """Escape text for use inside an AppleScript double-quoted literal."""
    return str(text).replace("\\", "\\\\").replace('"', '\\"')


def quote(text: str) -> str:
    """Render text as an AppleScript string literal."""
    return f'"{escape_applescript_str(text)}"'


def macro_selector(identifier: str) -> str:
    q = quote(identifier)
    return f"first macro whose name is {q} or id is {q}"


def group_selector(identifier: str) -> str:
    q = quote(identifier)
    return f"first macro group whose name is {q} or id is {q}"


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _position(value: int) -> str:
    return str(int(value))


def _joined(list_var: str) -> str:
    """Tail that joins an AppleScript list with the record delimiter and returns it."""
    return f"""
  set oldDelims to AppleScript's text item delimiters
  set AppleScript's text item delimiters to {quote(RECORD_DELIMITER)}
  set output to {list_var} as text
  set AppleScript's text item delimiters to oldDelims
  return output"""


_SEP = quote(FIELD_DELIMITER)


class ScriptBuilder:
    """Builds one AppleScript program per intent. Building never fails."""

    def __init__(self, editor_app: str = EDITOR_APP, engine_app: str = ENGINE_APP):
        self.editor_app = editor_app
        self.engine_app = engine_app

    @classmethod
    def from_config(cls, config) -> "ScriptBuilder":
        return cls(editor_app=config.editor_app, engine_app=config.engine_app)

    # ── Wrappers ─────────────────────────────────────────────────────

    def _editor(self, body: str, prelude: str = "") -> str:
        head = f"{prelude}\n" if prelude else ""
        return f"{head}tell application {quote(self.editor_app)}\n{body.strip(chr(10))}\nend tell"

    def _in_macro(self, identifier: str, body: str, prelude: str = "") -> str:
        return self._editor(
            f"  set theMacro to {macro_selector(identifier)}\n"
            f"  tell theMacro\n{body}\n  end tell",
            prelude=prelude,
        )

    @staticmethod
    def _read_staged(path) -> str:
        return f"set xmlContent to read POSIX file {quote(str(path))} as «class utf8»"

    # ── Listing ──────────────────────────────────────────────────────

    def build_list_macros(self) -> str:
        """name|||uid|||enabled|||group for every macro, group by group."""
        return self._editor(f"""
  set resultList to {{}}
  repeat with aGroup in macro groups
    set groupName to name of aGroup
    repeat with aMacro in macros of aGroup
      set end of resultList to (name of aMacro) & {_SEP} & (id of aMacro) & {_SEP} & ((enabled of aMacro) as text) & {_SEP} & groupName
    end repeat
  end repeat{_joined("resultList")}""")

    def build_search_macros(self, query: str) -> str:
        return self._editor(f"""
  set matchMacros to every macro whose name contains {quote(query)}
  set resultList to {{}}
  repeat with aMacro in matchMacros
    set end of resultList to (name of aMacro) & {_SEP} & (id of aMacro) & {_SEP} & ((enabled of aMacro) as text)
  end repeat{_joined("resultList")}""")

    def build_list_groups(self) -> str:
        return self._editor(f"""
  set resultList to {{}}
  repeat with aGroup in macro groups
    set end of resultList to (name of aGroup) & {_SEP} & (id of aGroup) & {_SEP} & ((enabled of aGroup) as text)
  end repeat{_joined("resultList")}""")

    def build_list_actions(self, identifier: str) -> str:
        """index|||name|||enabled for each action, in order."""
        return self._editor(f"""
  set theMacro to {macro_selector(identifier)}
  set resultList to {{}}
  set actionCount to count of actions of theMacro
  repeat with i from 1 to actionCount
    set theAction to action i of theMacro
    set end of resultList to (i as text) & {_SEP} & (name of theAction) & {_SEP} & ((enabled of theAction) as text)
  end repeat{_joined("resultList")}""")

    def build_resolve_macro(self, identifier: str) -> str:
        """Every macro whose name is X, then every macro whose UID is X."""
        q = quote(identifier)
        return self._editor(f"""
  set resultList to {{}}
  repeat with aMacro in (every macro whose name is {q})
    set end of resultList to (name of aMacro) & {_SEP} & (id of aMacro) & {_SEP} & "name"
  end repeat
  repeat with aMacro in (every macro whose id is {q})
    set end of resultList to (name of aMacro) & {_SEP} & (id of aMacro) & {_SEP} & "uid"
  end repeat{_joined("resultList")}""")

    # ── Reading ──────────────────────────────────────────────────────

    def build_get_macro(self, identifier: str) -> str:
        return self._editor(f"""
  set theMacro to {macro_selector(identifier)}
  return (name of theMacro) & {_SEP} & (id of theMacro) & {_SEP} & ((enabled of theMacro) as text)""")

    def build_get_macro_xml(self, identifier: str) -> str:
        return self._editor(f"""
  set theMacro to {macro_selector(identifier)}
  return xml of theMacro""")

    def build_count_actions(self, identifier: str) -> str:
        return self._editor(f"""
  set theMacro to {macro_selector(identifier)}
  return count of actions of theMacro""")

    def build_count_triggers(self, identifier: str) -> str:
        return self._editor(f"""
  set theMacro to {macro_selector(identifier)}
  return count of triggers of theMacro""")

    def build_get_action_xml(self, identifier: str, index: int) -> str:
        return self._in_macro(identifier, f"    return xml of action {_position(index)}")

    def build_get_trigger_xml(self, identifier: str, index: int) -> str:
        return self._in_macro(identifier, f"    return xml of trigger {_position(index)}")

    # ── Macro mutations ──────────────────────────────────────────────

    def build_create_macro(self, name: str, group: str | None = None) -> str:
        """Create a macro and return its UID, optionally moving it into a group."""
        move = f"\n  move newMacro to ({group_selector(group)})" if group else ""
        return self._editor(f"""
  set newMacro to make new macro with properties {{name:{quote(name)}}}
  set macroId to id of newMacro{move}
  return macroId""")

    def build_duplicate_macro(self, identifier: str, new_name: str | None = None) -> str:
        rename = f"\n  set name of newMacro to {quote(new_name)}" if new_name else ""
        return self._editor(f"""
  set theMacro to {macro_selector(identifier)}
  set newMacros to duplicate theMacro
  if class of newMacros is list then
    set newMacro to item 1 of newMacros
  else
    set newMacro to newMacros
  end if{rename}
  return id of newMacro""")

    def build_rename_macro(self, identifier: str, new_name: str) -> str:
        return self._editor(
            f"  set name of ({macro_selector(identifier)}) to {quote(new_name)}"
        )

    def build_delete_macro(self, identifier: str) -> str:
        return self._editor(f"  delete ({macro_selector(identifier)})")

    def build_set_macro_enabled(self, identifier: str, enabled: bool) -> str:
        return self._editor(
            f"  set enabled of ({macro_selector(identifier)}) to {_bool(enabled)}"
        )

    def build_move_macro_to_group(self, identifier: str, group: str) -> str:
        return self._editor(f"""
  set theMacro to {macro_selector(identifier)}
  set theGroup to {group_selector(group)}
  move theMacro to theGroup""")

    def build_execute_macro(self, identifier: str, parameter: str | None = None) -> str:
        """Run a macro on the Engine. Empty parameters are not passed."""
        call = f"do script {quote(identifier)}"
        if parameter:
            call += f" with parameter {quote(parameter)}"
        return f"tell application {quote(self.engine_app)} to {call}"

    # ── Group mutations ──────────────────────────────────────────────

    def build_create_group(self, name: str) -> str:
        return self._editor(f"""
  set newGroup to make new macro group with properties {{name:{quote(name)}}}
  return id of newGroup""")

    def build_delete_group(self, identifier: str) -> str:
        return self._editor(f"  delete ({group_selector(identifier)})")

    def build_set_group_enabled(self, identifier: str, enabled: bool) -> str:
        return self._editor(
            f"  set enabled of ({group_selector(identifier)}) to {_bool(enabled)}"
        )

    # ── Action mutations ─────────────────────────────────────────────

    def build_add_action(self, identifier: str, staged_path) -> str:
        return self._in_macro(
            identifier,
            "    make new action with properties {xml:xmlContent}",
            prelude=self._read_staged(staged_path),
        )

    def build_set_action_xml(self, identifier: str, index: int, staged_path) -> str:
        return self._in_macro(
            identifier,
            f"    set xml of action {_position(index)} to xmlContent",
            prelude=self._read_staged(staged_path),
        )

    def build_delete_action(self, identifier: str, index: int) -> str:
        return self._in_macro(identifier, f"    delete action {_position(index)}")

    def build_move_action(self, identifier: str, index: int, new_index: int) -> str:
        """Move action `index` so that it ends up at position `new_index`.

        Moving down targets the slot before action new_index + 1, since the
        moved action no longer occupies its old slot. Any new_index at or
        past the end means "move to the end".
        """
        index, new_index = int(index), int(new_index)
        src = f"action {index}"
        if new_index == index:
            body = "    return"
        elif new_index < index:
            body = f"    move {src} to before action {new_index}"
        else:
            body = (
                f"    if {new_index} >= (count of actions) then\n"
                f"      move {src} to after last action\n"
                f"    else\n"
                f"      move {src} to before action {new_index + 1}\n"
                f"    end if"
            )
        return self._in_macro(identifier, body)

    def build_search_replace_in_action(
        self, identifier: str, index: int, search: str, replace: str,
    ) -> str:
        """Literal, case-sensitive replace inside an action's XML, done by the Engine."""
        pos = _position(index)
        return self._in_macro(identifier, f"""    set theXML to xml of action {pos}
    tell application {quote(self.engine_app)}
      set fixedXML to search theXML for {quote(search)} replace {quote(replace)} regex false case sensitive true process tokens false
    end tell
    set xml of action {pos} to fixedXML""")

    # ── Trigger mutations ────────────────────────────────────────────

    def build_add_trigger(self, identifier: str, staged_path) -> str:
        return self._in_macro(
            identifier,
            "    make new trigger with properties {xml:xmlContent}",
            prelude=self._read_staged(staged_path),
        )

    def build_set_trigger_xml(self, identifier: str, index: int, staged_path) -> str:
        return self._in_macro(
            identifier,
            f"    set xml of trigger {_position(index)} to xmlContent",
            prelude=self._read_staged(staged_path),
        )

    def build_delete_trigger(self, identifier: str, index: int) -> str:
        return self._in_macro(identifier, f"    delete trigger {_position(index)}")

    # ── Variables ────────────────────────────────────────────────────

    def build_get_variable(self, name: str) -> str:
        return f"tell application {quote(self.engine_app)} to getvariable {quote(name)}"

    def build_set_variable(self, name: str, value: str) -> str:
        return (
            f"tell application {quote(self.engine_app)} "
            f"to setvariable {quote(name)} to {quote(value)}"
        )

    def build_delete_variable(self, name: str) -> str:
        return self.build_set_variable(name, DELETE_SENTINEL)
