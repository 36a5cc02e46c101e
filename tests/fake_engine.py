"""
In-memory stand-in for osascript + Keyboard Maestro, shared by the tests.

Patch it over a module's run_applescript:

    engine = FakeEngine()
    mock.patch("km_macros.run_applescript", side_effect=engine.run)
"""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

_SRC_DIR = Path(__file__).resolve().parent.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from km_errors import ScriptExecutionError

_STAGED_RE = re.compile(r'read POSIX file "([^"]+)"')


class FakeEngine:
    """Answers generated scripts from a single in-memory macro.

    Action and trigger creation bump the counts unless `accept` is False,
    which mimics Keyboard Maestro silently ignoring bad XML. Any script
    that reads a staged payload has the file's state recorded in `staged`
    as (path, existed_at_run_time, content). Other scripts answer from
    `responses`, keyed by a marker substring of the script.
    """

    def __init__(self, actions=0, triggers=0, accept=True):
        self.actions = actions
        self.triggers = triggers
        self.accept = accept
        self.scripts: list[str] = []
        self.staged: list[tuple[str, bool, str]] = []
        self.responses: dict[str, str] = {}
        self.fail_with: str | None = None

    def run(self, script: str, osascript=None) -> str:
        self.scripts.append(script)
        if self.fail_with:
            raise ScriptExecutionError(self.fail_with)

        staged = _STAGED_RE.search(script)
        if staged:
            path = staged.group(1)
            exists = os.path.exists(path)
            content = Path(path).read_text(encoding="utf-8") if exists else ""
            self.staged.append((path, exists, content))

        if "make new action" in script:
            if self.accept:
                self.actions += 1
            return ""
        if "make new trigger" in script:
            if self.accept:
                self.triggers += 1
            return ""
        if "return count of actions" in script:
            return f"{self.actions}\n"
        if "return count of triggers" in script:
            return str(self.triggers)
        for marker, response in self.responses.items():
            if marker in script:
                return response
        return ""
