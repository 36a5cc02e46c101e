"""Run AppleScript programs through osascript.

The program is fed on stdin, so no shell quoting is involved. Only stdout
carries return values; trailing whitespace is insignificant. There is no
timeout here: a hung Keyboard Maestro hangs the call, and callers that
need a bound must impose their own.
"""

from __future__ import annotations

import logging
import subprocess

from km_config import get_config
from km_errors import ScriptExecutionError

logger = logging.getLogger(__name__)


def run_applescript(script: str, osascript: str | None = None) -> str:
    """Execute an AppleScript program and return its trimmed stdout.

    Raises:
        ScriptExecutionError: osascript exited non-zero, or could not be started.
    """
    binary = osascript or get_config().osascript
    logger.debug("Running AppleScript:\n%s", script)

    try:
        result = subprocess.run(
            [binary],
            input=script,
            capture_output=True,
            text=True,
            encoding="utf-8",
        )
    except OSError as exc:
        raise ScriptExecutionError(f"AppleScript error: could not start {binary}: {exc}") from exc

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise ScriptExecutionError(
            f"AppleScript error: {detail or f'osascript exited with status {result.returncode}'}"
        )

    if result.stderr.strip():
        logger.warning("AppleScript stderr: %s", result.stderr.strip())

    return result.stdout.strip()
