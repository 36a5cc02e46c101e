"""Error taxonomy for the Keyboard Maestro bridge.

Every failure that reaches a caller is one of these classes, so the
protocol layer can tell a rejected parameter from an AppleScript failure
from an edit the engine silently ignored.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator


class BridgeError(Exception):
    """Base class for all bridge failures."""

    def with_context(self, operation: str) -> "BridgeError":
        """Return a copy of this error prefixed with the attempted operation."""
        return type(self)(f"Failed to {operation}: {self}")


class ValidationError(BridgeError, ValueError):
    """A required parameter is missing or malformed. Raised before any script runs."""


class ScriptExecutionError(BridgeError):
    """osascript exited abnormally; the message carries its diagnostic text."""


class MutationNotAppliedError(BridgeError):
    """The script ran cleanly but the observed state did not change."""


class EntityNotFoundError(BridgeError):
    """No macro or group matched the given name or UID."""


class AmbiguousReferenceError(BridgeError):
    """A name or UID matched more than one distinct entity."""


class LogReadError(BridgeError):
    """A Keyboard Maestro log file is missing or unreadable."""


@contextmanager
def operation_context(operation: str) -> Iterator[None]:
    """Re-raise failures inside the block with operation-specific context.

    Bridge errors keep their class so callers can still tell execution
    failures from verification failures. Stray OS-level errors (e.g. the
    osascript binary is missing) surface as ScriptExecutionError.
    """
    try:
        yield
    except BridgeError as exc:
        raise exc.with_context(operation) from exc
    except OSError as exc:
        raise ScriptExecutionError(f"Failed to {operation}: {exc}") from exc
