"""
Keyboard Maestro log analysis.

Reads the Engine and Editor logs (plain text, one entry per line):

    2025-12-19 09:10:00 Execute macro "Daily Backup" failed

Lines without the timestamp prefix, such as continuation lines of a
multi-line message, are dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

from km_config import get_config
from km_errors import LogReadError

LINE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2})\s+(.+)$")
ERROR_RE = re.compile(r"failed|error|cancelled|timeout", re.IGNORECASE)

# Tried in order; first match wins
MACRO_NAME_PATTERNS = (
    re.compile(r'Macro "([^"]+)"'),
    re.compile(r'Execute macro "([^"]+)"'),
)
ACTION_RE = re.compile(r"Action (\d+)")

UNKNOWN_MACRO = "Unknown"


@dataclass
class LogEntry:
    timestamp: str
    date: datetime
    message: str
    is_error: bool
    macro_name: str | None = None
    action_index: int | None = None


@dataclass
class MacroErrorStats:
    count: int = 0
    last_error: str = ""
    last_time: str = ""


@dataclass
class ErrorSummary:
    total_errors: int
    errors_by_macro: dict[str, MacroErrorStats] = field(default_factory=dict)
    recent_errors: list[LogEntry] = field(default_factory=list)


def _parse_timestamp(text: str) -> datetime | None:
    try:
        return datetime.strptime(" ".join(text.split()), "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


def extract_macro_name(message: str) -> str | None:
    for pattern in MACRO_NAME_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def parse_log_line(line: str) -> LogEntry | None:
    """Parse one log line; None when it lacks the timestamp prefix."""
    match = LINE_RE.match(line.rstrip("\r\n"))
    if not match:
        return None
    timestamp, message = match.groups()
    date = _parse_timestamp(timestamp)
    if date is None:
        return None

    action = ACTION_RE.search(message)
    return LogEntry(
        timestamp=timestamp,
        date=date,
        message=message,
        is_error=bool(ERROR_RE.search(message)),
        macro_name=extract_macro_name(message),
        action_index=int(action.group(1)) if action else None,
    )


def _read_recent_lines(path: Path, lines: int, label: str) -> list[str]:
    try:
        content = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise LogReadError(f"Failed to read {label} log: {exc}") from exc
    all_lines = [line for line in content.split("\n") if line.strip()]
    return all_lines[-lines:] if lines > 0 else []


def parse_lines(lines: list[str]) -> list[LogEntry]:
    entries = []
    for line in lines:
        entry = parse_log_line(line)
        if entry is not None:
            entries.append(entry)
    return entries


def filter_entries(
    entries: list[LogEntry],
    errors_only: bool = False,
    since: datetime | None = None,
    macro_filter: str | None = None,
) -> list[LogEntry]:
    if errors_only:
        entries = [e for e in entries if e.is_error]
    if since is not None:
        entries = [e for e in entries if e.date >= since]
    if macro_filter:
        needle = macro_filter.lower()
        entries = [e for e in entries if e.macro_name and needle in e.macro_name.lower()]
    return entries


def read_engine_log(
    lines: int | None = None,
    errors_only: bool = False,
    since: datetime | None = None,
    macro_filter: str | None = None,
    path: str | Path | None = None,
) -> list[LogEntry]:
    """Parse the last `lines` lines of the Engine log, then filter.

    `macro_filter` is a case-insensitive substring match on the macro name.
    """
    cfg = get_config()
    raw = _read_recent_lines(
        Path(path or cfg.engine_log_path), cfg.log_lines if lines is None else lines, "Engine",
    )
    return filter_entries(parse_lines(raw), errors_only, since, macro_filter)


def read_editor_log(lines: int | None = None, path: str | Path | None = None) -> list[LogEntry]:
    cfg = get_config()
    raw = _read_recent_lines(
        Path(path or cfg.editor_log_path), cfg.log_lines if lines is None else lines, "Editor",
    )
    return parse_lines(raw)


def summarize_errors(entries: list[LogEntry], recent_limit: int = 10) -> ErrorSummary:
    """Group error entries by macro name; entries without one go under "Unknown".

    Each group keeps its count and its latest message and timestamp.
    """
    by_macro: dict[str, MacroErrorStats] = {}
    for entry in entries:
        stats = by_macro.setdefault(entry.macro_name or UNKNOWN_MACRO, MacroErrorStats())
        stats.count += 1
        stats.last_error = entry.message
        stats.last_time = entry.timestamp

    return ErrorSummary(
        total_errors=len(entries),
        errors_by_macro=by_macro,
        recent_errors=entries[-recent_limit:] if recent_limit > 0 else [],
    )


def get_error_summary(
    hours: float | None = None,
    now: datetime | None = None,
    path: str | Path | None = None,
) -> ErrorSummary:
    """Errors from the Engine log within the last `hours`, grouped by macro."""
    cfg = get_config()
    hours = cfg.error_summary_hours if hours is None else hours
    since = (now or datetime.now()) - timedelta(hours=hours)
    entries = read_engine_log(
        lines=cfg.error_summary_lines, errors_only=True, since=since, path=path,
    )
    return summarize_errors(entries, recent_limit=cfg.recent_error_limit)
