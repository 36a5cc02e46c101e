"""Stage plist payloads in scratch files for AppleScript to read.

Inline plist XML inside an AppleScript string literal breaks on nested
quotes and control characters, so action and trigger XML is written to a
uniquely named file and the script reads it back with
`read POSIX file … as «class utf8»`.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from km_config import get_config

logger = logging.getLogger(__name__)

PLIST_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" '
    '"http://www.apple.com/DTDs/PropertyList-1.0.dtd">\n'
    '<plist version="1.0">'
)
PLIST_FOOTER = "</plist>"

_ENVELOPE_STARTS = ("<?xml", "<!DOCTYPE", "<plist")


def wrap_plist(payload: str) -> str:
    """Wrap a plist fragment (e.g. a bare <dict>) in the standard envelope.

    Payloads that already start with the XML declaration, the doctype or the
    <plist> root are returned trimmed but otherwise untouched.
    """
    trimmed = payload.strip()
    if trimmed.startswith(_ENVELOPE_STARTS):
        return trimmed
    return f"{PLIST_HEADER}\n{trimmed}\n{PLIST_FOOTER}"


def stage(payload: str, scratch_dir: str | Path | None = None) -> Path:
    """Write the wrapped payload to a fresh file and return its path."""
    cfg = get_config()
    directory = scratch_dir or cfg.scratch_dir
    if directory is not None:
        os.makedirs(directory, exist_ok=True)

    fd, path = tempfile.mkstemp(
        prefix=cfg.payload_prefix,
        suffix=".plist",
        dir=str(directory) if directory is not None else None,
    )
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(wrap_plist(payload))
    logger.debug("Staged payload at %s", path)
    return Path(path)


def release(path: str | Path) -> None:
    """Delete a staged payload. Cleanup failures are logged, never raised."""
    try:
        os.unlink(path)
    except OSError as exc:
        logger.debug("Could not remove staged payload %s: %s", path, exc)


@contextmanager
def staged_payload(payload: str, scratch_dir: str | Path | None = None) -> Iterator[Path]:
    """Stage a payload for the duration of the block, then always release it."""
    path = stage(payload, scratch_dir=scratch_dir)
    try:
        yield path
    finally:
        release(path)
