"""
Result Decoder: osascript text → typed records.
================================================
Listing scripts join their results with AppleScript text item delimiters:
records are separated by RECORD_DELIMITER and fields by FIELD_DELIMITER.
Both are multi-character tokens because macro, group and action names may
contain any single punctuation character. A name that contains one of the
tokens verbatim will still split wrongly; that is an accepted limitation
of the engine-facing format. Everything handed back to callers is JSON.

Trigger listings are the exception: they are read out of the macro's own
plist XML with plistlib, so trigger text never passes through delimiters.
"""

from __future__ import annotations

import json
import logging
import plistlib
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any
from xml.parsers.expat import ExpatError

logger = logging.getLogger(__name__)

RECORD_DELIMITER = ";;;"
FIELD_DELIMITER = "|||"


# =============================================================================
# RECORD TYPES
# =============================================================================

@dataclass
class MacroSummary:
    name: str
    uid: str
    enabled: bool | None = None
    group: str | None = None


@dataclass
class GroupSummary:
    name: str
    uid: str
    enabled: bool | None = None


@dataclass
class ActionSummary:
    index: int
    name: str
    enabled: bool


@dataclass
class TriggerSummary:
    index: int
    trigger_type: str


@dataclass
class MacroRef:
    """A macro resolved to exactly one identity."""
    name: str
    uid: str


# =============================================================================
# RAW SPLITTING
# =============================================================================

def split_records(raw: str, key_field: int = 0) -> list[list[str]]:
    """Split delimiter-encoded output into trimmed field lists.

    Blank output is zero records. Records whose key field is empty after
    trimming are dropped; the engine's list idiom can leave a trailing
    empty element.
    """
    if not raw or not raw.strip():
        return []

    rows = []
    for record in raw.split(RECORD_DELIMITER):
        fields = [f.strip() for f in record.split(FIELD_DELIMITER)]
        if key_field >= len(fields) or not fields[key_field]:
            continue
        rows.append(fields)
    return rows


def encode_records(rows: list[list[str]]) -> str:
    """Join field lists the same way the listing scripts do."""
    return RECORD_DELIMITER.join(FIELD_DELIMITER.join(str(f) for f in row) for row in rows)


def _field(fields: list[str], i: int) -> str:
    return fields[i] if i < len(fields) else ""


def parse_bool(text: str) -> bool | None:
    """AppleScript booleans coerce to "true"/"false" text."""
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


# =============================================================================
# TYPED DECODERS
# =============================================================================

def decode_macros(raw: str) -> list[MacroSummary]:
    """Decode name|||uid[|||enabled[|||group]] records."""
    macros = []
    for fields in split_records(raw):
        group = _field(fields, 3) or None
        macros.append(MacroSummary(
            name=fields[0],
            uid=_field(fields, 1),
            enabled=parse_bool(_field(fields, 2)),
            group=group,
        ))
    return macros


def decode_groups(raw: str) -> list[GroupSummary]:
    """Decode name|||uid[|||enabled] records."""
    return [
        GroupSummary(name=f[0], uid=_field(f, 1), enabled=parse_bool(_field(f, 2)))
        for f in split_records(raw)
    ]


def decode_actions(raw: str) -> list[ActionSummary]:
    """Decode index|||name|||enabled records.

    The index is the key field; records with a non-numeric index are
    logged and skipped so one bad row does not sink the listing.
    """
    actions = []
    for fields in split_records(raw, key_field=0):
        try:
            index = int(fields[0])
        except ValueError:
            logger.warning("Skipping action record with bad index: %r", fields)
            continue
        actions.append(ActionSummary(
            index=index,
            name=_field(fields, 1),
            enabled=parse_bool(_field(fields, 2)) is True,
        ))
    return actions


def decode_macro_summary(raw: str) -> MacroSummary | None:
    """Decode the single name|||uid|||enabled record of a macro lookup."""
    macros = decode_macros(raw)
    return macros[0] if macros else None


def decode_macro_refs(raw: str) -> list[MacroRef]:
    """Decode resolution candidates, collapsing duplicates by UID.

    A macro that matched by both name and UID appears twice in the raw
    output but is one identity.
    """
    refs: list[MacroRef] = []
    seen: set[str] = set()
    for fields in split_records(raw, key_field=1):
        uid = fields[1]
        if uid in seen:
            continue
        seen.add(uid)
        refs.append(MacroRef(name=fields[0], uid=uid))
    return refs


def decode_count(raw: str) -> int:
    """Parse a count; empty or non-numeric output counts as zero."""
    try:
        return int(raw.strip())
    except (ValueError, AttributeError):
        return 0


def decode_triggers(macro_xml: str) -> list[TriggerSummary]:
    """Summarize the Triggers array of a macro's plist XML.

    Malformed XML decodes to an empty list rather than failing the read.
    """
    if not macro_xml or not macro_xml.strip():
        return []
    try:
        data = plistlib.loads(macro_xml.encode("utf-8"))
    except (plistlib.InvalidFileException, ValueError, ExpatError) as exc:
        logger.warning("Could not parse macro XML for triggers: %s", exc)
        return []

    if not isinstance(data, dict):
        return []

    triggers = []
    for i, trigger in enumerate(data.get("Triggers") or [], start=1):
        if not isinstance(trigger, dict):
            continue
        triggers.append(TriggerSummary(
            index=i,
            trigger_type=str(trigger.get("MacroTriggerType", "Unknown")),
        ))
    return triggers


# =============================================================================
# CALLER-FACING ENCODING
# =============================================================================

def to_json(value: Any) -> str:
    """Serialize records (or lists of records) as indented JSON."""
    def _convert(obj: Any) -> Any:
        if is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        if isinstance(obj, list):
            return [_convert(o) for o in obj]
        if isinstance(obj, dict):
            return {k: _convert(v) for k, v in obj.items()}
        return obj

    return json.dumps(_convert(value), indent=2, default=str)
