"""
Tests for Engine/Editor log parsing and the error summary.

Run: python -m pytest tests/test_km_logs.py -v
"""

from __future__ import annotations

import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from km_config import BridgeConfig, reset_config
from km_errors import LogReadError
from km_logs import (
    UNKNOWN_MACRO,
    extract_macro_name,
    filter_entries,
    get_error_summary,
    parse_lines,
    parse_log_line,
    read_editor_log,
    read_engine_log,
    summarize_errors,
)


class TestParseLine(unittest.TestCase):

    def test_failed_execute_line(self):
        entry = parse_log_line('2025-01-01 10:00:00 Execute macro "Daily Backup" failed')
        self.assertTrue(entry.is_error)
        self.assertEqual(entry.macro_name, "Daily Backup")
        self.assertEqual(entry.timestamp, "2025-01-01 10:00:00")
        self.assertEqual(entry.date, datetime(2025, 1, 1, 10, 0, 0))
        self.assertEqual(entry.message, 'Execute macro "Daily Backup" failed')

    def test_action_index_and_macro_keyword(self):
        entry = parse_log_line('2025-01-01 10:00:00 Action 3 timed out in Macro "Sync"')
        self.assertEqual(entry.action_index, 3)
        self.assertEqual(entry.macro_name, "Sync")
        self.assertFalse(entry.is_error)

    def test_error_keywords_case_insensitive(self):
        for word in ("FAILED", "Error", "cancelled", "Timeout"):
            entry = parse_log_line(f"2025-01-01 10:00:00 Something {word}")
            self.assertTrue(entry.is_error, word)

    def test_plain_info_line(self):
        entry = parse_log_line("2025-01-01 10:00:00 Engine started")
        self.assertFalse(entry.is_error)
        self.assertIsNone(entry.macro_name)
        self.assertIsNone(entry.action_index)

    def test_line_without_timestamp(self):
        self.assertIsNone(parse_log_line("    continuation of previous message"))
        self.assertIsNone(parse_log_line(""))

    def test_macro_keyword_preferred(self):
        msg = 'Macro "Outer" said Execute macro "Inner" failed'
        self.assertEqual(extract_macro_name(msg), "Outer")


class TestFilters(unittest.TestCase):

    def setUp(self):
        self.entries = parse_lines([
            '2025-01-01 09:00:00 Execute macro "Daily Backup" failed',
            '2025-01-01 10:00:00 Execute macro "Daily Backup" completed',
            '2025-01-01 11:00:00 Execute macro "Mail Sorter" failed',
            "2025-01-01 12:00:00 Engine error without macro",
        ])

    def test_errors_only(self):
        self.assertEqual(len(filter_entries(self.entries, errors_only=True)), 3)

    def test_since(self):
        result = filter_entries(self.entries, since=datetime(2025, 1, 1, 10, 30))
        self.assertEqual([e.timestamp[-8:] for e in result], ["11:00:00", "12:00:00"])

    def test_macro_filter_is_case_insensitive_substring(self):
        result = filter_entries(self.entries, macro_filter="backup")
        self.assertEqual(len(result), 2)
        self.assertTrue(all(e.macro_name == "Daily Backup" for e in result))


class TestSummary(unittest.TestCase):

    def test_groups_by_macro(self):
        entries = parse_lines([
            '2025-01-01 09:00:00 Execute macro "A" failed',
            '2025-01-01 10:00:00 Execute macro "A" error 2',
            '2025-01-01 11:00:00 Execute macro "B" failed',
            "2025-01-01 12:00:00 Unattributed error",
        ])
        summary = summarize_errors(entries, recent_limit=2)
        self.assertEqual(summary.total_errors, 4)
        self.assertEqual(summary.errors_by_macro["A"].count, 2)
        self.assertEqual(summary.errors_by_macro["A"].last_error, 'Execute macro "A" error 2')
        self.assertEqual(summary.errors_by_macro["A"].last_time, "2025-01-01 10:00:00")
        self.assertEqual(summary.errors_by_macro[UNKNOWN_MACRO].count, 1)
        self.assertEqual([e.timestamp[-8:] for e in summary.recent_errors], ["11:00:00", "12:00:00"])

    def test_empty(self):
        summary = summarize_errors([])
        self.assertEqual(summary.total_errors, 0)
        self.assertEqual(summary.errors_by_macro, {})


class TestLogFiles(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.engine_log = root / "Engine.log"
        self.editor_log = root / "Editor.log"
        reset_config(BridgeConfig(
            engine_log_path=self.engine_log,
            editor_log_path=self.editor_log,
            log_lines=100,
        ))

    def tearDown(self):
        reset_config()
        self._tmp.cleanup()

    def _write(self, path, lines):
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def test_error_summary_window(self):
        self._write(self.engine_log, [
            '2025-01-01 08:00:00 Execute macro "A" failed',
            '2025-01-02 09:00:00 Execute macro "A" failed',
            '2025-01-02 10:00:00 Execute macro "A" failed',
            '2025-01-02 10:30:00 Execute macro "A" completed',
            '2025-01-02 11:00:00 Execute macro "B" failed',
        ])
        summary = get_error_summary(hours=24, now=datetime(2025, 1, 2, 12, 0))
        self.assertEqual(summary.total_errors, 3)
        self.assertEqual(summary.errors_by_macro["A"].count, 2)
        self.assertEqual(summary.errors_by_macro["B"].count, 1)

    def test_read_engine_log_tail(self):
        self._write(self.engine_log, [
            f"2025-01-01 10:00:0{i} line {i}" for i in range(5)
        ])
        entries = read_engine_log(lines=2)
        self.assertEqual([e.message for e in entries], ["line 3", "line 4"])

    def test_zero_lines_reads_nothing(self):
        self._write(self.engine_log, ["2025-01-01 10:00:00 Engine idle"])
        self.assertEqual(read_engine_log(lines=0), [])

    def test_zero_hour_window(self):
        self._write(self.engine_log, ['2025-01-02 11:00:00 Execute macro "A" failed'])
        summary = get_error_summary(hours=0, now=datetime(2025, 1, 2, 12, 0))
        self.assertEqual(summary.total_errors, 0)

    def test_continuation_lines_dropped(self):
        self._write(self.engine_log, [
            '2025-01-01 10:00:00 Execute macro "A" failed',
            "    with details on the next line",
            "",
            "2025-01-01 10:00:01 Engine idle",
        ])
        self.assertEqual(len(read_engine_log()), 2)

    def test_read_editor_log(self):
        self._write(self.editor_log, ["2025-01-01 10:00:00 Editor launched"])
        self.assertEqual(read_editor_log()[0].message, "Editor launched")

    def test_missing_log_raises(self):
        with self.assertRaises(LogReadError) as ctx:
            read_engine_log(path=Path(self._tmp.name) / "missing.log")
        self.assertTrue(str(ctx.exception).startswith("Failed to read Engine log:"))


if __name__ == "__main__":
    unittest.main()
