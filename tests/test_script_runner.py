"""
Tests for the osascript runner, with subprocess mocked out.

Run: python -m pytest tests/test_script_runner.py -v
"""

from __future__ import annotations

import subprocess
import sys
import unittest
from pathlib import Path
from unittest import mock

_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from km_config import BridgeConfig, reset_config
from km_errors import ScriptExecutionError
from script_runner import run_applescript


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(["osascript"], returncode, stdout=stdout, stderr=stderr)


class TestRunAppleScript(unittest.TestCase):

    def setUp(self):
        reset_config(BridgeConfig(osascript="/usr/bin/osascript"))

    def tearDown(self):
        reset_config()

    @mock.patch("script_runner.subprocess.run")
    def test_program_goes_to_stdin(self, run):
        run.return_value = _completed(stdout="42\n")
        self.assertEqual(run_applescript('return "42"'), "42")
        args, kwargs = run.call_args
        self.assertEqual(args[0], ["/usr/bin/osascript"])
        self.assertEqual(kwargs["input"], 'return "42"')

    @mock.patch("script_runner.subprocess.run")
    def test_explicit_binary_overrides_config(self, run):
        run.return_value = _completed()
        run_applescript("return", osascript="/opt/osascript")
        self.assertEqual(run.call_args[0][0], ["/opt/osascript"])

    @mock.patch("script_runner.subprocess.run")
    def test_output_is_trimmed(self, run):
        run.return_value = _completed(stdout="  a|||b  \n\n")
        self.assertEqual(run_applescript("x"), "a|||b")

    @mock.patch("script_runner.subprocess.run")
    def test_nonzero_exit_raises_with_stderr(self, run):
        run.return_value = _completed(1, stderr="execution error: Can't get macro (-1728)\n")
        with self.assertRaises(ScriptExecutionError) as ctx:
            run_applescript("x")
        self.assertEqual(
            str(ctx.exception), "AppleScript error: execution error: Can't get macro (-1728)"
        )

    @mock.patch("script_runner.subprocess.run")
    def test_nonzero_exit_without_output(self, run):
        run.return_value = _completed(3)
        with self.assertRaises(ScriptExecutionError) as ctx:
            run_applescript("x")
        self.assertIn("status 3", str(ctx.exception))

    @mock.patch("script_runner.subprocess.run")
    def test_missing_binary_raises(self, run):
        run.side_effect = FileNotFoundError("No such file")
        with self.assertRaises(ScriptExecutionError) as ctx:
            run_applescript("x")
        self.assertIn("could not start /usr/bin/osascript", str(ctx.exception))

    @mock.patch("script_runner.subprocess.run")
    def test_stderr_on_success_is_not_an_error(self, run):
        run.return_value = _completed(stdout="ok", stderr="warning: deprecated")
        with self.assertLogs("script_runner", level="WARNING"):
            self.assertEqual(run_applescript("x"), "ok")


if __name__ == "__main__":
    unittest.main()
