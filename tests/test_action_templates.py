"""
Tests for the high-level action builders.

Each helper is checked by reading back the plist it staged for the
engine, so escaping is verified end to end through plistlib.

Run: python -m pytest tests/test_action_templates.py -v
"""

from __future__ import annotations

import plistlib
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
for _dir in (_SRC_DIR, _SCRIPT_DIR):
    if str(_dir) not in sys.path:
        sys.path.insert(0, str(_dir))

import action_templates
from km_config import BridgeConfig, reset_config
from km_errors import AmbiguousReferenceError, MutationNotAppliedError, ValidationError

from fake_engine import FakeEngine


class TemplateTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        reset_config(BridgeConfig(scratch_dir=Path(self._tmp.name)))
        self.engine = FakeEngine()
        patcher = mock.patch("km_macros.run_applescript", side_effect=self.engine.run)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        reset_config()
        self._tmp.cleanup()

    def staged_action(self) -> dict:
        """The action dict the engine was asked to create."""
        _, existed, content = self.engine.staged[-1]
        self.assertTrue(existed)
        return plistlib.loads(content.encode("utf-8"))


class TestSimpleActions(TemplateTestCase):

    def test_notification(self):
        result = action_templates.add_notification_action("M", "Done", "All <good> & \"fine\"")
        self.assertEqual(result, 'Action added to macro "M"')
        action = self.staged_action()
        self.assertEqual(action["MacroActionType"], "Notification")
        self.assertEqual(action["Text"], 'All <good> & "fine"')
        self.assertEqual(action["Subtitle"], "")

    def test_notification_requires_title(self):
        with self.assertRaises(ValidationError):
            action_templates.add_notification_action("M", "", "msg")
        self.assertEqual(self.engine.scripts, [])

    def test_pause(self):
        action_templates.add_pause_action("M", 1.5)
        self.assertEqual(self.staged_action()["Time"], "1.5")

    def test_pause_whole_seconds(self):
        action_templates.add_pause_action("M", 2)
        self.assertEqual(self.staged_action()["Time"], "2")

    def test_pause_rejects_negative(self):
        with self.assertRaises(ValidationError):
            action_templates.add_pause_action("M", -1)

    def test_pause_rejects_non_number(self):
        with self.assertRaises(ValidationError):
            action_templates.add_pause_action("M", "5")

    def test_set_variable_allows_empty_value(self):
        action_templates.add_set_variable_action("M", "Counter", "")
        action = self.staged_action()
        self.assertEqual(action["MacroActionType"], "SetVariableToText")
        self.assertEqual(action["Text"], "")

    def test_calculation(self):
        action_templates.add_calculation_action("M", "Counter", "Counter + 1")
        action = self.staged_action()
        self.assertEqual(action["MacroActionType"], "SetVariableToCalculation")
        self.assertEqual(action["Text"], "Counter + 1")

    def test_display_text(self):
        action_templates.add_display_text_action("M", "Title", "Body")
        self.assertEqual(self.staged_action()["MacroActionType"], "Alert")

    def test_shell_script_saved_to_variable(self):
        action_templates.add_shell_script_action("M", "echo 'hi' | tr a-z A-Z", "Out")
        action = self.staged_action()
        self.assertEqual(action["Text"], "echo 'hi' | tr a-z A-Z")
        self.assertEqual(action["DisplayKind"], "Variable")
        self.assertEqual(action["Variable"], "Out")

    def test_shell_script_without_variable(self):
        action_templates.add_shell_script_action("M", "true")
        action = self.staged_action()
        self.assertEqual(action["DisplayKind"], "None")
        self.assertNotIn("Variable", action)

    def test_control_characters_rejected_before_engine(self):
        with self.assertRaises(ValidationError) as ctx:
            action_templates.add_shell_script_action("M", "printf '\x1b[1mhi'")
        self.assertIn("control characters", str(ctx.exception))
        self.assertEqual(self.engine.scripts, [])

    def test_rejected_template_reports_not_applied(self):
        self.engine.accept = False
        with self.assertRaises(MutationNotAppliedError) as ctx:
            action_templates.add_display_text_action("M", "T", "B")
        self.assertIn("Action was not created", str(ctx.exception))


class TestConditionals(TemplateTestCase):

    def test_if_variable_contains_with_branches(self):
        then_xml = (
            "<dict><key>MacroActionType</key><string>Beep</string></dict>"
            "<dict><key>MacroActionType</key><string>Pause</string></dict>"
        )
        action_templates.add_if_variable_contains_action("M", "Status", "ok", then_xml)
        action = self.staged_action()
        self.assertEqual(action["MacroActionType"], "IfThenElse")
        condition = action["Conditions"]["ConditionList"][0]
        self.assertEqual(condition["VariableConditionType"], "Contains")
        self.assertEqual(condition["VariableValue"], "ok")
        self.assertEqual([a["MacroActionType"] for a in action["ThenActions"]], ["Beep", "Pause"])
        self.assertEqual(action["ElseActions"], [])

    def test_if_calculation(self):
        action_templates.add_if_calculation_action("M", "Counter >= 5")
        condition = self.staged_action()["Conditions"]["ConditionList"][0]
        self.assertEqual(condition, {"ConditionType": "Calculation", "Text": "Counter >= 5"})

    def test_malformed_branch_rejected_before_engine(self):
        with self.assertRaises(ValidationError) as ctx:
            action_templates.add_if_calculation_action("M", "1", then_actions_xml="<dict><key>")
        self.assertIn("thenActionsXml", str(ctx.exception))
        self.assertEqual(self.engine.scripts, [])

    def test_non_dict_branch_rejected(self):
        with self.assertRaises(ValidationError):
            action_templates.parse_action_fragments("<string>nope</string>")

    def test_blank_branch_is_empty(self):
        self.assertEqual(action_templates.parse_action_fragments("  "), [])


class TestExecuteMacro(TemplateTestCase):

    def test_target_resolved_to_uid(self):
        self.engine.responses["every macro whose id is"] = "Helper|||HELPER-UID|||name"
        action_templates.add_execute_macro_action("M", "Helper", "arg")
        action = self.staged_action()
        self.assertEqual(action["MacroUID"], "HELPER-UID")
        self.assertTrue(action["UseParameter"])
        self.assertEqual(action["Parameter"], "arg")

    def test_ambiguous_target_rejected(self):
        self.engine.responses["every macro whose id is"] = "Helper|||1|||name;;;Helper|||2|||name"
        with self.assertRaises(AmbiguousReferenceError):
            action_templates.add_execute_macro_action("M", "Helper")
        self.assertEqual(self.engine.staged, [])


if __name__ == "__main__":
    unittest.main()
