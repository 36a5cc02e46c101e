#!/usr/bin/env python3
"""
Connection check for the Keyboard Maestro bridge.

Lists macros, then round-trips a throwaway global variable through the
Engine. Exits 0 when both work, 1 otherwise.

Run: python cli/verify_connection.py
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from km_errors import BridgeError
from km_macros import list_macros
from km_variables import delete_variable, get_variable, set_variable

TEST_VARIABLE = "MCP_Connection_Test"


def verify() -> int:
    print("Running Keyboard Maestro connection check...\n")

    try:
        print("1. Checking macros...")
        macros = list_macros()
        print(f"   OK: retrieved {len(macros)} macros.")
        if macros:
            print(f'      Sample: "{macros[0].name}" ({macros[0].uid})')

        print("\n2. Checking variables...")
        expected = f"Success-{int(time.time() * 1000)}"
        set_variable(TEST_VARIABLE, expected)
        value = get_variable(TEST_VARIABLE)
        if value != expected:
            print(f'   FAIL: variable mismatch. Expected "{expected}", got "{value}"', file=sys.stderr)
            return 1
        print("   OK: set and read back a test variable.")

        delete_variable(TEST_VARIABLE)
        print("   OK: cleaned up test variable.")
    except BridgeError as exc:
        print(f"\nVerification failed: {exc}", file=sys.stderr)
        if "get reference" in str(exc):
            print("   Hint: ensure Keyboard Maestro Engine is running.", file=sys.stderr)
        return 1

    print("\nBridge is operational and connected to Keyboard Maestro Engine.")
    return 0


if __name__ == "__main__":
    sys.exit(verify())
