"""Centralized path resolution for MaestroBridge.

All modules should import paths from here rather than computing them locally.
This module resolves paths relative to the project root (parent of src/).
"""

from __future__ import annotations

from pathlib import Path

# Project root: parent of the src/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Core directories
CONFIGS_DIR = PROJECT_ROOT / "configs"

# Bridge configuration
BRIDGE_CONFIG_PATH = CONFIGS_DIR / "maestro_bridge.yaml"

# Keyboard Maestro writes both logs here on macOS
KM_LOG_DIR = Path.home() / "Library" / "Logs" / "Keyboard Maestro"
ENGINE_LOG_PATH = KM_LOG_DIR / "Engine.log"
EDITOR_LOG_PATH = KM_LOG_DIR / "Editor.log"
