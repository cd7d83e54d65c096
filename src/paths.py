"""Centralised path constants for the application."""

from pathlib import Path

# Project root is 2 levels up from this file (src/paths.py -> project root)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Per-user settings, authorisations and the polling cursor
DEFAULT_STATE_FILE = PROJECT_ROOT / "bot_config.json"
