"""File path resolution using platformdirs.

SHIPSTATUS_HOME overrides the data directory (useful for containers and
tests); otherwise platform-appropriate directories are used:
  macOS: ~/Library/Application Support/shipstatus/
  Linux: ~/.local/share/shipstatus/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "shipstatus"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB)."""
    override = os.environ.get("SHIPSTATUS_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "shipstatus.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
