"""File path resolution using platformdirs.

TRACKPOOL_DATA_DIR wins when set. Otherwise paths use the
platform-appropriate user directories:
  macOS: ~/Library/Application Support/trackpool/
  Windows: %LOCALAPPDATA%/TrackPool/trackpool/
  Linux: ~/.local/share/trackpool/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "trackpool"
APP_AUTHOR = "TrackPool"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, reports)."""
    override = os.environ.get("TRACKPOOL_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, APP_AUTHOR))


def get_log_dir() -> Path:
    """Return the directory for upload logs and assignment event logs."""
    override = os.environ.get("TRACKPOOL_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser() / "logs"
    return Path(platformdirs.user_log_dir(APP_NAME, APP_AUTHOR))


def get_report_dir() -> Path:
    """Return the directory for generated GST reports."""
    return get_data_dir() / "reports"


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "trackpool.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    for d in [get_data_dir(), get_log_dir(), get_report_dir()]:
        d.mkdir(parents=True, exist_ok=True)
