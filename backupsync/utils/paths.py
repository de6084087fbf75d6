"""File path resolution using platformdirs.

Per-user locations:
  macOS: ~/Library/Application Support/com.backupsync.app/
  Windows: %LOCALAPPDATA%/com.backupsync.app/
  Linux: ~/.local/share/com.backupsync.app/
"""

from pathlib import Path

import platformdirs

_BUNDLE_ID = "com.backupsync.app"

# Snapshot file name the point-of-sale application writes.
SNAPSHOT_FILE_NAME = "pos.sqlite"


def get_data_dir() -> Path:
    """Return the directory holding the local snapshot."""
    return Path(platformdirs.user_data_dir(_BUNDLE_ID, appauthor=False))


def get_default_snapshot_path() -> Path:
    """Return the default snapshot file path."""
    return get_data_dir() / SNAPSHOT_FILE_NAME

