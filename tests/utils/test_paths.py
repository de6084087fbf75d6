"""Tests for per-user file path resolution."""

from pathlib import Path
from unittest.mock import patch

from backupsync.utils.paths import (
    SNAPSHOT_FILE_NAME,
    get_data_dir,
    get_default_snapshot_path,
)


def test_get_data_dir_returns_path():
    """Data dir should be a valid Path."""
    assert isinstance(get_data_dir(), Path)


def test_get_data_dir_uses_platformdirs():
    """Data dir comes from platformdirs under the app bundle id."""
    with patch("backupsync.utils.paths.platformdirs.user_data_dir", return_value="/data/com.backupsync.app") as mock_dir:
        result = get_data_dir()

    mock_dir.assert_called_once_with("com.backupsync.app", appauthor=False)
    assert result == Path("/data/com.backupsync.app")


def test_get_default_snapshot_path():
    """Default snapshot path combines data dir + pos.sqlite."""
    result = get_default_snapshot_path()
    assert result.name == SNAPSHOT_FILE_NAME
    assert result.parent == get_data_dir()
