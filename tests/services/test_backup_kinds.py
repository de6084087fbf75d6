"""Tests for backup kind naming and matching."""

from datetime import UTC, datetime

from backupsync.services.backup_kinds import (
    AUTO,
    AUTO_BACKUP_FILE_NAME,
    DEFAULT_FILE_NAME,
    MANUAL,
    MAX_FILE_NAME_LENGTH,
    Retention,
    manual_file_name,
    sanitize_file_name,
)

NOW = datetime(2024, 5, 1, 10, 20, 30, 123456, tzinfo=UTC)


def test_auto_kind_uses_fixed_slot():
    assert AUTO.retention is Retention.SINGLETON_SLOT
    assert AUTO.file_name_for(NOW, "ignored.sqlite") == AUTO_BACKUP_FILE_NAME
    assert AUTO.matches(AUTO_BACKUP_FILE_NAME)
    assert not AUTO.matches("manual-backup-x.sqlite")


def test_manual_kind_is_timestamped():
    assert MANUAL.file_name_for(NOW) == "manual-backup-2024-05-01T10-20-30-123Z.sqlite"
    assert manual_file_name(NOW) == MANUAL.file_name_for(NOW)
    assert MANUAL.matches("anything.sqlite")
    assert not MANUAL.matches(AUTO_BACKUP_FILE_NAME)


def test_default_descriptions():
    assert AUTO.default_description(NOW) == f"Auto backup - {NOW.isoformat()}"
    assert MANUAL.default_description(NOW).startswith("Manual backup - 2024-05-01")


def test_sanitize_strips_unsafe_characters():
    assert sanitize_file_name("my backup (1).sqlite") == "mybackup1.sqlite"
    assert sanitize_file_name("../../etc/passwd") == "....etcpasswd"


def test_sanitize_falls_back_and_truncates():
    assert sanitize_file_name("") == DEFAULT_FILE_NAME
    assert sanitize_file_name("???") == DEFAULT_FILE_NAME
    assert sanitize_file_name(None) == DEFAULT_FILE_NAME
    assert len(sanitize_file_name("a" * 500)) == MAX_FILE_NAME_LENGTH
