"""Backup kind descriptors.

The sync engine runs one reconciliation routine for every kind of backup;
what differs between kinds lives here: how the record is named, how the
kind's records are recognised, whether a new upload replaces the previous
one in place, and whether the previous blob identity is reused.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

AUTO_BACKUP_FILE_NAME = "auto-backup.sqlite"
MANUAL_BACKUP_PREFIX = "manual-backup-"
DEFAULT_FILE_NAME = "backup.sqlite"
MAX_FILE_NAME_LENGTH = 128

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class Retention(str, Enum):
    """What happens to a kind's previous record on a new upload."""

    SINGLETON_SLOT = "singleton_slot"  # one record, updated in place
    APPEND_ONLY = "append_only"  # every upload is its own record


def sanitize_file_name(name: str | None) -> str:
    """Make a user-supplied name safe for the remote stores.

    Drops characters outside ``[A-Za-z0-9._-]``, falls back to
    ``backup.sqlite`` when nothing remains, and caps the length.
    """
    cleaned = _UNSAFE_CHARS.sub("", name or "")
    if not cleaned:
        return DEFAULT_FILE_NAME
    return cleaned[:MAX_FILE_NAME_LENGTH]


def manual_file_name(now: datetime) -> str:
    """Timestamped manual name, e.g. ``manual-backup-2024-05-01T10-20-30-123Z.sqlite``."""
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S") + f"-{now.microsecond // 1000:03d}Z"
    return f"{MANUAL_BACKUP_PREFIX}{stamp}.sqlite"


@dataclass(frozen=True)
class BackupKind:
    """Parameters of one backup kind.

    Attributes:
        name: Short label used in logs and results.
        retention: Replace-in-place or append-only.
        naming: ``(now, requested_name) -> file_name``.
        matches: Predicate recognising this kind's records by file name.
        reuse_blob: Upload under the existing record's blob identity.
        description_prefix: Default description before the timestamp.
    """

    name: str
    retention: Retention
    naming: Callable[[datetime, str | None], str]
    matches: Callable[[str], bool]
    reuse_blob: bool
    description_prefix: str

    def file_name_for(self, now: datetime, requested: str | None = None) -> str:
        """Sanitized file name for a new job of this kind."""
        return sanitize_file_name(self.naming(now, requested))

    def default_description(self, now: datetime) -> str:
        return f"{self.description_prefix} - {now.isoformat()}"


AUTO = BackupKind(
    name="auto",
    retention=Retention.SINGLETON_SLOT,
    naming=lambda now, requested: AUTO_BACKUP_FILE_NAME,
    matches=lambda file_name: file_name == AUTO_BACKUP_FILE_NAME,
    reuse_blob=True,
    description_prefix="Auto backup",
)

MANUAL = BackupKind(
    name="manual",
    retention=Retention.APPEND_ONLY,
    naming=lambda now, requested: requested if requested else manual_file_name(now),
    matches=lambda file_name: file_name != AUTO_BACKUP_FILE_NAME,
    reuse_blob=False,
    description_prefix="Manual backup",
)
