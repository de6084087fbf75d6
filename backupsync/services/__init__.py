"""Service layer for backupsync.

Provides session management, the backup upload engine, the backup
catalog and progress reporting.
"""

from backupsync.services.auth_session import AuthSession, AuthSessionManager
from backupsync.services.backup_catalog import BackupCatalogClient, format_bytes
from backupsync.services.backup_sync import BackupSyncEngine, JobState
from backupsync.services.progress import (
    ProgressReporter,
    ProgressState,
    get_progress_reporter,
    set_progress_reporter,
)

__all__ = [
    "AuthSession",
    "AuthSessionManager",
    "BackupCatalogClient",
    "BackupSyncEngine",
    "JobState",
    "ProgressReporter",
    "ProgressState",
    "format_bytes",
    "get_progress_reporter",
    "set_progress_reporter",
]
