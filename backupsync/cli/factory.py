"""Component wiring for CLI commands.

CLI commands never construct services directly; ``build_app_context``
assembles the backend, bridge, session manager, catalog and engine from a
loaded config.
"""

from dataclasses import dataclass
from datetime import timedelta

from backupsync.cli.config import BackupSyncConfig, validate_backend_config
from backupsync.services.auth_session import AuthSessionManager
from backupsync.services.backup_catalog import BackupCatalogClient
from backupsync.services.backup_sync import BackupSyncEngine
from backupsync.services.bridge import FileAccessHost, LocalBridge
from backupsync.services.keyring_store import KeyringStore
from backupsync.services.progress import ProgressReporter, get_progress_reporter
from backupsync.services.remote_backend import RemoteBackend
from backupsync.utils.paths import get_default_snapshot_path


@dataclass
class AppContext:
    """Everything a CLI command needs, sharing one backend client."""

    backend: RemoteBackend
    host: FileAccessHost
    bridge: LocalBridge
    auth: AuthSessionManager
    catalog: BackupCatalogClient
    engine: BackupSyncEngine
    reporter: ProgressReporter

    async def __aenter__(self) -> "AppContext":
        await self.backend.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.backend.aclose()


def build_app_context(config: BackupSyncConfig, backend: RemoteBackend | None = None) -> AppContext:
    """Wire services from configuration.

    Args:
        config: Loaded configuration.
        backend: Pre-built backend (tests inject one over a fake transport).

    Raises:
        ConfigurationError: If the backend section is incomplete.
    """
    if backend is None:
        validate_backend_config(config.backend)
        backend = RemoteBackend.from_config(config.backend)

    host = FileAccessHost(config.backup.snapshot_path or get_default_snapshot_path())
    bridge = LocalBridge(host)
    reporter = get_progress_reporter()
    auth = AuthSessionManager(
        backend,
        bridge=bridge,
        store=KeyringStore(config.auth.keyring_service),
        timeout=config.auth.timeout_seconds,
        renewal_margin=timedelta(seconds=config.auth.renewal_margin_seconds),
    )
    catalog = BackupCatalogClient(auth, backend, backend, page_size=config.backup.page_size)
    engine = BackupSyncEngine(
        auth,
        catalog,
        backend,
        bridge,
        reporter,
        auto_backup_enabled=config.backup.auto_backup_enabled,
        max_attempts=config.backup.max_attempts,
        base_delay=config.backup.base_delay_seconds,
        settle_delay=config.backup.settle_delay_seconds,
    )
    return AppContext(
        backend=backend,
        host=host,
        bridge=bridge,
        auth=auth,
        catalog=catalog,
        engine=engine,
        reporter=reporter,
    )
