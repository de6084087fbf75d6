"""Root-level pytest fixtures for all tests.

Provides shared fixtures for service tests:
- In-memory backend with one registered account
- File-access host with a snapshot file on disk
- Wired session manager, catalog and sync engine (no backoff delays)
"""

from pathlib import Path

import pytest

from backupsync.services.auth_session import AuthSessionManager
from backupsync.services.backup_catalog import BackupCatalogClient
from backupsync.services.backup_sync import BackupSyncEngine
from backupsync.services.bridge import FileAccessHost, LocalBridge
from backupsync.services.progress import ProgressReporter, set_progress_reporter
from tests.helpers.in_memory_backend import InMemoryBackend, MemoryKeyringStore
from tests.helpers.snapshots import (
    OWNER_EMAIL,
    OWNER_PASSWORD,
    RecordingObserver,
    snapshot_bytes,
)

@pytest.fixture(autouse=True)
def _reset_progress_reporter():
    """Each test starts without a process-wide reporter."""
    set_progress_reporter(None)
    yield
    set_progress_reporter(None)


@pytest.fixture
def backend() -> InMemoryBackend:
    backend = InMemoryBackend()
    backend.add_account(OWNER_EMAIL, OWNER_PASSWORD, name="Owner", user_id="user-owner")
    return backend


@pytest.fixture
def snapshot_file(tmp_path: Path) -> Path:
    path = tmp_path / "pos.sqlite"
    path.write_bytes(snapshot_bytes())
    return path


@pytest.fixture
def host(snapshot_file: Path) -> FileAccessHost:
    return FileAccessHost(snapshot_file)


@pytest.fixture
def bridge(host: FileAccessHost) -> LocalBridge:
    return LocalBridge(host)


@pytest.fixture
def keyring_store() -> MemoryKeyringStore:
    return MemoryKeyringStore()


@pytest.fixture
def auth(backend, bridge, keyring_store) -> AuthSessionManager:
    return AuthSessionManager(backend, bridge=bridge, store=keyring_store)


@pytest.fixture
def catalog(auth, backend) -> BackupCatalogClient:
    return BackupCatalogClient(auth, backend, backend)


@pytest.fixture
def reporter() -> ProgressReporter:
    return ProgressReporter()


@pytest.fixture
def progress_log(reporter) -> RecordingObserver:
    observer = RecordingObserver()
    reporter.add_observer(observer)
    return observer


@pytest.fixture
def engine(auth, catalog, backend, bridge, reporter) -> BackupSyncEngine:
    return BackupSyncEngine(
        auth, catalog, backend, bridge, reporter,
        base_delay=0.0,
        settle_delay=0.0,
    )
