"""Tests for component wiring."""

import pytest

from backupsync.cli.config import BackendConfig, BackupConfig, BackupSyncConfig
from backupsync.cli.factory import build_app_context
from backupsync.errors import ConfigurationError
from backupsync.services.progress import get_progress_reporter
from backupsync.services.remote_backend import RemoteBackend


def _config(tmp_path, **backup) -> BackupSyncConfig:
    return BackupSyncConfig(
        backend=BackendConfig(
            endpoint="https://cloud.example.com/v1",
            project_id="proj-123",
            database_id="pos",
            collection_id="backups",
            bucket_id="snapshots",
        ),
        backup=BackupConfig(snapshot_path=str(tmp_path / "pos.sqlite"), **backup),
    )


class TestBuildAppContext:
    """Tests for build_app_context."""

    def test_wires_shared_backend(self, tmp_path):
        ctx = build_app_context(_config(tmp_path))

        assert isinstance(ctx.backend, RemoteBackend)
        assert ctx.host.snapshot_path == tmp_path / "pos.sqlite"
        assert ctx.bridge.host is ctx.host
        assert ctx.reporter is get_progress_reporter()

    def test_backup_settings_reach_engine(self, tmp_path):
        ctx = build_app_context(_config(tmp_path, auto_backup_enabled=False))

        assert ctx.engine.auto_backup_enabled is False

    def test_incomplete_backend_is_rejected(self, tmp_path):
        cfg = BackupSyncConfig(backup=BackupConfig(snapshot_path=str(tmp_path / "pos.sqlite")))

        with pytest.raises(ConfigurationError):
            build_app_context(cfg)

    def test_injected_backend_skips_validation(self, tmp_path):
        backend = RemoteBackend("https://x.test", "p", "d", "c", "b")
        cfg = BackupSyncConfig(backup=BackupConfig(snapshot_path=str(tmp_path / "pos.sqlite")))

        ctx = build_app_context(cfg, backend=backend)

        assert ctx.backend is backend
