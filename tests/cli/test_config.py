"""Tests for CLI configuration loading and validation."""

import pytest
import yaml
from pydantic import ValidationError as PydanticValidationError

from backupsync.cli.config import (
    BackendConfig,
    BackupConfig,
    BackupSyncConfig,
    load_config,
    resolve_env_vars,
    setup_instructions,
    validate_backend_config,
)
from backupsync.errors import ConfigurationError

FULL_BACKEND = {
    "endpoint": "https://cloud.example.com/v1",
    "project_id": "proj-123",
    "database_id": "pos",
    "collection_id": "backups",
    "bucket_id": "snapshots",
}


@pytest.fixture(autouse=True)
def _clear_backupsync_env(monkeypatch):
    """Keep developer BACKUPSYNC_* variables out of these tests."""
    import os
    for key in list(os.environ):
        if key.startswith("BACKUPSYNC_"):
            monkeypatch.delenv(key)


class TestDefaults:
    """Tests for model defaults and validation."""

    def test_backup_defaults(self):
        cfg = BackupConfig()
        assert cfg.auto_backup_enabled is True
        assert cfg.max_attempts == 3
        assert cfg.base_delay_seconds == 2.0
        assert cfg.settle_delay_seconds == 0.5
        assert cfg.snapshot_path is None

    def test_top_level_defaults(self):
        cfg = BackupSyncConfig()
        assert cfg.auth.timeout_seconds == 10.0
        assert cfg.auth.renewal_margin_seconds == 300
        assert cfg.logging.level == "warning"

    def test_rejects_zero_attempts(self):
        with pytest.raises(PydanticValidationError):
            BackupConfig(max_attempts=0)


class TestResolveEnvVars:
    """Tests for ${VAR} resolution."""

    def test_resolves_known_var(self, monkeypatch):
        monkeypatch.setenv("POS_PROJECT", "proj-xyz")
        assert resolve_env_vars("id-${POS_PROJECT}") == "id-proj-xyz"

    def test_missing_var_is_empty(self, monkeypatch):
        monkeypatch.delenv("POS_MISSING", raising=False)
        assert resolve_env_vars("${POS_MISSING}") == ""


class TestLoadConfig:
    """Tests for YAML loading and env overrides."""

    def test_loads_yaml(self, tmp_path):
        config_file = tmp_path / "backupsync.yaml"
        config_file.write_text(yaml.dump({"backend": FULL_BACKEND, "backup": {"max_attempts": 5}}))

        cfg = load_config(str(config_file))

        assert cfg.backend.project_id == "proj-123"
        assert cfg.backup.max_attempts == 5

    def test_resolves_env_references(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POS_BUCKET", "bucket-from-env")
        config_file = tmp_path / "backupsync.yaml"
        config_file.write_text("backend:\n  bucket_id: ${POS_BUCKET}\n")

        cfg = load_config(str(config_file))

        assert cfg.backend.bucket_id == "bucket-from-env"

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        config_file = tmp_path / "backupsync.yaml"
        config_file.write_text(yaml.dump({"backend": FULL_BACKEND}))
        monkeypatch.setenv("BACKUPSYNC_BACKEND_PROJECT_ID", "proj-override")
        monkeypatch.setenv("BACKUPSYNC_BACKUP_AUTO_BACKUP_ENABLED", "false")
        monkeypatch.setenv("BACKUPSYNC_BACKUP_BASE_DELAY_SECONDS", "0.25")

        cfg = load_config(str(config_file))

        assert cfg.backend.project_id == "proj-override"
        assert cfg.backup.auto_backup_enabled is False
        assert cfg.backup.base_delay_seconds == 0.25

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_no_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        cfg = load_config()

        assert cfg.backend.endpoint == ""


class TestValidateBackend:
    """Tests for validate_backend_config."""

    def test_complete_config_passes(self):
        validate_backend_config(BackendConfig(**FULL_BACKEND))

    def test_lists_every_missing_setting(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_backend_config(BackendConfig(endpoint="https://cloud.example.com/v1"))

        assert exc_info.value.problems == [
            "Missing backend setting: project_id",
            "Missing backend setting: database_id",
            "Missing backend setting: collection_id",
            "Missing backend setting: bucket_id",
        ]

    def test_flags_placeholders(self):
        values = dict(FULL_BACKEND, project_id="your_project_id")
        with pytest.raises(ConfigurationError) as exc_info:
            validate_backend_config(BackendConfig(**values))

        assert exc_info.value.problems == ["Please update the placeholder value for: project_id"]

    def test_endpoint_scheme(self):
        values = dict(FULL_BACKEND, endpoint="cloud.example.com")
        with pytest.raises(ConfigurationError) as exc_info:
            validate_backend_config(BackendConfig(**values))

        assert "backend.endpoint must start with http:// or https://" in exc_info.value.problems


def test_setup_instructions_mention_validate():
    steps = setup_instructions()
    assert steps[0].startswith("1.")
    assert any("backupsync config validate" in step for step in steps)
