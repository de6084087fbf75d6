"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./backupsync.yaml (working directory)
3. ~/.backupsync/config.yaml (user home)

Environment variables override YAML: BACKUPSYNC_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from backupsync.errors import ConfigurationError
from backupsync.services.keyring_store import SERVICE_NAME

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

_PLACEHOLDER_MARKERS = ("your_", "YOUR_")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class BackendConfig(BaseModel):
    """Remote identity/document/blob service coordinates."""

    endpoint: str = ""
    project_id: str = ""
    database_id: str = ""
    collection_id: str = ""
    bucket_id: str = ""
    timeout_seconds: float = Field(default=30.0, gt=0)


class AuthConfig(BaseModel):
    """Authentication timing and session storage."""

    timeout_seconds: float = Field(default=10.0, gt=0)
    renewal_margin_seconds: int = Field(default=300, ge=0)
    keyring_service: str = SERVICE_NAME
    recovery_url: str = ""


class BackupConfig(BaseModel):
    """Backup job behaviour."""

    auto_backup_enabled: bool = True
    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=2.0, ge=0)
    settle_delay_seconds: float = Field(default=0.5, ge=0)
    page_size: int = Field(default=50, ge=1)
    snapshot_path: str | None = None


class LoggingConfig(BaseModel):
    level: str = "warning"
    file: str | None = None


class BackupSyncConfig(BaseModel):
    """Top-level configuration for backupsync."""

    backend: BackendConfig = BackendConfig()
    auth: AuthConfig = AuthConfig()
    backup: BackupConfig = BackupConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "backupsync.yaml",
        Path.cwd() / "backupsync.yml",
        Path.home() / ".backupsync" / "config.yaml",
        Path.home() / ".backupsync" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply BACKUPSYNC_<SECTION>_<KEY> env var overrides to config data.

    ``BACKUPSYNC_BACKEND_PROJECT_ID`` maps to section ``backend``, field
    ``project_id``. Values stay strings (Pydantic coerces numbers) except
    ``true``/``false``, which become booleans.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    prefix = "BACKUPSYNC_"
    known_sections = sorted(
        BackupSyncConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if not isinstance(data.get(matched_section), dict):
            data[matched_section] = {}
        if value.lower() in ("true", "false"):
            data[matched_section][matched_field] = value.lower() == "true"
        else:
            data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> BackupSyncConfig:
    """Load configuration from YAML with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.backupsync/).

    Returns:
        Validated BackupSyncConfig. Without a config file, defaults plus
        any BACKUPSYNC_ environment overrides.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return BackupSyncConfig(**data)


def validate_backend_config(backend: BackendConfig) -> None:
    """Check that every backend coordinate is set and not a placeholder.

    Raises:
        ConfigurationError: Listing every problem found.
    """
    problems: list[str] = []
    for name in ("endpoint", "project_id", "database_id", "collection_id", "bucket_id"):
        value = getattr(backend, name)
        if not value:
            problems.append(f"Missing backend setting: {name}")
        elif any(marker in value for marker in _PLACEHOLDER_MARKERS):
            problems.append(f"Please update the placeholder value for: {name}")
    if backend.endpoint and not backend.endpoint.startswith("http"):
        problems.append("backend.endpoint must start with http:// or https://")
    if problems:
        raise ConfigurationError(problems)


def setup_instructions() -> list[str]:
    """Checklist for preparing the remote backup service."""
    return [
        "1. Create a project on the backup service",
        "2. Enable email/password authentication",
        "3. Create a database and a collection for backup records",
        "   (attributes: userId, fileName, fileId, fileSize, uploadDate, version, description)",
        "4. Create a storage bucket for snapshot files",
        "5. Fill in the backend section of backupsync.yaml",
        "   (or set BACKUPSYNC_BACKEND_* environment variables)",
        "6. Run `backupsync config validate`",
    ]
