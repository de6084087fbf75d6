"""Uniform result shapes returned across component boundaries.

Every public operation returns a ``ServiceResult`` subclass instead of
raising: ``success`` plus, on failure, a human-readable ``error``, its
registry ``error_code`` and the ``error_kind`` classification string.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from backupsync.errors import DomainError, error_payload
from backupsync.services.backend_types import BackupRecord, UserProfile


@dataclass
class ServiceResult:
    """Base result: success flag plus optional classified error."""

    success: bool
    error: str | None = None
    error_code: str | None = None
    error_kind: str | None = None

    @classmethod
    def ok(cls, **payload: Any) -> "ServiceResult":
        """Successful result carrying the given payload fields."""
        return cls(success=True, **payload)

    @classmethod
    def from_error(cls, error: DomainError, **payload: Any) -> "ServiceResult":
        """Failed result built from a domain error."""
        fields = error_payload(error)
        fields.pop("reason", None)
        return cls(success=False, **fields, **payload)

    def as_dict(self) -> dict[str, Any]:
        """Plain-dict view for JSON output."""
        return asdict(self)


@dataclass
class AuthResult(ServiceResult):
    """Outcome of an AuthSessionManager operation."""

    user: UserProfile | None = None
    reason: str | None = None

    @classmethod
    def from_error(cls, error: DomainError, **payload: Any) -> "AuthResult":
        """Failed result that also carries the authentication failure reason."""
        fields = error_payload(error)
        return cls(success=False, **fields, **payload)


@dataclass
class BackupResult(ServiceResult):
    """Outcome of a backup job.

    Attributes:
        state: Terminal job state ("completed" or "failed"), or "idle"
            when the job was rejected before starting.
        record: The verified record on success.
        attempts: Number of attempts the retry policy used.
        silent: True when an automatic run failed for an expected reason
            (offline, disabled) that the UI should not surface loudly.
    """

    state: str = "idle"
    record: BackupRecord | None = None
    attempts: int = 0
    silent: bool = False
    file_name: str | None = None


@dataclass
class BackupListResult(ServiceResult):
    """Records for one owner, newest first."""

    backups: list[BackupRecord] = field(default_factory=list)


@dataclass
class BackupRecordResult(ServiceResult):
    """A single record."""

    record: BackupRecord | None = None


@dataclass
class DownloadReferenceResult(ServiceResult):
    """URL where the record's blob can be fetched."""

    url: str | None = None
    file_name: str | None = None


@dataclass
class DownloadResult(ServiceResult):
    """Local path a backup was restored to."""

    file_path: str | None = None
    size_bytes: int = 0


@dataclass
class StorageUsageResult(ServiceResult):
    """Aggregate storage used by one owner."""

    total_bytes: int = 0
    count: int = 0
    formatted: str = "0 B"


@dataclass
class CleanupResult(ServiceResult):
    """Outcome of the duplicate auto-record cleanup pass."""

    kept: BackupRecord | None = None
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class IntegrityResult(ServiceResult):
    """Outcome of the auto-record integrity check.

    Attributes:
        has_backup: True when a verified auto-record exists.
        repaired: True when a dangling record was deleted.
    """

    has_backup: bool = False
    repaired: bool = False
    record: BackupRecord | None = None
