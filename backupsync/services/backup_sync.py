"""Backup upload and reconciliation engine.

Drives one backup job at a time through

    idle -> preparing -> locating -> uploading -> reconciling -> verifying -> completed

with ``failed`` reachable from every working state. The same routine
serves automatic and manual backups; a ``BackupKind`` supplies naming,
retention and blob-reuse rules.

Each attempt is idempotent: it re-reads the snapshot, re-locates the
existing record and either updates it in place or creates it, so the
retry policy may re-run a whole attempt safely.

Example:
    engine = BackupSyncEngine(auth, catalog, backend, bridge, get_progress_reporter())
    result = await engine.run_auto_backup()
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable
from uuid import uuid4

from backupsync.errors import (
    AuthenticationError,
    BackupInProgressError,
    DomainError,
    IdentityCollisionError,
    IntegrityError,
    NotFoundError,
    RetryExhaustedError,
    TransientError,
    ValidationError,
)
from backupsync.services.auth_session import AuthSessionManager
from backupsync.services.backend_types import (
    BackupRecord,
    BlobInfo,
    BlobStore,
    utcnow,
)
from backupsync.services.backup_catalog import BackupCatalogClient
from backupsync.services.backup_kinds import (
    AUTO,
    AUTO_BACKUP_FILE_NAME,
    MANUAL,
    BackupKind,
    Retention,
)
from backupsync.services.bridge import PrivilegedBridge
from backupsync.services.progress import ProgressReporter, get_progress_reporter
from backupsync.services.results import BackupResult, CleanupResult, IntegrityResult
from backupsync.services.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    retry_with_backoff,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 0.5

AUTO_BACKUP_DISABLED = "Auto backup disabled"


class JobState(str, Enum):
    """Lifecycle of an upload job."""

    IDLE = "idle"
    PREPARING = "preparing"
    LOCATING = "locating"
    UPLOADING = "uploading"
    RECONCILING = "reconciling"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"


_PROGRESS_STEPS: dict[JobState, tuple[int, str]] = {
    JobState.PREPARING: (10, "Preparing backup..."),
    JobState.LOCATING: (30, "Checking existing backups..."),
    JobState.UPLOADING: (60, "Uploading backup..."),
    JobState.RECONCILING: (85, "Saving backup record..."),
    JobState.VERIFYING: (95, "Verifying backup..."),
}


@dataclass
class UploadJob:
    """One in-flight backup.

    Attributes:
        kind: Backup kind descriptor.
        file_name: Sanitized target name, fixed for the whole job.
        description: Record description.
        owner_user_id: Signed-in user at preparation time.
        data: Snapshot bytes read by the current attempt.
        state: Current lifecycle state.
        attempts: Attempts started so far.
        existing: Record found by the locating step.
        reuse_blob_id: Blob identity to upload under, if reused.
    """

    kind: BackupKind
    file_name: str
    description: str
    owner_user_id: str = ""
    data: bytes = b""
    state: JobState = JobState.IDLE
    attempts: int = 0
    existing: BackupRecord | None = None
    reuse_blob_id: str | None = None

    def advance(self, state: JobState) -> None:
        logger.debug("%s backup %s: %s -> %s", self.kind.name, self.file_name, self.state.value, state.value)
        self.state = state


class BackupSyncEngine:
    """Runs backup jobs against the catalog and blob store.

    At most one job runs per engine; a trigger arriving while one is
    active is answered with "Backup already in progress" before any
    network or bridge call.
    """

    def __init__(
        self,
        auth: AuthSessionManager,
        catalog: BackupCatalogClient,
        blobs: BlobStore,
        bridge: PrivilegedBridge,
        reporter: ProgressReporter | None = None,
        *,
        auto_backup_enabled: bool = True,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        clock: Callable[[], datetime] = utcnow,
        new_id: Callable[[], str] = lambda: uuid4().hex,
    ) -> None:
        """Initialize the engine.

        Args:
            auth: Session owner consulted before every job.
            catalog: Record lookups and mutations.
            blobs: Snapshot blob storage.
            bridge: File-access side providing snapshot bytes.
            reporter: Progress sink; the process-wide reporter by default.
            auto_backup_enabled: Whether automatic triggers run.
            max_attempts: Attempts per job including the first.
            base_delay: Delay before the second attempt; doubles after.
            settle_delay: Pause after deleting a blob before reusing its id.
            clock: Source of the current UTC time.
            new_id: Generator for fresh blob and record identities.
        """
        self._auth = auth
        self._catalog = catalog
        self._blobs = blobs
        self._bridge = bridge
        self._reporter = reporter or get_progress_reporter()
        self._auto_backup_enabled = auto_backup_enabled
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._settle_delay = settle_delay
        self._clock = clock
        self._new_id = new_id
        self._busy = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def auto_backup_enabled(self) -> bool:
        return self._auto_backup_enabled

    def set_auto_backup(self, enabled: bool) -> None:
        """Turn automatic backups on or off."""
        self._auto_backup_enabled = enabled
        logger.info("Auto backup %s", "enabled" if enabled else "disabled")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_auto_backup(self) -> BackupResult:
        """Back up into the singleton auto slot.

        Cleanup and integrity checks run first; their failures are logged
        and do not block the upload. Offline and signed-out failures come
        back flagged ``silent``.
        """
        if not self._auto_backup_enabled:
            return BackupResult(success=False, error=AUTO_BACKUP_DISABLED, silent=True)
        return await self.upload(AUTO, automatic=True)

    async def run_manual_backup(
        self,
        description: str = "",
        file_name: str | None = None,
    ) -> BackupResult:
        """Create a user-initiated backup.

        Args:
            description: Record description; a timestamped default when empty.
            file_name: Optional name; sanitized, timestamped default when None.
        """
        return await self.upload(MANUAL, description=description, file_name=file_name)

    async def upload(
        self,
        kind: BackupKind,
        description: str | None = None,
        file_name: str | None = None,
        *,
        automatic: bool = False,
    ) -> BackupResult:
        """Run one job of the given kind under the in-flight guard."""
        if self._busy:
            logger.info("Rejected %s backup: another backup is running", kind.name)
            return BackupResult.from_error(BackupInProgressError())
        self._busy = True
        try:
            if kind.retention is Retention.SINGLETON_SLOT and self._auth.is_authenticated():
                await self._maintain_slot()
            return await self._run_job(kind, description, file_name, automatic)
        finally:
            self._busy = False

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def _run_job(
        self,
        kind: BackupKind,
        description: str | None,
        requested_name: str | None,
        automatic: bool,
    ) -> BackupResult:
        now = self._clock()
        job = UploadJob(
            kind=kind,
            file_name=kind.file_name_for(now, requested_name),
            description=description or kind.default_description(now),
        )
        self._reporter.show_progress(f"Starting {kind.name} backup...")
        try:
            record = await self._execute(job)
        except DomainError as e:
            job.advance(JobState.FAILED)
            return self._job_failed(job, e, automatic)

        job.advance(JobState.COMPLETED)
        self._reporter.complete_backup("Backup completed successfully")
        logger.info(
            "%s backup %s completed (record %s, %d bytes, %d attempt(s))",
            kind.name, job.file_name, record.id, record.file_size_bytes, job.attempts,
        )
        return BackupResult.ok(
            state=JobState.COMPLETED.value,
            record=record,
            attempts=job.attempts,
            file_name=job.file_name,
        )

    async def _execute(self, job: UploadJob) -> BackupRecord:
        self._step(job, JobState.PREPARING)
        job.owner_user_id = self._auth.current_user_id()
        if job.kind.retention is Retention.APPEND_ONLY and job.file_name == AUTO_BACKUP_FILE_NAME:
            raise ValidationError.from_code("E-2004", details=f"'{AUTO_BACKUP_FILE_NAME}' is reserved")

        def on_retry(attempt: int, error: BaseException, delay: float) -> None:
            self._reporter.update_progress(
                _PROGRESS_STEPS[JobState.PREPARING][0],
                f"Retrying backup in {delay:g}s (attempt {attempt + 1}/{self._max_attempts})...",
            )

        attempt = retry_with_backoff(
            max_attempts=self._max_attempts,
            base_delay=self._base_delay,
            on_retry=on_retry,
        )(self._attempt)
        return await attempt(job)

    async def _attempt(self, job: UploadJob) -> BackupRecord:
        """One full prepare/locate/upload/reconcile/verify pass."""
        job.attempts += 1
        if job.attempts > 1:
            self._step(job, JobState.PREPARING)
        job.data = await self._read_snapshot()

        self._step(job, JobState.LOCATING)
        job.existing = await self._catalog.find_record(job.owner_user_id, job.file_name)
        job.reuse_blob_id = None
        if job.existing is not None and job.kind.reuse_blob:
            job.reuse_blob_id = job.existing.blob_id
            await self._discard_blob(job.existing.blob_id)
            await asyncio.sleep(self._settle_delay)

        self._step(job, JobState.UPLOADING)
        blob = await self._upload_blob(job)

        self._step(job, JobState.RECONCILING)
        try:
            record = await self._reconcile(job, blob)
        except DomainError:
            if blob.blob_id != job.reuse_blob_id:
                await self._discard_blob_best_effort(blob.blob_id)
            raise

        self._step(job, JobState.VERIFYING)
        return await self._verify(job, record)

    async def _read_snapshot(self) -> bytes:
        """Fetch snapshot bytes from the file-access side.

        Raises:
            TransientError: If the path is unknown or the read fails or
                comes back empty.
        """
        location = await self._bridge.get_current_snapshot_path()
        if not location.success or not location.path:
            raise TransientError.from_code("E-4001", details=location.error or "snapshot path unavailable")
        data = await self._bridge.read_snapshot_file(location.path)
        if not data:
            raise TransientError.from_code("E-4001", details=f"{location.path} could not be read")
        return data

    async def _upload_blob(self, job: UploadJob) -> BlobInfo:
        blob_id = job.reuse_blob_id or self._new_id()
        try:
            return await self._blobs.create_blob(blob_id, job.data, job.file_name)
        except IdentityCollisionError:
            fresh_id = self._new_id()
            logger.warning("Blob id %s already in use; uploading as %s", blob_id, fresh_id)
            return await self._blobs.create_blob(fresh_id, job.data, job.file_name)

    async def _reconcile(self, job: UploadJob, blob: BlobInfo) -> BackupRecord:
        """Update the located record in place, or create the first one."""
        existing = job.existing or await self._catalog.find_record(job.owner_user_id, job.file_name)
        now = self._clock()
        size = len(job.data)

        if existing is not None:
            record = await self._catalog.update_record(replace(
                existing,
                blob_id=blob.blob_id,
                file_size_bytes=size,
                uploaded_at=now,
                description=job.description,
            ))
            if job.kind.retention is Retention.APPEND_ONLY and existing.blob_id != blob.blob_id:
                await self._discard_blob_best_effort(existing.blob_id)
            return record

        record = BackupRecord(
            id=self._new_id(),
            owner_user_id=job.owner_user_id,
            file_name=job.file_name,
            blob_id=blob.blob_id,
            file_size_bytes=size,
            uploaded_at=now,
            version=1,
            description=job.description,
        )
        try:
            return await self._catalog.create_record(record)
        except IdentityCollisionError:
            record = replace(record, id=self._new_id())
            logger.warning("Record id collision; creating as %s", record.id)
            return await self._catalog.create_record(record)

    async def _verify(self, job: UploadJob, record: BackupRecord) -> BackupRecord:
        """Re-read the written record.

        Raises:
            IntegrityError: If the record is missing or points at another blob.
        """
        try:
            stored = await self._catalog.fetch_record(record.id)
        except NotFoundError as e:
            raise IntegrityError.from_code("E-4003", file_name=job.file_name) from e
        if stored.blob_id != record.blob_id:
            logger.error(
                "Record %s references blob %s, expected %s",
                stored.id, stored.blob_id, record.blob_id,
            )
            raise IntegrityError.from_code("E-4003", file_name=job.file_name)
        return stored

    async def _discard_blob(self, blob_id: str) -> None:
        """Delete a blob; a missing blob is fine."""
        try:
            await self._blobs.delete_blob(blob_id)
        except NotFoundError:
            logger.debug("Blob %s already absent", blob_id)

    async def _discard_blob_best_effort(self, blob_id: str) -> None:
        try:
            await self._discard_blob(blob_id)
        except DomainError as e:
            logger.warning("Could not delete blob %s: %s", blob_id, e.message)

    def _step(self, job: UploadJob, state: JobState) -> None:
        job.advance(state)
        percent, message = _PROGRESS_STEPS[state]
        self._reporter.update_progress(percent, message)

    def _job_failed(self, job: UploadJob, error: DomainError, automatic: bool) -> BackupResult:
        cause = error.last_error if isinstance(error, RetryExhaustedError) else error
        offline = isinstance(cause, DomainError) and cause.retryable
        silent = automatic and (offline or isinstance(error, AuthenticationError))
        if silent:
            logger.warning("%s backup skipped: %s", job.kind.name, error.message)
            self._reporter.hide_progress()
        else:
            logger.error(
                "%s backup %s failed in %s after %d attempt(s): %s",
                job.kind.name, job.file_name, job.state.value, job.attempts, error.message,
            )
            self._reporter.fail_backup("Backup failed")
        return BackupResult.from_error(
            error,
            state=JobState.FAILED.value,
            attempts=job.attempts,
            silent=silent,
            file_name=job.file_name,
        )

    # ------------------------------------------------------------------
    # Slot maintenance
    # ------------------------------------------------------------------

    async def _maintain_slot(self) -> None:
        cleanup = await self.cleanup_orphaned_backups()
        if not cleanup.success:
            logger.warning("Pre-backup cleanup failed: %s", cleanup.error)
        integrity = await self.verify_backup_integrity()
        if not integrity.success:
            logger.warning("Pre-backup integrity check failed: %s", integrity.error)

    async def cleanup_orphaned_backups(self) -> CleanupResult:
        """Collapse duplicate auto records to the most recent one.

        Each duplicate is removed on its own; a failed removal is logged
        and the pass continues. The result fails with the first error when
        any duplicate could not be removed, listing it under ``failed``.
        """
        try:
            owner = self._auth.current_user_id()
            records = [
                r for r in await self._catalog.find_records(owner, AUTO_BACKUP_FILE_NAME)
                if AUTO.matches(r.file_name)
            ]
        except DomainError as e:
            return CleanupResult.from_error(e)
        if len(records) <= 1:
            return CleanupResult.ok(kept=records[0] if records else None)

        latest = max(records, key=lambda r: r.uploaded_at)
        removed: list[str] = []
        failed: list[str] = []
        first_error: DomainError | None = None
        for record in records:
            if record.id == latest.id:
                continue
            try:
                await self._catalog.remove_record_and_blob(
                    record, delete_blob=record.blob_id != latest.blob_id,
                )
            except DomainError as e:
                logger.warning("Could not remove duplicate auto backup %s: %s", record.id, e.message)
                failed.append(record.id)
                first_error = first_error or e
                continue
            removed.append(record.id)

        logger.info("Removed %d duplicate auto backup record(s), kept %s", len(removed), latest.id)
        if first_error is not None:
            return CleanupResult.from_error(first_error, kept=latest, removed=removed, failed=failed)
        return CleanupResult.ok(kept=latest, removed=removed)

    async def verify_backup_integrity(self) -> IntegrityResult:
        """Delete the auto record if its blob is gone. Never raises."""
        try:
            owner = self._auth.current_user_id()
            record = await self._catalog.find_record(owner, AUTO_BACKUP_FILE_NAME)
            if record is None:
                return IntegrityResult.ok(has_backup=False)
            if await self._catalog.blob_exists(record.blob_id):
                return IntegrityResult.ok(has_backup=True, record=record)
            logger.warning(
                "Auto backup record %s references missing blob %s; removing it",
                record.id, record.blob_id,
            )
            await self._catalog.remove_record_and_blob(record, delete_blob=False)
        except DomainError as e:
            return IntegrityResult.from_error(e)
        return IntegrityResult.ok(has_backup=False, repaired=True)
