"""Backup catalog: listing, lookup, download and deletion of records.

Two surfaces share this client:

* Raising primitives (``find_records``, ``create_record``, ...) used by
  the sync engine, which handles domain errors itself.
* Result-returning operations (``list_backups``, ``delete_backup``, ...)
  used by listing and restore flows; these never raise.

Every single-record read and every mutation checks that the record
belongs to the signed-in user.
"""

import asyncio
import logging
from pathlib import Path

from backupsync.errors import (
    AuthorizationError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from backupsync.services.auth_session import AuthSessionManager
from backupsync.services.backend_types import (
    BackupRecord,
    BlobStore,
    DocumentQuery,
    DocumentStore,
)
from backupsync.services.results import (
    BackupListResult,
    BackupRecordResult,
    DownloadReferenceResult,
    DownloadResult,
    ServiceResult,
    StorageUsageResult,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
SQLITE_HEADER = b"SQLite format 3\x00"

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """Human-readable size with 1024-based units.

    Examples:
        0 -> "0 B", 1536 -> "1.5 KB", 1048576 -> "1 MB"
    """
    if size <= 0:
        return "0 B"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exponent]}"


def is_sqlite_snapshot(data: bytes) -> bool:
    return data.startswith(SQLITE_HEADER)


def _write_snapshot(path: Path, data: bytes) -> None:
    """Write snapshot bytes and re-check the header on disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    with path.open("rb") as f:
        header = f.read(len(SQLITE_HEADER))
    if header != SQLITE_HEADER:
        path.unlink(missing_ok=True)
        raise ValidationError.from_code("E-2005", path=str(path))


class BackupCatalogClient:
    """Queries and mutations over the signed-in user's backup records."""

    def __init__(
        self,
        auth: AuthSessionManager,
        documents: DocumentStore,
        blobs: BlobStore,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._auth = auth
        self._documents = documents
        self._blobs = blobs
        self._page_size = page_size

    # ------------------------------------------------------------------
    # Raising primitives
    # ------------------------------------------------------------------

    async def find_records(
        self,
        owner_user_id: str,
        file_name: str | None = None,
        limit: int | None = None,
    ) -> list[BackupRecord]:
        """Records for an owner, newest first.

        Args:
            owner_user_id: Owning account.
            file_name: Optional exact file name filter.
            limit: Page size; defaults to the client's page size.
        """
        equals = {"userId": owner_user_id}
        if file_name is not None:
            equals["fileName"] = file_name
        documents = await self._documents.list_documents(DocumentQuery(
            equals=equals,
            order_by="uploadDate",
            descending=True,
            limit=limit or self._page_size,
        ))
        records = [BackupRecord.from_document(d) for d in documents]
        records.sort(key=lambda r: r.uploaded_at, reverse=True)
        return records

    async def find_record(self, owner_user_id: str, file_name: str) -> BackupRecord | None:
        """Newest record with this exact name, or None."""
        records = await self.find_records(owner_user_id, file_name)
        return records[0] if records else None

    async def fetch_record(self, record_id: str) -> BackupRecord:
        """Read one record by identity.

        Raises:
            NotFoundError: If the record does not exist.
        """
        return BackupRecord.from_document(await self._documents.get_document(record_id))

    async def create_record(self, record: BackupRecord) -> BackupRecord:
        document = await self._documents.create_document(record.id, record.to_document())
        return BackupRecord.from_document(document)

    async def update_record(self, record: BackupRecord) -> BackupRecord:
        document = await self._documents.update_document(record.id, record.to_document())
        return BackupRecord.from_document(document)

    async def blob_exists(self, blob_id: str) -> bool:
        try:
            await self._blobs.get_blob(blob_id)
        except NotFoundError:
            return False
        return True

    async def remove_record_and_blob(self, record: BackupRecord, *, delete_blob: bool = True) -> None:
        """Delete a record and (unless told otherwise) its blob.

        Missing blobs and already-deleted records are tolerated.
        """
        if delete_blob:
            try:
                await self._blobs.delete_blob(record.blob_id)
            except NotFoundError:
                logger.debug("Blob %s already gone", record.blob_id)
        try:
            await self._documents.delete_document(record.id)
        except NotFoundError:
            logger.debug("Record %s already gone", record.id)

    # ------------------------------------------------------------------
    # Result-returning operations
    # ------------------------------------------------------------------

    def _resolve_owner(self, owner_user_id: str | None) -> str:
        user_id = self._auth.current_user_id()
        owner = owner_user_id or user_id
        if owner != user_id:
            raise AuthorizationError(owner)
        return owner

    async def _get_owned(self, record_id: str) -> BackupRecord:
        user_id = self._auth.current_user_id()
        record = await self.fetch_record(record_id)
        if record.owner_user_id != user_id:
            logger.warning("User %s denied access to backup %s", user_id, record_id)
            raise AuthorizationError(record_id)
        return record

    async def list_backups(self, owner_user_id: str | None = None) -> BackupListResult:
        """List the owner's backups, newest first."""
        try:
            owner = self._resolve_owner(owner_user_id)
            records = await self.find_records(owner)
        except DomainError as e:
            return BackupListResult.from_error(e)
        return BackupListResult.ok(backups=records)

    async def get_backup(self, record_id: str) -> BackupRecordResult:
        try:
            record = await self._get_owned(record_id)
        except DomainError as e:
            return BackupRecordResult.from_error(e)
        return BackupRecordResult.ok(record=record)

    async def get_download_reference(self, record_id: str) -> DownloadReferenceResult:
        """URL from which the record's snapshot can be fetched."""
        try:
            record = await self._get_owned(record_id)
        except DomainError as e:
            return DownloadReferenceResult.from_error(e)
        return DownloadReferenceResult.ok(
            url=self._blobs.download_url(record.blob_id),
            file_name=record.file_name,
        )

    async def download_backup(self, record_id: str, dest_path: str | Path) -> DownloadResult:
        """Restore a backup's snapshot to a local file.

        Args:
            record_id: Backup to restore.
            dest_path: Target file, or a directory to write
                ``<file_name>`` into.

        Returns:
            DownloadResult with the written path. The SQLite header is
            checked on the downloaded bytes and again on disk.
        """
        try:
            record = await self._get_owned(record_id)
            data = await self._blobs.download_blob(record.blob_id)
            if not is_sqlite_snapshot(data):
                raise ValidationError.from_code("E-2005", path=record.file_name)
            target = Path(dest_path).expanduser()
            if target.is_dir():
                target = target / record.file_name
            await asyncio.to_thread(_write_snapshot, target, data)
        except DomainError as e:
            return DownloadResult.from_error(e)
        except OSError as e:
            return DownloadResult.from_error(DomainError.from_code("E-4005", details=str(e)))
        logger.info("Restored backup %s to %s (%d bytes)", record.id, target, len(data))
        return DownloadResult.ok(file_path=str(target), size_bytes=len(data))

    async def delete_backup(self, record_id: str) -> ServiceResult:
        """Delete a backup's blob and record together."""
        try:
            record = await self._get_owned(record_id)
            await self.remove_record_and_blob(record)
        except DomainError as e:
            return ServiceResult.from_error(e)
        logger.info("Deleted backup %s (%s)", record.id, record.file_name)
        return ServiceResult.ok()

    async def get_storage_usage(self, owner_user_id: str | None = None) -> StorageUsageResult:
        """Total bytes and record count for the owner."""
        try:
            owner = self._resolve_owner(owner_user_id)
            records = await self.find_records(owner)
        except DomainError as e:
            return StorageUsageResult.from_error(e)
        total = sum(r.file_size_bytes for r in records)
        return StorageUsageResult.ok(
            total_bytes=total,
            count=len(records),
            formatted=format_bytes(total),
        )
