"""Remote backend protocols and value types.

Defines the three primitive operation sets the sync engine consumes
(identity, structured documents, blobs). ``RemoteBackend`` implements all
three over HTTP; tests substitute an in-memory implementation. Callers
depend only on these protocols, never on a vendor SDK.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)


def parse_timestamp(value: str | datetime | None) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. ``None`` maps to the epoch so
    malformed rows sort last in newest-first listings.
    """
    if value is None or value == "":
        return datetime.fromtimestamp(0, UTC)
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass(frozen=True)
class UserProfile:
    """Identity of the signed-in account."""

    user_id: str
    email: str
    name: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "UserProfile":
        """Construct from identity-service JSON, tolerating extra fields."""
        return cls(
            user_id=data["$id"],
            email=data.get("email", ""),
            name=data.get("name", ""),
        )


@dataclass(frozen=True)
class RemoteSession:
    """A session issued by the identity service."""

    session_id: str
    user_id: str
    secret: str
    expires_at: datetime

    @classmethod
    def from_api(cls, data: dict) -> "RemoteSession":
        """Construct from identity-service JSON, tolerating extra fields."""
        return cls(
            session_id=data["$id"],
            user_id=data.get("userId", ""),
            secret=data.get("secret", ""),
            expires_at=parse_timestamp(data.get("expire")),
        )


@dataclass
class BackupRecord:
    """Metadata document describing one backup.

    Attributes:
        id: Document identity.
        owner_user_id: Owning account.
        file_name: Fixed auto-slot name or a timestamped manual name.
        blob_id: Non-owning reference into the blob store.
        file_size_bytes: Size of the referenced blob.
        uploaded_at: Upload time (UTC).
        version: Starts at 1; preserved across in-place updates.
        description: Human-readable summary.
    """

    id: str
    owner_user_id: str
    file_name: str
    blob_id: str
    file_size_bytes: int
    uploaded_at: datetime
    version: int = 1
    description: str = ""

    @classmethod
    def from_document(cls, data: dict) -> "BackupRecord":
        """Construct from a stored document, tolerating extra fields."""
        return cls(
            id=data["$id"],
            owner_user_id=data.get("userId", ""),
            file_name=data.get("fileName", ""),
            blob_id=data.get("fileId", ""),
            file_size_bytes=int(data.get("fileSize") or 0),
            uploaded_at=parse_timestamp(data.get("uploadDate")),
            version=int(data.get("version") or 1),
            description=data.get("description", ""),
        )

    def to_document(self) -> dict[str, Any]:
        """Document body (without identity) as stored remotely."""
        return {
            "userId": self.owner_user_id,
            "fileName": self.file_name,
            "fileId": self.blob_id,
            "fileSize": self.file_size_bytes,
            "uploadDate": self.uploaded_at.isoformat(),
            "version": self.version,
            "description": self.description,
        }


@dataclass(frozen=True)
class BlobInfo:
    """Metadata of a stored blob."""

    blob_id: str
    name: str
    size: int

    @classmethod
    def from_api(cls, data: dict) -> "BlobInfo":
        """Construct from blob-store JSON, tolerating extra fields."""
        return cls(
            blob_id=data["$id"],
            name=data.get("name", ""),
            size=int(data.get("sizeOriginal") or data.get("size") or 0),
        )


@dataclass(frozen=True)
class DocumentQuery:
    """Equality filters plus optional ordering and limit."""

    equals: dict[str, str] = field(default_factory=dict)
    order_by: str | None = None
    descending: bool = True
    limit: int | None = None


class IdentityService(Protocol):
    """Account and session operations of the identity provider."""

    def use_session(self, secret: str | None) -> None:
        """Attach (or detach, with None) a session credential to later calls."""
        ...

    async def create_account(self, user_id: str, email: str, password: str, name: str) -> UserProfile:
        ...

    async def create_session(self, email: str, password: str) -> RemoteSession:
        ...

    async def get_current_user(self) -> UserProfile:
        ...

    async def get_session(self, session_id: str = "current") -> RemoteSession:
        ...

    async def delete_session(self, session_id: str = "current") -> None:
        ...

    async def create_recovery(self, email: str, redirect_url: str) -> None:
        ...

    async def update_password(self, new_password: str, old_password: str) -> None:
        ...

    async def create_jwt(self) -> str:
        """Issue a short-lived bearer token for the current session."""
        ...


class DocumentStore(Protocol):
    """CRUD and simple queries over BackupRecord-shaped documents."""

    async def list_documents(self, query: DocumentQuery) -> list[dict]:
        ...

    async def get_document(self, document_id: str) -> dict:
        ...

    async def create_document(self, document_id: str, data: dict) -> dict:
        ...

    async def update_document(self, document_id: str, data: dict) -> dict:
        ...

    async def delete_document(self, document_id: str) -> None:
        ...


class BlobStore(Protocol):
    """Binary object storage addressed by blob identity."""

    async def create_blob(self, blob_id: str, data: bytes, file_name: str) -> BlobInfo:
        ...

    async def get_blob(self, blob_id: str) -> BlobInfo:
        ...

    async def download_blob(self, blob_id: str) -> bytes:
        ...

    async def delete_blob(self, blob_id: str) -> None:
        ...

    def download_url(self, blob_id: str) -> str:
        ...
