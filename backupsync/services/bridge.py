"""Bridge to the privileged file-access side.

The file-access side knows where the local snapshot lives, reads its
bytes, emits the auto-backup event after data mutations, and holds a
read-only copy of the authenticated session. The UI side talks to it only
through ``PrivilegedBridge``: snapshot access, immutable session messages
and an event channel.

``LocalBridge`` connects to a ``FileAccessHost`` running in the same
process; a cross-process transport implements the same protocol.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)

AUTO_BACKUP_EVENT = "trigger-unified-auto-backup"

EventHandler = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class SharedSession:
    """Read-only session copy handed to the file-access side."""

    session_id: str
    user_id: str
    user_email: str
    session_secret: str
    jwt: str | None = None


@dataclass(frozen=True)
class SetSharedSession:
    """Replace the file-access side's session copy."""

    session: SharedSession


@dataclass(frozen=True)
class ClearSharedSession:
    """Drop the file-access side's session copy."""


@dataclass(frozen=True)
class SnapshotLocation:
    """Answer to a snapshot path query."""

    success: bool
    path: str | None = None
    error: str | None = None


class PrivilegedBridge(Protocol):
    """Operations the UI side may request from the file-access side."""

    async def get_current_snapshot_path(self) -> SnapshotLocation:
        ...

    async def read_snapshot_file(self, path: str) -> bytes | None:
        """Snapshot bytes, or None when the file cannot be read."""
        ...

    async def set_shared_session(self, session: SharedSession) -> None:
        ...

    async def clear_shared_session(self) -> None:
        ...

    def subscribe(self, event: str, handler: EventHandler) -> None:
        ...

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        ...


class FileAccessHost:
    """The privileged side: snapshot owner and event source.

    Session state arrives only as ``SetSharedSession`` /
    ``ClearSharedSession`` messages and is replaced wholesale, never
    edited.
    """

    def __init__(self, snapshot_path: str | Path | None = None) -> None:
        self._snapshot_path = Path(snapshot_path).expanduser() if snapshot_path else None
        self._session: SharedSession | None = None
        self._handlers: dict[str, list[EventHandler]] = {}

    @property
    def session(self) -> SharedSession | None:
        """Current session copy, if any."""
        return self._session

    @property
    def snapshot_path(self) -> Path | None:
        return self._snapshot_path

    def set_snapshot_path(self, path: str | Path | None) -> None:
        self._snapshot_path = Path(path).expanduser() if path else None

    def locate_snapshot(self) -> SnapshotLocation:
        """Report the snapshot path if the file exists."""
        if self._snapshot_path is None:
            return SnapshotLocation(success=False, error="No snapshot path configured")
        if not self._snapshot_path.is_file():
            return SnapshotLocation(
                success=False,
                error=f"Snapshot file not found: {self._snapshot_path}",
            )
        return SnapshotLocation(success=True, path=str(self._snapshot_path))

    def read_file(self, path: str) -> bytes | None:
        """Read snapshot bytes; None when the file is unreadable."""
        try:
            return Path(path).read_bytes()
        except OSError as e:
            logger.warning("Could not read snapshot %s: %s", path, e)
            return None

    def deliver(self, message: SetSharedSession | ClearSharedSession) -> None:
        """Apply a session message from the UI side."""
        if isinstance(message, SetSharedSession):
            self._session = message.session
            logger.info("Shared session set for user %s", message.session.user_id)
        elif isinstance(message, ClearSharedSession):
            self._session = None
            logger.info("Shared session cleared")
        else:
            raise TypeError(f"Unsupported bridge message: {type(message).__name__}")

    def add_handler(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def remove_handler(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def emit(self, event: str) -> None:
        """Deliver an event to every subscribed handler.

        Exceptions from individual handlers are caught and logged so one
        broken handler does not stop delivery to the others.
        """
        for handler in list(self._handlers.get(event, [])):
            try:
                await handler()
            except Exception as e:
                logger.error(
                    "Handler %s failed on %s: %s",
                    getattr(handler, "__qualname__", type(handler).__name__),
                    event,
                    e,
                )

    async def notify_data_changed(self) -> None:
        """Signal that local data mutated and an auto-backup is due."""
        await self.emit(AUTO_BACKUP_EVENT)


class LocalBridge:
    """PrivilegedBridge backed by an in-process FileAccessHost."""

    def __init__(self, host: FileAccessHost) -> None:
        self._host = host

    @property
    def host(self) -> FileAccessHost:
        return self._host

    async def get_current_snapshot_path(self) -> SnapshotLocation:
        return self._host.locate_snapshot()

    async def read_snapshot_file(self, path: str) -> bytes | None:
        return await asyncio.to_thread(self._host.read_file, path)

    async def set_shared_session(self, session: SharedSession) -> None:
        self._host.deliver(SetSharedSession(session))

    async def clear_shared_session(self) -> None:
        self._host.deliver(ClearSharedSession())

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._host.add_handler(event, handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        self._host.remove_handler(event, handler)
