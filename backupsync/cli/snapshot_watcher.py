"""SnapshotWatcher: filesystem watcher that triggers auto backups.

Monitors the directory holding the local snapshot. When the snapshot (or
one of its SQLite side files) changes, the event is debounced and the
file-access host is told that local data changed.

Uses the watchdog library. Thread events are bridged to the async loop
via call_soon_threadsafe.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Awaitable, Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 2.0

# SQLite writes land in these companions before the main file.
_SIDE_FILE_SUFFIXES = ("-wal", "-journal", "-shm")


def is_snapshot_file(file_path: str, snapshot_path: Path) -> bool:
    """Check whether a changed path belongs to the snapshot.

    Args:
        file_path: Path reported by the filesystem event.
        snapshot_path: The watched snapshot file.

    Returns:
        True for the snapshot itself and its -wal/-journal/-shm files.
    """
    name = Path(file_path).name
    if name == snapshot_path.name:
        return True
    return any(name == snapshot_path.name + suffix for suffix in _SIDE_FILE_SUFFIXES)


class _SnapshotChangeHandler(FileSystemEventHandler):
    """Debounces snapshot events, then fires one async callback.

    Waits ``debounce_seconds`` after the last event before firing, so a
    burst of writes from one transaction triggers a single backup.
    """

    def __init__(
        self,
        snapshot_path: Path,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[], Awaitable[Any]],
        debounce_seconds: float = DEBOUNCE_SECONDS,
    ):
        self._snapshot_path = snapshot_path
        self._loop = loop
        self._callback = callback
        self._debounce_seconds = debounce_seconds
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def on_created(self, event):
        if not event.is_directory:
            self._debounce(event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self._debounce(event.src_path)

    def on_moved(self, event):
        # Atomic replace: the new content arrives under the snapshot name.
        if not event.is_directory:
            self._debounce(event.dest_path)

    def _debounce(self, file_path: str) -> None:
        """Restart the debounce timer for a snapshot event.

        Runs on the watchdog observer thread; the event loop is only
        touched through call_soon_threadsafe.
        """
        if not is_snapshot_file(file_path, self._snapshot_path):
            return

        def _on_timer_expired():
            self._loop.call_soon_threadsafe(
                lambda: asyncio.ensure_future(self._fire())
            )

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._debounce_seconds, _on_timer_expired)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    async def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            await self._callback()
        except Exception:
            logger.exception("Snapshot change handler failed for %s", self._snapshot_path)


class SnapshotWatcher:
    """Watches the snapshot file and reports debounced changes."""

    def __init__(self, snapshot_path: Path, debounce_seconds: float = DEBOUNCE_SECONDS):
        """Initialize the watcher.

        Args:
            snapshot_path: Snapshot file to watch. Its directory must exist.
            debounce_seconds: Quiet period after the last event before firing.
        """
        self._snapshot_path = Path(snapshot_path)
        self._debounce_seconds = debounce_seconds
        self._observer: Observer | None = None
        self._handler: _SnapshotChangeHandler | None = None

    @property
    def snapshot_path(self) -> Path:
        return self._snapshot_path

    async def start(self, on_change: Callable[[], Awaitable[Any]]) -> None:
        """Start watching the snapshot's directory.

        Args:
            on_change: Async callback run once per debounced change.

        Raises:
            FileNotFoundError: If the snapshot directory does not exist.
        """
        folder = self._snapshot_path.parent
        if not folder.is_dir():
            raise FileNotFoundError(f"Snapshot directory does not exist: {folder}")

        loop = asyncio.get_running_loop()
        self._handler = _SnapshotChangeHandler(
            self._snapshot_path, loop, on_change, self._debounce_seconds,
        )
        self._observer = Observer()
        self._observer.schedule(self._handler, str(folder), recursive=False)
        self._observer.start()
        logger.info("Watching snapshot %s", self._snapshot_path)

    async def stop(self) -> None:
        """Stop the filesystem observer and drop any pending change."""
        if self._handler is not None:
            self._handler.cancel()
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5)
            self._observer = None
            logger.info("Snapshot watcher stopped")
