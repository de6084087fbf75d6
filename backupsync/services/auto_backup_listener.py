"""Automatic backup trigger handling.

Subscribes once to the file-access side's auto-backup event, runs the
auto backup, and decides what the user hears about it:

* signed out: a throttled "not logged in" warning, no backup attempt;
* offline / transient failure: a throttled warning;
* another backup already running: nothing;
* any other failure: surfaced every time.
"""

import logging
import time
from typing import Callable

from backupsync.errors import ErrorCategory
from backupsync.services.auth_session import AuthSessionManager
from backupsync.services.backup_sync import BackupSyncEngine
from backupsync.services.bridge import AUTO_BACKUP_EVENT, PrivilegedBridge
from backupsync.services.results import BackupResult

logger = logging.getLogger(__name__)

WARNING_INTERVAL_SECONDS = 10.0

NOT_LOGGED_IN_MESSAGE = "You are not logged in. Changes will NOT be backed up to the cloud."
OFFLINE_MESSAGE = "Cloud backup is unavailable right now. Changes will be backed up once the connection returns."

_IN_PROGRESS_CODE = "E-4004"

Notifier = Callable[[str, str], None]


class WarningThrottle:
    """Lets each warning key through at most once per interval."""

    def __init__(
        self,
        interval: float = WARNING_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = interval
        self._clock = clock
        self._last_emitted: dict[str, float] = {}

    def should_emit(self, key: str) -> bool:
        """True if ``key`` has not been emitted within the interval."""
        now = self._clock()
        last = self._last_emitted.get(key)
        if last is not None and now - last < self._interval:
            return False
        self._last_emitted[key] = now
        return True


def _log_notifier(message: str, level: str) -> None:
    logger.log(logging.getLevelName(level.upper()), message)


class AutoBackupListener:
    """Bridges auto-backup events to the sync engine."""

    def __init__(
        self,
        engine: BackupSyncEngine,
        auth: AuthSessionManager,
        bridge: PrivilegedBridge,
        notify: Notifier | None = None,
        throttle: WarningThrottle | None = None,
    ) -> None:
        """Initialize the listener.

        Args:
            engine: Engine running the auto backup.
            auth: Session owner, checked before each run.
            bridge: Event source.
            notify: ``(message, level)`` callback for user-visible
                messages; logs them when omitted.
            throttle: Rate limiter for repeated warnings.
        """
        self._engine = engine
        self._auth = auth
        self._bridge = bridge
        self._notify_cb = notify or _log_notifier
        self._throttle = throttle or WarningThrottle()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Subscribe to the auto-backup event. Repeated calls are no-ops."""
        if self._started:
            return
        self._bridge.subscribe(AUTO_BACKUP_EVENT, self.handle_event)
        self._started = True
        logger.info("Listening for %s", AUTO_BACKUP_EVENT)

    def stop(self) -> None:
        if not self._started:
            return
        self._bridge.unsubscribe(AUTO_BACKUP_EVENT, self.handle_event)
        self._started = False

    async def handle_event(self) -> None:
        """Run one auto backup in response to a data change."""
        if not self._auth.is_authenticated():
            self._warn("not_logged_in", NOT_LOGGED_IN_MESSAGE)
            return
        result = await self._engine.run_auto_backup()
        self.handle_result(result)

    def handle_result(self, result: BackupResult) -> None:
        """Apply the notification policy to an auto backup outcome."""
        if result.success:
            logger.info("Auto backup stored as %s", result.file_name)
            return
        if result.error_code == _IN_PROGRESS_CODE:
            logger.debug("Auto backup skipped: another backup is running")
            return
        if result.error_kind == ErrorCategory.AUTHENTICATION.value:
            self._warn("not_logged_in", NOT_LOGGED_IN_MESSAGE)
            return
        if result.silent:
            if result.error_kind == ErrorCategory.TRANSIENT.value:
                self._warn("offline", OFFLINE_MESSAGE)
            else:
                logger.debug("Auto backup not run: %s", result.error)
            return
        self._emit(f"Auto backup failed: {result.error}", "error")

    def _warn(self, key: str, message: str) -> None:
        if self._throttle.should_emit(key):
            self._emit(message, "warning")
        else:
            logger.debug("Suppressed repeated %s warning", key)

    def _emit(self, message: str, level: str) -> None:
        try:
            self._notify_cb(message, level)
        except Exception as e:
            logger.error("Notification callback failed: %s", e)
