"""Tests for AutoBackupListener notification policy."""

import pytest

from backupsync.errors import BackupInProgressError, RetryExhaustedError, TransientError
from backupsync.services.auto_backup_listener import (
    NOT_LOGGED_IN_MESSAGE,
    OFFLINE_MESSAGE,
    AutoBackupListener,
    WarningThrottle,
)
from backupsync.services.backup_kinds import AUTO_BACKUP_FILE_NAME
from backupsync.services.results import BackupResult
from tests.helpers.snapshots import OWNER_EMAIL, OWNER_PASSWORD


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notices():
    return []


@pytest.fixture
def listener(engine, auth, bridge, notices, clock):
    return AutoBackupListener(
        engine, auth, bridge,
        notify=lambda message, level: notices.append((level, message)),
        throttle=WarningThrottle(interval=10.0, clock=clock),
    )


def test_throttle_window(clock):
    throttle = WarningThrottle(interval=10.0, clock=clock)

    assert throttle.should_emit("offline")
    clock.now = 9.9
    assert not throttle.should_emit("offline")
    assert throttle.should_emit("not_logged_in")
    clock.now = 10.0
    assert throttle.should_emit("offline")


def test_start_subscribes_once(listener, host):
    listener.start()
    listener.start()

    assert listener.started
    assert host.handler_count("trigger-unified-auto-backup") == 1

    listener.stop()
    assert host.handler_count("trigger-unified-auto-backup") == 0


@pytest.mark.asyncio
async def test_data_change_runs_auto_backup(listener, auth, backend, host, notices):
    await auth.login(OWNER_EMAIL, OWNER_PASSWORD)
    listener.start()

    await host.notify_data_changed()

    assert len(backend.records_named(AUTO_BACKUP_FILE_NAME)) == 1
    assert notices == []


@pytest.mark.asyncio
async def test_signed_out_warning_is_throttled(listener, backend, host, notices, clock):
    listener.start()

    await host.notify_data_changed()
    clock.now = 3.0
    await host.notify_data_changed()

    assert notices == [("warning", NOT_LOGGED_IN_MESSAGE)]
    assert backend.calls == []

    clock.now = 12.0
    await host.notify_data_changed()
    assert len(notices) == 2


def test_offline_failure_warns_once(listener, notices):
    exhausted = RetryExhaustedError(3, TransientError.from_code("E-3003"))
    result = BackupResult.from_error(exhausted, state="failed", silent=True)

    listener.handle_result(result)
    listener.handle_result(result)

    assert notices == [("warning", OFFLINE_MESSAGE)]


def test_in_progress_is_quiet(listener, notices):
    listener.handle_result(BackupResult.from_error(BackupInProgressError()))

    assert notices == []


def test_other_failures_surface_every_time(listener, notices):
    result = BackupResult(success=False, error="Backup 'auto-backup.sqlite' was uploaded but could not be verified.",
                          error_code="E-4003", error_kind="integrity")

    listener.handle_result(result)
    listener.handle_result(result)

    assert len(notices) == 2
    assert notices[0][0] == "error"
    assert notices[0][1].startswith("Auto backup failed: ")


def test_broken_notifier_is_contained(engine, auth, bridge):
    def broken(message, level):
        raise RuntimeError("toast failed")

    listener = AutoBackupListener(engine, auth, bridge, notify=broken)

    listener.handle_result(BackupResult(success=False, error="boom", error_kind="integrity"))
