"""Tests for the file-access host and in-process bridge."""

import pytest

from backupsync.services.bridge import (
    AUTO_BACKUP_EVENT,
    FileAccessHost,
    LocalBridge,
    SharedSession,
)
from tests.helpers.snapshots import snapshot_bytes


def _session() -> SharedSession:
    return SharedSession(
        session_id="session-1",
        user_id="user-owner",
        user_email="owner@example.com",
        session_secret="secret-1",
    )


class TestSnapshotAccess:
    """Tests for snapshot path lookup and reads."""

    @pytest.mark.asyncio
    async def test_locates_and_reads_snapshot(self, bridge, snapshot_file):
        location = await bridge.get_current_snapshot_path()

        assert location.success
        assert location.path == str(snapshot_file)
        assert await bridge.read_snapshot_file(location.path) == snapshot_bytes()

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        bridge = LocalBridge(FileAccessHost(tmp_path / "absent.sqlite"))

        location = await bridge.get_current_snapshot_path()

        assert not location.success
        assert "Snapshot file not found" in location.error

    @pytest.mark.asyncio
    async def test_unconfigured_path(self):
        location = await LocalBridge(FileAccessHost()).get_current_snapshot_path()

        assert location.error == "No snapshot path configured"

    @pytest.mark.asyncio
    async def test_unreadable_file_reads_as_none(self, bridge, tmp_path):
        assert await bridge.read_snapshot_file(str(tmp_path / "gone.sqlite")) is None


class TestSharedSession:
    """Tests for session messages."""

    @pytest.mark.asyncio
    async def test_set_and_clear(self, bridge, host):
        await bridge.set_shared_session(_session())
        assert host.session == _session()

        await bridge.clear_shared_session()
        assert host.session is None

    def test_unknown_message_rejected(self, host):
        with pytest.raises(TypeError):
            host.deliver(_session())


class TestEvents:
    """Tests for the auto-backup event channel."""

    @pytest.mark.asyncio
    async def test_data_change_reaches_subscribers(self, bridge, host):
        received = []

        async def handler():
            received.append("fired")

        bridge.subscribe(AUTO_BACKUP_EVENT, handler)
        await host.notify_data_changed()

        assert received == ["fired"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, bridge, host):
        received = []

        async def broken():
            raise RuntimeError("handler bug")

        async def handler():
            received.append("fired")

        bridge.subscribe(AUTO_BACKUP_EVENT, broken)
        bridge.subscribe(AUTO_BACKUP_EVENT, handler)
        await host.notify_data_changed()

        assert received == ["fired"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bridge, host):
        async def handler():
            pass

        bridge.subscribe(AUTO_BACKUP_EVENT, handler)
        bridge.unsubscribe(AUTO_BACKUP_EVENT, handler)

        assert host.handler_count(AUTO_BACKUP_EVENT) == 0
