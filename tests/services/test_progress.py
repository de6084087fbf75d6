"""Tests for ProgressReporter."""

import asyncio

import pytest

from backupsync.services.progress import (
    ProgressReporter,
    get_progress_reporter,
    set_progress_reporter,
)
from tests.helpers.snapshots import RecordingObserver


def test_show_then_update_clamps_percent(reporter, progress_log):
    reporter.show_progress("Starting")
    reporter.update_progress(150, "Too far")
    reporter.update_progress(-3)

    assert [s.percent for s in progress_log.states] == [0, 100, 0]
    assert progress_log.states[-1].message == "Too far"
    assert all(s.visible for s in progress_log.states)


def test_complete_without_event_loop_hides_immediately(reporter, progress_log):
    reporter.complete_backup("Done")

    assert progress_log.states[-2].completed is True
    assert progress_log.states[-1].visible is False


@pytest.mark.asyncio
async def test_complete_hides_after_delay(progress_log):
    reporter = ProgressReporter(auto_hide_seconds=0.01)
    reporter.add_observer(progress_log)

    reporter.complete_backup("Done")
    assert reporter.state.visible is True

    await asyncio.sleep(0.05)
    assert reporter.state.visible is False
    assert reporter.state.completed is True


@pytest.mark.asyncio
async def test_new_job_cancels_pending_hide():
    reporter = ProgressReporter(auto_hide_seconds=0.01)

    reporter.complete_backup("Done")
    reporter.show_progress("Next job")
    await asyncio.sleep(0.05)

    assert reporter.state.visible is True
    assert reporter.state.message == "Next job"


@pytest.mark.asyncio
async def test_fail_shows_message_not_completed():
    reporter = ProgressReporter(failure_hide_seconds=10)

    reporter.fail_backup("Backup failed")

    assert reporter.state.visible is True
    assert reporter.state.percent == 100
    assert reporter.state.completed is False
    reporter.hide_progress()


def test_broken_observer_does_not_stop_others(reporter, progress_log):
    class Broken:
        def on_progress(self, state):
            raise RuntimeError("render failed")

    reporter.add_observer(Broken())
    second = RecordingObserver()
    reporter.add_observer(second)

    reporter.show_progress("Starting")

    assert second.messages == ["Starting"]


def test_remove_observer(reporter, progress_log):
    reporter.remove_observer(progress_log)
    reporter.show_progress("Starting")

    assert progress_log.states == []


def test_process_wide_reporter():
    first = get_progress_reporter()
    assert get_progress_reporter() is first

    replacement = ProgressReporter()
    set_progress_reporter(replacement)
    assert get_progress_reporter() is replacement
