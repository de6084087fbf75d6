"""Backup progress state and observer delivery.

Provides ProgressReporter, the single place backup jobs publish
"visible / percent / message / completed" state to. UI consumers
register observers implementing ``on_progress``.

One process-wide instance is created lazily by ``get_progress_reporter``;
components receive it through their constructors and tests swap it with
``set_progress_reporter``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

AUTO_HIDE_SECONDS = 2.0
FAILURE_HIDE_SECONDS = 3.0


@dataclass(frozen=True)
class ProgressState:
    """Snapshot of the progress indicator."""

    visible: bool = False
    percent: int = 0
    message: str = ""
    completed: bool = False


class ProgressObserver(Protocol):
    """Receives every progress state change."""

    def on_progress(self, state: ProgressState) -> None:
        ...


class ProgressReporter:
    """Publishes backup progress to registered observers.

    Exceptions from individual observers are caught and logged so one
    broken observer does not stop delivery to the others.
    """

    def __init__(
        self,
        auto_hide_seconds: float = AUTO_HIDE_SECONDS,
        failure_hide_seconds: float = FAILURE_HIDE_SECONDS,
    ) -> None:
        self._state = ProgressState()
        self._observers: list[ProgressObserver] = []
        self._hide_handle: asyncio.TimerHandle | None = None
        self._auto_hide_seconds = auto_hide_seconds
        self._failure_hide_seconds = failure_hide_seconds

    @property
    def state(self) -> ProgressState:
        """Current progress state."""
        return self._state

    def add_observer(self, observer: ProgressObserver) -> None:
        """Register an observer to receive progress updates."""
        self._observers.append(observer)

    def remove_observer(self, observer: ProgressObserver) -> None:
        """Unregister an observer."""
        self._observers.remove(observer)

    def show_progress(self, message: str) -> None:
        """Reveal the indicator at 0% with the given message."""
        self._cancel_auto_hide()
        self._publish(ProgressState(visible=True, percent=0, message=message))

    def update_progress(self, percent: float, message: str | None = None) -> None:
        """Move the indicator, clamping percent to 0..100.

        Args:
            percent: New completion percentage.
            message: New message; the previous one is kept when None.
        """
        clamped = int(max(0, min(100, percent)))
        self._publish(ProgressState(
            visible=True,
            percent=clamped,
            message=self._state.message if message is None else message,
            completed=self._state.completed,
        ))

    def complete_backup(self, message: str) -> None:
        """Mark the job complete and hide after the auto-hide delay."""
        self._publish(ProgressState(visible=True, percent=100, message=message, completed=True))
        self._schedule_hide(self._auto_hide_seconds)

    def fail_backup(self, message: str, hide_after: float | None = None) -> None:
        """Show a failure message at 100% and hide after a delay."""
        self._publish(ProgressState(visible=True, percent=100, message=message, completed=False))
        self._schedule_hide(self._failure_hide_seconds if hide_after is None else hide_after)

    def hide_progress(self) -> None:
        """Conceal the indicator immediately."""
        self._cancel_auto_hide()
        self._publish(ProgressState(
            visible=False,
            percent=self._state.percent,
            message=self._state.message,
            completed=self._state.completed,
        ))

    def _schedule_hide(self, delay: float) -> None:
        self._cancel_auto_hide()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop to defer on.
            self.hide_progress()
            return
        self._hide_handle = loop.call_later(delay, self._auto_hide)

    def _auto_hide(self) -> None:
        self._hide_handle = None
        self.hide_progress()

    def _cancel_auto_hide(self) -> None:
        if self._hide_handle is not None:
            self._hide_handle.cancel()
            self._hide_handle = None

    def _publish(self, state: ProgressState) -> None:
        self._state = state
        for observer in list(self._observers):
            try:
                observer.on_progress(state)
            except Exception as e:
                logger.error(
                    "Observer %s failed on_progress: %s",
                    type(observer).__name__,
                    e,
                )


_reporter: ProgressReporter | None = None


def get_progress_reporter() -> ProgressReporter:
    """Return the process-wide reporter, creating it on first use."""
    global _reporter
    if _reporter is None:
        _reporter = ProgressReporter()
    return _reporter


def set_progress_reporter(reporter: ProgressReporter | None) -> None:
    """Replace (or reset, with None) the process-wide reporter."""
    global _reporter
    _reporter = reporter
