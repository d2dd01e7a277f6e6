"""
tmux attachment monitor.

A single polling loop runs two schedules:

- clients: maps each live session's pty to the tmux session a client on it is
  attached to, and reports changes
- sessions: refreshes the cached session list and reports changes

Failed queries reuse the last good result. After repeated consecutive
failures a schedule doubles its interval, up to a ceiling; the next success
restores the base interval.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..protocol import TmuxSessionRecord
from ..terminal.registry import SessionRegistry
from ..utils.logging import TmuxCommandError
from .detector import TmuxDetector
from .logging_utils import (
    log_attachment_changes,
    log_backoff,
    log_session_list,
    tmux_logger,
)

MIN_CLIENT_INTERVAL = 0.5
MAX_CLIENT_INTERVAL = 30.0

StatusCallback = Callable[[dict[str, str]], Awaitable[Any]]
SessionsCallback = Callable[[list[TmuxSessionRecord]], Awaitable[Any]]


class MonitorState(Enum):
    """State of the monitor."""

    DISABLED = "disabled"  # tmux not installed
    IDLE = "idle"
    POLLING = "polling"


@dataclass
class PollSchedule:
    """Interval bookkeeping for one polling schedule."""

    name: str
    base_interval: float
    failure_threshold: int = 3
    max_interval: float = 30.0
    failures: int = 0
    interval: float = field(init=False)

    def __post_init__(self) -> None:
        self.interval = self.base_interval

    @property
    def backed_off(self) -> bool:
        return self.failures >= self.failure_threshold

    def record_success(self) -> None:
        self.failures = 0
        self.interval = self.base_interval

    def record_failure(self) -> None:
        self.failures += 1
        if self.backed_off:
            exponent = self.failures - self.failure_threshold + 1
            self.interval = min(self.base_interval * (2**exponent), self.max_interval)
            log_backoff(self.name, self.failures, self.interval)

    def set_base(self, interval: float) -> None:
        self.base_interval = interval
        if not self.backed_off:
            self.interval = interval


class TmuxMonitor:
    """Periodically polls tmux and reports attachment and session changes."""

    def __init__(
        self,
        detector: TmuxDetector,
        registry: SessionRegistry,
        client_interval: float = 2.0,
        session_interval: float = 5.0,
        failure_threshold: int = 3,
        max_backoff: float = 30.0,
        on_status_change: StatusCallback | None = None,
        on_sessions_change: SessionsCallback | None = None,
    ):
        self.detector = detector
        self.registry = registry
        self.on_status_change = on_status_change
        self.on_sessions_change = on_sessions_change
        self.state = MonitorState.IDLE
        self.clients_schedule = PollSchedule(
            "clients", client_interval, failure_threshold, max_backoff
        )
        self.sessions_schedule = PollSchedule(
            "sessions", session_interval, failure_threshold, max_backoff
        )
        self._last_clients: dict[str, str] = {}
        self._last_sessions: list[TmuxSessionRecord] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return self.state is not MonitorState.DISABLED

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the polling loop.

        Returns:
            False if tmux is not installed; the monitor is then disabled and
            reports nothing
        """
        if self.running:
            return True
        if not self.detector.is_available():
            self.state = MonitorState.DISABLED
            tmux_logger.info("tmux not found on PATH, attachment monitoring disabled")
            return False

        self.state = MonitorState.IDLE
        self._task = asyncio.create_task(self._run(), name="tmux-monitor")
        tmux_logger.info(
            "tmux monitor started",
            client_interval=self.clients_schedule.interval,
            session_interval=self.sessions_schedule.interval,
        )
        return True

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self.enabled:
            self.state = MonitorState.IDLE
        tmux_logger.debug("tmux monitor stopped")

    def update_interval(self, seconds: float) -> float:
        """Change the client polling interval, clamped to [0.5s, 30s].

        Returns:
            The interval actually applied
        """
        interval = min(max(seconds, MIN_CLIENT_INTERVAL), MAX_CLIENT_INTERVAL)
        self.clients_schedule.set_base(interval)
        tmux_logger.info("tmux client poll interval updated", interval=interval)
        return interval

    def get_last_sessions(self) -> list[TmuxSessionRecord]:
        """Most recent successful session list (a copy)."""
        return list(self._last_sessions)

    async def poll_clients(self) -> dict[str, str]:
        """Refresh attached-session annotations of live sessions.

        Returns:
            Session id -> attached tmux session name ("" when detached) for
            every session whose annotation changed
        """
        sessions = [s for s in self.registry.list() if s.is_running]
        if not sessions:
            return {}

        self.state = MonitorState.POLLING
        try:
            clients = await self.detector.list_clients()
        except TmuxCommandError as e:
            self.clients_schedule.record_failure()
            tmux_logger.warning(
                "tmux client query failed, reusing last result",
                error=str(e),
                failures=self.clients_schedule.failures,
            )
            clients = self._last_clients
        else:
            self._last_clients = clients
            self.clients_schedule.record_success()

        changes: dict[str, str] = {}
        for session in sessions:
            attached = clients.get(session.device_path, "")
            if session.attached_tmux_session != attached:
                session.attached_tmux_session = attached
                changes[session.id] = attached

        log_attachment_changes(changes)
        if changes and self.on_status_change:
            await self._publish(self.on_status_change, dict(changes))
        return changes

    async def poll_sessions(self) -> list[TmuxSessionRecord]:
        """Refresh the cached session list, reporting it when it changed."""
        self.state = MonitorState.POLLING
        try:
            sessions = await self.detector.list_sessions()
        except TmuxCommandError as e:
            self.sessions_schedule.record_failure()
            tmux_logger.warning(
                "tmux session query failed, reusing last result",
                error=str(e),
                failures=self.sessions_schedule.failures,
            )
            return self.get_last_sessions()

        self.sessions_schedule.record_success()
        changed = sessions != self._last_sessions
        log_session_list(sessions, changed)
        if changed:
            self._last_sessions = list(sessions)
            if self.on_sessions_change:
                await self._publish(self.on_sessions_change, list(sessions))
        return list(sessions)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_clients = next_sessions = loop.time()

        while True:
            now = loop.time()
            if now >= next_clients:
                await self._poll_guarded(self.poll_clients, self.clients_schedule)
                next_clients = loop.time() + self.clients_schedule.interval
            if now >= next_sessions:
                await self._poll_guarded(self.poll_sessions, self.sessions_schedule)
                next_sessions = loop.time() + self.sessions_schedule.interval

            self.state = MonitorState.IDLE
            delay = min(next_clients, next_sessions) - loop.time()
            await asyncio.sleep(max(delay, 0.0))

    async def _poll_guarded(
        self, poll: Callable[[], Awaitable[Any]], schedule: PollSchedule
    ) -> None:
        try:
            await poll()
        except Exception as e:
            schedule.record_failure()
            tmux_logger.error(
                "Error in tmux poll cycle",
                exception=e,
                failures=schedule.failures,
            )

    async def _publish(self, callback: Callable[[Any], Awaitable[Any]], payload: Any) -> None:
        try:
            await callback(payload)
        except Exception as e:
            tmux_logger.error("tmux change notification failed", exception=e)
