"""Terminal session model and lifecycle."""

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from ..utils.logging import InvalidRequestError, SpawnError
from .logging_utils import log_session_error, log_session_event
from .pty import PseudoTerminal

TERM_TYPE = "xterm-256color"


class SessionState(Enum):
    """Lifecycle state of a terminal session."""

    PENDING = "pending"  # pty allocated, process not started
    RUNNING = "running"
    CLOSED = "closed"


@dataclass(frozen=True)
class TmuxBinding:
    """The tmux session (and window) an attach session is bound to."""

    session_name: str
    window_index: int = 0

    @property
    def target(self) -> str:
        if self.window_index > 0:
            return f"{self.session_name}:{self.window_index}"
        return self.session_name


@dataclass
class LaunchSpec:
    """Everything needed to start the process of a session."""

    argv: list[str]
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    shell_type: str = "sh"
    tmux: TmuxBinding | None = None

    @property
    def is_attach(self) -> bool:
        return self.tmux is not None


def build_shell_launch(
    shell: str,
    login: bool = True,
    cwd: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LaunchSpec:
    """Build the launch of a plain shell session.

    A requested ``cwd`` that is not an existing directory falls back to the
    user's home directory.
    """
    env = dict(os.environ if environ is None else environ)
    env["TERM"] = TERM_TYPE

    start_dir = str(Path.home())
    if cwd and os.path.isdir(cwd):
        start_dir = cwd

    argv = [shell, "-l"] if login else [shell]
    return LaunchSpec(
        argv=argv,
        env=env,
        cwd=start_dir,
        shell_type=os.path.basename(shell) or "sh",
    )


class Session:
    """One interactive terminal: a pty, the process on it and its metadata.

    The process is not started at creation. The first resize applies the real
    window size and then starts it, so the program never sees the 80x24
    placeholder.
    """

    def __init__(
        self, session_id: str, pty: PseudoTerminal, launch: LaunchSpec, name: str
    ):
        self.id = session_id
        self.pty = pty
        self.launch = launch
        self.name = name
        self.rows = 24
        self.cols = 80
        self.state = SessionState.PENDING
        self.created_at = datetime.now()
        self.cwd = launch.cwd or str(Path.home())
        self.attached_tmux_session = ""
        self.exit_code: int | None = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def shell_type(self) -> str:
        return self.launch.shell_type

    @property
    def tmux(self) -> TmuxBinding | None:
        return self.launch.tmux

    @property
    def is_attach(self) -> bool:
        return self.launch.is_attach

    @property
    def device_path(self) -> str:
        return self.pty.device_path

    @property
    def pid(self) -> int | None:
        return self.pty.pid

    @property
    def is_running(self) -> bool:
        return self.state is SessionState.RUNNING

    async def resize(self, rows: int, cols: int) -> bool:
        """Apply a window size, starting the process on the first call.

        Returns:
            True if this call started the process

        Raises:
            InvalidRequestError: If either dimension is not positive
            SpawnError: If the process could not be started
        """
        if rows <= 0 or cols <= 0:
            raise InvalidRequestError(
                f"Invalid terminal size {rows}x{cols}", {"session_id": self.id}
            )

        async with self._lifecycle_lock:
            if self.state is SessionState.CLOSED:
                return False

            self.pty.resize(rows, cols)
            self.rows, self.cols = rows, cols

            if self.state is SessionState.PENDING:
                try:
                    pid = await self.pty.spawn(
                        self.launch.argv, self.launch.env, self.launch.cwd
                    )
                except SpawnError as e:
                    log_session_error(self.id, "start", e)
                    raise
                self.state = SessionState.RUNNING
                log_session_event(
                    self.id, "started", pid=pid, rows=rows, cols=cols
                )
                return True

        return False

    async def close(self, detach: bool = False, grace_period: float = 1.0) -> bool:
        """Tear the session down; safe to call repeatedly.

        Plain sessions signal the whole process group. Attach sessions, and
        any close with ``detach``, signal only the spawned client so the tmux
        server and its sessions survive.

        Returns:
            True if this call performed the teardown
        """
        async with self._lifecycle_lock:
            if self.state is SessionState.CLOSED:
                return False

            group = not (detach or self.is_attach)
            exit_code = await self.pty.terminate(group=group, grace_period=grace_period)
            if self.exit_code is None:
                self.exit_code = exit_code
            self.state = SessionState.CLOSED

        log_session_event(
            self.id,
            "detached" if not group else "closed",
            exit_code=self.exit_code,
        )
        return True

    def to_dict(self) -> dict[str, Any]:
        """Summary used by the sessions API."""
        info: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "shellType": self.shell_type,
            "state": self.state.value,
            "rows": self.rows,
            "cols": self.cols,
            "cwd": self.cwd,
            "createdAt": self.created_at.isoformat(),
            "attachedTmuxSession": self.attached_tmux_session,
        }
        if self.tmux:
            info["tmuxSessionName"] = self.tmux.session_name
            info["tmuxWindowIndex"] = self.tmux.window_index
        return info
