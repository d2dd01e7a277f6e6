"""
Read-only tmux queries.

Queries go through ``libtmux.Server.cmd`` in a worker thread, bounded by a
timeout. A missing tmux server is not an error: it means there is nothing to
report.
"""

import asyncio
import shutil

import libtmux
from libtmux.exc import LibTmuxException

from ..protocol import TmuxSessionRecord
from ..utils.logging import TmuxCommandError
from .logging_utils import log_tmux_query

CLIENT_FORMAT = "#{client_tty}\t#{session_name}"
SESSION_FORMAT = "#{session_name}\t#{session_windows}\t#{session_attached}"

_NO_SERVER_MARKERS = ("no server running", "error connecting to")


def parse_tmux_clients(lines: list[str]) -> dict[str, str]:
    """Parse ``list-clients`` output into a tty path -> session name map.

    Malformed lines are skipped.
    """
    clients: dict[str, str] = {}
    for line in lines:
        parts = line.strip("\r\n").split("\t")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            continue
        clients[parts[0]] = parts[1]
    return clients


def parse_tmux_sessions(lines: list[str]) -> list[TmuxSessionRecord]:
    """Parse ``list-sessions`` output into records.

    Malformed lines, including non-numeric counts, are skipped.
    """
    sessions: list[TmuxSessionRecord] = []
    for line in lines:
        parts = line.strip("\r\n").split("\t")
        if len(parts) != 3 or not parts[0]:
            continue
        try:
            windows = int(parts[1])
            attached = int(parts[2])
        except ValueError:
            continue
        sessions.append(
            TmuxSessionRecord(name=parts[0], windows=windows, attached=attached)
        )
    return sessions


def _is_no_server(stderr: list[str]) -> bool:
    text = " ".join(stderr).lower()
    return any(marker in text for marker in _NO_SERVER_MARKERS)


class TmuxDetector:
    """Queries the local tmux server."""

    def __init__(self, timeout: float = 5.0, server: libtmux.Server | None = None):
        self.timeout = timeout
        self._server = server or libtmux.Server()

    def is_available(self) -> bool:
        """Whether a tmux binary is on PATH."""
        return shutil.which("tmux") is not None

    async def list_clients(self) -> dict[str, str]:
        """Map each attached client's tty path to its session name."""
        lines = await self._query("list-clients", "-F", CLIENT_FORMAT)
        return parse_tmux_clients(lines)

    async def list_sessions(self) -> list[TmuxSessionRecord]:
        """List sessions on the server; empty when no server is running."""
        lines = await self._query("list-sessions", "-F", SESSION_FORMAT)
        return parse_tmux_sessions(lines)

    async def has_session(self, name: str) -> bool:
        """Check whether a session named exactly ``name`` exists."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._server.has_session, name),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise TmuxCommandError(
                f"tmux has-session timed out after {self.timeout}s",
                {"session_name": name},
            )
        except LibTmuxException as e:
            raise TmuxCommandError(f"tmux has-session failed: {e}", {"session_name": name})

    async def _query(self, command: str, *args: str) -> list[str]:
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._server.cmd, command, *args),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            log_tmux_query(command, "error", {"reason": "timeout"})
            raise TmuxCommandError(f"tmux {command} timed out after {self.timeout}s")
        except LibTmuxException as e:
            log_tmux_query(command, "error", {"reason": str(e)})
            raise TmuxCommandError(f"tmux {command} failed: {e}")

        if result.returncode:
            if _is_no_server(result.stderr):
                log_tmux_query(command, "empty", {"reason": "no server"})
                return []
            stderr = " ".join(result.stderr)
            log_tmux_query(command, "error", {"returncode": result.returncode})
            raise TmuxCommandError(
                f"tmux {command} exited with {result.returncode}: {stderr}",
                {"returncode": result.returncode},
            )

        log_tmux_query(command, "success", {"lines": len(result.stdout)})
        return list(result.stdout)
