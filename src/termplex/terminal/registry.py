"""Registry of live terminal sessions."""

import itertools
import threading
from collections.abc import Callable

from ..utils.logging import PtyError, SessionNotFoundError
from .logging_utils import log_session_event, session_logger
from .pty import PseudoTerminal
from .session import LaunchSpec, Session

PtyFactory = Callable[[], PseudoTerminal]


class SessionRegistry:
    """Concurrency-safe map of session id to session.

    Identifiers are ``s1``, ``s2``, ... and are never reused within a process.
    A session is removed only after its teardown has completed.
    """

    def __init__(
        self,
        pty_factory: PtyFactory | None = None,
        grace_period: float = 1.0,
    ) -> None:
        self._pty_factory = pty_factory or PseudoTerminal.open
        self.grace_period = grace_period
        self._lock = threading.RLock()
        self._sessions: dict[str, Session] = {}
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        """Allocate a fresh session identifier."""
        with self._lock:
            return f"s{next(self._counter)}"

    def create(self, launch: LaunchSpec) -> Session:
        """Allocate a pty and register a pending session for ``launch``.

        Raises:
            PtyError: If the pseudo-terminal cannot be allocated
        """
        session_id = self.next_id()
        try:
            pty = self._pty_factory()
        except OSError as e:
            raise PtyError(f"Failed to allocate pseudo-terminal: {e}")

        # "bash-1", "tmux-2", ...
        name = f"{launch.shell_type}-{session_id[1:]}"
        session = Session(session_id, pty, launch, name)

        with self._lock:
            self._sessions[session_id] = session

        log_session_event(
            session_id,
            "created",
            session_name=name,
            device_path=pty.device_path,
            tmux_session=launch.tmux.session_name if launch.tmux else None,
        )
        return session

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(
                f"Session not found: {session_id}", {"session_id": session_id}
            )
        return session

    def list(self) -> list[Session]:
        """Snapshot of live sessions in creation order."""
        with self._lock:
            return list(self._sessions.values())

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    async def resize(self, session_id: str, rows: int, cols: int) -> bool:
        """Resize a session; returns True if this started its process."""
        return await self.require(session_id).resize(rows, cols)

    async def close(self, session_id: str, detach: bool = False) -> bool:
        """Tear down and remove a session.

        Unknown or already-closed identifiers are a no-op.

        Returns:
            True if this call tore the session down
        """
        session = self.get(session_id)
        if session is None:
            return False

        closed = await session.close(detach=detach, grace_period=self.grace_period)

        with self._lock:
            if self._sessions.get(session_id) is session:
                del self._sessions[session_id]
        return closed

    async def close_all(self) -> None:
        sessions = self.list()
        if sessions:
            session_logger.info("Closing all sessions", count=len(sessions))
        for session in sessions:
            await self.close(session.id)
