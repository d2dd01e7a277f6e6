"""Attaching terminal sessions to existing tmux sessions."""

import os
import re
from collections.abc import Mapping

from ..terminal.session import TERM_TYPE, LaunchSpec, TmuxBinding
from ..utils.logging import (
    InvalidRequestError,
    InvalidTmuxSessionNameError,
    TmuxCommandError,
    TmuxSessionNotFoundError,
    TmuxUnavailableError,
)
from .detector import TmuxDetector
from .logging_utils import tmux_logger

SESSION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_session_name(name: str) -> str:
    """Return ``name`` if it is an acceptable tmux session name.

    Raises:
        InvalidTmuxSessionNameError: If the name has unexpected characters
            or length
    """
    if not isinstance(name, str) or not SESSION_NAME_PATTERN.fullmatch(name):
        raise InvalidTmuxSessionNameError(
            f"Invalid tmux session name: {name!r}", {"session_name": name}
        )
    return name


def strip_environment(environ: Mapping[str, str], prefix: str = "TMUX") -> dict[str, str]:
    """Copy ``environ`` without variables whose name starts with ``prefix``.

    A server started from inside tmux inherits TMUX and TMUX_PANE; passing
    them on makes the attach client refuse to nest.
    """
    return {key: value for key, value in environ.items() if not key.startswith(prefix)}


def build_attach_command(session_name: str, window_index: int | None = None) -> list[str]:
    """Build argv for ``tmux attach-session``; window 0 means the session default."""
    target = session_name
    if window_index:
        target = f"{session_name}:{window_index}"
    return ["tmux", "attach-session", "-t", target]


class TmuxAttachmentManager:
    """Validates attach requests and builds the launch for attach sessions."""

    def __init__(
        self,
        detector: TmuxDetector,
        env_prefix: str = "TMUX",
        environ: Mapping[str, str] | None = None,
    ):
        self.detector = detector
        self.env_prefix = env_prefix
        self._environ = environ

    def build_environment(self) -> dict[str, str]:
        env = strip_environment(
            os.environ if self._environ is None else self._environ, self.env_prefix
        )
        env["TERM"] = TERM_TYPE
        return env

    async def prepare(
        self, session_name: str, window_index: int | None = None
    ) -> LaunchSpec:
        """Check an attach request and return the launch for it.

        Raises:
            InvalidTmuxSessionNameError: If the name fails validation
            InvalidRequestError: If the window index is negative
            TmuxUnavailableError: If tmux is not installed
            TmuxSessionNotFoundError: If no such session exists
        """
        validate_session_name(session_name)
        if window_index is not None and window_index < 0:
            raise InvalidRequestError(
                f"Invalid tmux window index: {window_index}",
                {"window_index": window_index},
            )
        if not self.detector.is_available():
            raise TmuxUnavailableError("tmux is not installed")

        try:
            exists = await self.detector.has_session(session_name)
        except TmuxCommandError as e:
            # The attach client reports a missing session itself
            tmux_logger.warning(
                "tmux session check failed, attaching anyway",
                session_name=session_name,
                error=str(e),
            )
            exists = True

        if not exists:
            raise TmuxSessionNotFoundError(
                f"tmux session not found: {session_name}", {"session_name": session_name}
            )

        return LaunchSpec(
            argv=build_attach_command(session_name, window_index),
            env=self.build_environment(),
            cwd=None,
            shell_type="tmux",
            tmux=TmuxBinding(session_name, window_index or 0),
        )
