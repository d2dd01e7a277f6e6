"""
Terminal sessions for termplex.

This package provides:
- Pseudo-terminal allocation and process lifecycle
- The session registry
- Per-session output/input bridges
"""

from .bridge import SessionBridge
from .pty import PseudoTerminal
from .registry import SessionRegistry
from .session import (
    LaunchSpec,
    Session,
    SessionState,
    TmuxBinding,
    build_shell_launch,
)

__all__ = [
    "LaunchSpec",
    "PseudoTerminal",
    "Session",
    "SessionBridge",
    "SessionRegistry",
    "SessionState",
    "TmuxBinding",
    "build_shell_launch",
]
