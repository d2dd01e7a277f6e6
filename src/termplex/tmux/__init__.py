"""
tmux integration for termplex.

This package provides:
- Read-only queries against the local tmux server
- Attachment monitoring with failure back-off
- Attach sessions bound to existing tmux sessions
"""

from .attach import (
    TmuxAttachmentManager,
    build_attach_command,
    strip_environment,
    validate_session_name,
)
from .detector import TmuxDetector, parse_tmux_clients, parse_tmux_sessions
from .monitor import MonitorState, PollSchedule, TmuxMonitor

__all__ = [
    "MonitorState",
    "PollSchedule",
    "TmuxAttachmentManager",
    "TmuxDetector",
    "TmuxMonitor",
    "build_attach_command",
    "parse_tmux_clients",
    "parse_tmux_sessions",
    "strip_environment",
    "validate_session_name",
]
