"""Process inspection utilities for terminal session processes."""

import signal

import psutil

from .logging import LogContext, get_logger

logger = get_logger(__name__, LogContext.SESSION)


def detect_cwd(pid: int) -> str | None:
    """Return the current working directory of a process.

    Args:
        pid: Process ID

    Returns:
        Absolute directory path, or None when the process is gone or
        its working directory cannot be read
    """
    try:
        return psutil.Process(pid).cwd()
    except (psutil.NoSuchProcess, psutil.ZombieProcess, psutil.AccessDenied):
        return None
    except OSError as e:
        logger.debug("Error reading process cwd", pid=pid, error=str(e))
        return None


def normalize_exit_code(returncode: int | None) -> int | None:
    """Map a subprocess return code to a shell-style exit code.

    Negative return codes mean the process was killed by a signal; they are
    reported as ``128 + signum`` the way shells do.
    """
    if returncode is None:
        return None
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
