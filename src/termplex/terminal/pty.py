"""
Pseudo-terminal adapter.

Allocates a master/slave pair, applies window sizes, starts a process with the
slave as its controlling terminal and exposes non-blocking async I/O on the
master side.
"""

import asyncio
import errno
import fcntl
import os
import signal
import struct
import subprocess  # nosec B404
import termios
from collections.abc import Mapping, Sequence

from ..utils.logging import PtyError, SpawnError
from ..utils.process import normalize_exit_code, signal_name
from .logging_utils import pty_logger

READ_CHUNK_SIZE = 4096


def _acquire_controlling_tty() -> None:
    """Make stdin (the slave device) the controlling terminal of the child."""
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PseudoTerminal:
    """A master/slave pseudo-terminal pair and the process running on it.

    The pair is allocated up front so the slave device path is known before
    any process exists. The process is started later by :meth:`spawn`.
    """

    def __init__(self, master_fd: int, slave_fd: int, device_path: str):
        self._master_fd: int | None = master_fd
        self._slave_fd: int | None = slave_fd
        self.device_path = device_path
        self._process: asyncio.subprocess.Process | None = None
        self._waiters: set[asyncio.Future[None]] = set()
        self._closed = False

    @classmethod
    def open(cls, rows: int = 24, cols: int = 80) -> "PseudoTerminal":
        """Allocate a new pair sized ``rows`` x ``cols``.

        Raises:
            PtyError: If the operating system refuses the allocation
        """
        try:
            master_fd, slave_fd = os.openpty()
        except OSError as e:
            raise PtyError(f"Failed to allocate pseudo-terminal: {e}")

        try:
            device_path = os.ttyname(slave_fd)
            os.set_blocking(master_fd, False)
        except OSError as e:
            os.close(master_fd)
            os.close(slave_fd)
            raise PtyError(f"Failed to configure pseudo-terminal: {e}")

        pty = cls(master_fd, slave_fd, device_path)
        pty.resize(rows, cols)
        pty_logger.debug("Pseudo-terminal allocated", device_path=device_path)
        return pty

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def started(self) -> bool:
        return self._process is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exit_code(self) -> int | None:
        if self._process is None:
            return None
        return normalize_exit_code(self._process.returncode)

    def resize(self, rows: int, cols: int) -> None:
        """Apply a window size; a running foreground job receives SIGWINCH."""
        if self._master_fd is None:
            raise PtyError("Pseudo-terminal is closed")
        try:
            fcntl.ioctl(
                self._master_fd,
                termios.TIOCSWINSZ,
                struct.pack("HHHH", rows, cols, 0, 0),
            )
        except OSError as e:
            raise PtyError(f"Failed to resize pseudo-terminal: {e}")

    async def spawn(
        self,
        argv: Sequence[str],
        env: Mapping[str, str],
        cwd: str | None = None,
    ) -> int:
        """Start ``argv`` with the slave as stdin, stdout, stderr and controlling tty.

        The child runs in a new session, so its pid is also its process group id.
        On success the parent's copy of the slave is closed.

        Returns:
            Process ID of the child

        Raises:
            SpawnError: If the process is already started or cannot be executed
        """
        if self._process is not None or self._slave_fd is None:
            raise SpawnError("Process already started on this pseudo-terminal")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=self._slave_fd,
                stdout=self._slave_fd,
                stderr=self._slave_fd,
                env=dict(env),
                cwd=cwd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise SpawnError(
                f"Failed to start {argv[0] if argv else 'process'}: {e}",
                {"argv": list(argv), "cwd": cwd},
            )

        os.close(self._slave_fd)
        self._slave_fd = None
        pty_logger.info(
            "Process started", pid=self._process.pid, device_path=self.device_path
        )
        return self._process.pid

    async def read(self, size: int = READ_CHUNK_SIZE) -> bytes:
        """Read available output; returns ``b""`` at end of stream."""
        while True:
            if self._master_fd is None:
                return b""
            try:
                return os.read(self._master_fd, size)
            except BlockingIOError:
                await self._wait_ready(readable=True)
            except OSError as e:
                # Linux reports EIO once every slave descriptor is closed
                if e.errno == errno.EIO:
                    return b""
                raise PtyError(f"Failed to read from pseudo-terminal: {e}")

    async def write(self, data: bytes) -> None:
        """Write all of ``data`` to the terminal input."""
        view = memoryview(data)
        while view:
            if self._master_fd is None:
                raise PtyError("Pseudo-terminal is closed")
            try:
                written = os.write(self._master_fd, view)
                view = view[written:]
            except BlockingIOError:
                await self._wait_ready(readable=False)
            except OSError as e:
                raise PtyError(f"Failed to write to pseudo-terminal: {e}")

    async def wait(self) -> int | None:
        """Wait for the process to exit and return its exit code."""
        if self._process is None:
            return None
        await self._process.wait()
        return self.exit_code

    async def terminate(self, group: bool = True, grace_period: float = 1.0) -> int | None:
        """Stop the process and release both descriptors.

        Sends SIGHUP, then SIGKILL if the process outlives ``grace_period``.
        With ``group`` the signals go to the whole process group; otherwise
        only the direct child is signalled. Repeated calls are no-ops.

        Returns:
            Exit code of the process, or None if it was never started
        """
        if self._closed:
            return self.exit_code
        self._closed = True

        process = self._process
        if process is not None and process.returncode is None:
            self._signal(process.pid, signal.SIGHUP, group)
            try:
                await asyncio.wait_for(process.wait(), timeout=grace_period)
            except asyncio.TimeoutError:
                pty_logger.warning(
                    "Process ignored SIGHUP, force killing", pid=process.pid
                )
                self._signal(process.pid, signal.SIGKILL, group)
                await process.wait()

        self._close_fds()
        pty_logger.debug(
            "Pseudo-terminal closed",
            device_path=self.device_path,
            exit_code=self.exit_code,
        )
        return self.exit_code

    @staticmethod
    def _signal(pid: int, signum: int, group: bool) -> None:
        pty_logger.debug(
            "Signalling process",
            pid=pid,
            signal=signal_name(signum),
            group=group,
        )
        try:
            if group:
                os.killpg(pid, signum)
            else:
                os.kill(pid, signum)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            pty_logger.warning("Cannot signal process", pid=pid, error=str(e))

    async def _wait_ready(self, readable: bool) -> None:
        loop = asyncio.get_running_loop()
        fd = self._master_fd
        future: asyncio.Future[None] = loop.create_future()

        def _ready() -> None:
            if not future.done():
                future.set_result(None)

        if readable:
            loop.add_reader(fd, _ready)
        else:
            loop.add_writer(fd, _ready)
        self._waiters.add(future)
        try:
            await future
        finally:
            self._waiters.discard(future)
            # fd numbers are reused after close; only unregister our own
            if self._master_fd == fd:
                if readable:
                    loop.remove_reader(fd)
                else:
                    loop.remove_writer(fd)

    def _close_fds(self) -> None:
        master_fd = self._master_fd
        if master_fd is not None:
            try:
                loop = asyncio.get_running_loop()
                loop.remove_reader(master_fd)
                loop.remove_writer(master_fd)
            except RuntimeError:
                pass
            self._master_fd = None
            os.close(master_fd)

        if self._slave_fd is not None:
            os.close(self._slave_fd)
            self._slave_fd = None

        # Wake pending readers and writers so they observe the closed state
        for future in list(self._waiters):
            if not future.done():
                future.set_result(None)
