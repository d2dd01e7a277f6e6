"""
Tests for the pseudo-terminal adapter against real processes.
"""

import asyncio
import fcntl
import os
import struct
import termios

import pytest

from termplex.terminal.pty import PseudoTerminal
from termplex.utils.logging import PtyError, SpawnError
from termplex.utils.process import normalize_exit_code

pytestmark = pytest.mark.skipif(
    not os.path.exists("/bin/sh"), reason="requires /bin/sh"
)


def window_size(pty: PseudoTerminal) -> tuple[int, int]:
    packed = fcntl.ioctl(pty._master_fd, termios.TIOCGWINSZ, b"\0" * 8)
    rows, cols, _, _ = struct.unpack("HHHH", packed)
    return rows, cols


async def read_until(pty: PseudoTerminal, needle: bytes, timeout: float = 5.0) -> bytes:
    buffer = b""

    async def _read() -> bytes:
        nonlocal buffer
        while needle not in buffer:
            chunk = await pty.read()
            if not chunk:
                break
            buffer += chunk
        return buffer

    return await asyncio.wait_for(_read(), timeout)


class TestPseudoTerminal:
    """Test allocation, sizing and process lifecycle."""

    def test_open_reports_device_path(self) -> None:
        pty = PseudoTerminal.open()
        try:
            assert pty.device_path.startswith("/dev/")
            assert not pty.started
            assert pty.pid is None
        finally:
            pty._close_fds()

    def test_resize_applies_window_size(self) -> None:
        pty = PseudoTerminal.open()
        try:
            pty.resize(40, 132)
            assert window_size(pty) == (40, 132)
        finally:
            pty._close_fds()

    @pytest.mark.asyncio
    async def test_process_sees_size_applied_before_start(self) -> None:
        pty = PseudoTerminal.open()
        pty.resize(24, 80)
        await pty.spawn(["/bin/sh", "-c", "stty size"], {"PATH": os.environ.get("PATH", "/usr/bin:/bin")})

        output = await read_until(pty, b"24 80")

        assert b"24 80" in output
        assert await asyncio.wait_for(pty.wait(), 5) == 0
        await pty.terminate()

    @pytest.mark.asyncio
    async def test_write_reaches_process(self) -> None:
        pty = PseudoTerminal.open()
        await pty.spawn(["/bin/sh", "-c", "read line; echo got:$line"], {"PATH": "/usr/bin:/bin"})

        await pty.write(b"ping\n")
        output = await read_until(pty, b"got:ping")

        assert b"got:ping" in output
        await pty.terminate()

    @pytest.mark.asyncio
    async def test_exit_code_is_reported(self) -> None:
        pty = PseudoTerminal.open()
        await pty.spawn(["/bin/sh", "-c", "exit 3"], {"PATH": "/usr/bin:/bin"})

        assert await asyncio.wait_for(pty.wait(), 5) == 3
        assert await pty.terminate() == 3

    @pytest.mark.asyncio
    async def test_terminate_hangs_up_running_process(self) -> None:
        pty = PseudoTerminal.open()
        await pty.spawn(["/bin/sh", "-c", "sleep 30"], {"PATH": "/usr/bin:/bin"})

        exit_code = await asyncio.wait_for(pty.terminate(grace_period=2.0), 5)

        assert exit_code == 128 + 1  # SIGHUP
        assert pty.closed

    @pytest.mark.asyncio
    async def test_terminate_is_idempotent(self) -> None:
        pty = PseudoTerminal.open()
        await pty.spawn(["/bin/sh", "-c", "sleep 30"], {"PATH": "/usr/bin:/bin"})

        first = await pty.terminate(grace_period=2.0)
        second = await pty.terminate(grace_period=2.0)

        assert first == second

    @pytest.mark.asyncio
    async def test_terminate_without_process(self) -> None:
        pty = PseudoTerminal.open()

        assert await pty.terminate() is None
        assert await pty.read() == b""

    @pytest.mark.asyncio
    async def test_pending_read_wakes_on_terminate(self) -> None:
        pty = PseudoTerminal.open()
        await pty.spawn(["/bin/sh", "-c", "sleep 30"], {"PATH": "/usr/bin:/bin"})

        reader = asyncio.create_task(pty.read())
        await asyncio.sleep(0.05)
        await pty.terminate(grace_period=2.0)

        assert await asyncio.wait_for(reader, 2) == b""

    @pytest.mark.asyncio
    async def test_write_after_close_raises(self) -> None:
        pty = PseudoTerminal.open()
        await pty.terminate()

        with pytest.raises(PtyError):
            await pty.write(b"x")

    @pytest.mark.asyncio
    async def test_spawn_missing_binary_raises(self) -> None:
        pty = PseudoTerminal.open()
        try:
            with pytest.raises(SpawnError) as exc_info:
                await pty.spawn(["/nonexistent/binary"], {})
            assert exc_info.value.kind == "spawn_failed"
            assert not pty.started
        finally:
            await pty.terminate()

    @pytest.mark.asyncio
    async def test_spawn_twice_raises(self) -> None:
        pty = PseudoTerminal.open()
        await pty.spawn(["/bin/sh", "-c", "sleep 30"], {"PATH": "/usr/bin:/bin"})
        try:
            with pytest.raises(SpawnError):
                await pty.spawn(["/bin/sh"], {})
        finally:
            await pty.terminate(grace_period=2.0)


@pytest.mark.parametrize(
    "returncode, expected",
    [(None, None), (0, 0), (2, 2), (-1, 129), (-9, 137)],
)
def test_normalize_exit_code(returncode, expected) -> None:
    assert normalize_exit_code(returncode) == expected
