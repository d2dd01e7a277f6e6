"""
Pytest configuration and shared fixtures for termplex tests.
"""

import asyncio
import itertools
import json
import logging
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from termplex.config import TermplexConfig
from termplex.protocol import TmuxSessionRecord
from termplex.terminal import SessionRegistry
from termplex.tmux import TmuxAttachmentManager, TmuxMonitor
from termplex.utils.logging import PtyError, SpawnError
from termplex.web.channel import ChannelMultiplexer, TerminalServices

_device_numbers = itertools.count(1)


class FakePseudoTerminal:
    """In-memory stand-in for PseudoTerminal."""

    def __init__(self, spawn_error: Exception | None = None):
        self.device_path = f"/dev/pts/fake{next(_device_numbers)}"
        self.spawn_error = spawn_error
        self.resizes: list[tuple[int, int]] = []
        self.writes: list[bytes] = []
        self.terminations: list[bool] = []
        self.spawned: tuple[list[str], dict[str, str], str | None] | None = None
        self._output: asyncio.Queue[bytes] = asyncio.Queue()
        self._exited = asyncio.Event()
        self._exit_code: int | None = None
        self._closed = False

    @property
    def pid(self) -> int | None:
        return 4242 if self.spawned else None

    @property
    def started(self) -> bool:
        return self.spawned is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def resize(self, rows: int, cols: int) -> None:
        if self._closed:
            raise PtyError("Pseudo-terminal is closed")
        self.resizes.append((rows, cols))

    async def spawn(self, argv, env, cwd=None) -> int:
        if self.spawn_error is not None:
            raise self.spawn_error
        if self.spawned is not None:
            raise SpawnError("Process already started on this pseudo-terminal")
        self.spawned = (list(argv), dict(env), cwd)
        return 4242

    def emit(self, data: bytes) -> None:
        """Make ``data`` readable as process output."""
        self._output.put_nowait(data)

    def finish(self, exit_code: int = 0) -> None:
        """Simulate the process exiting on its own."""
        self._exit_code = exit_code
        self._exited.set()
        self._output.put_nowait(b"")

    async def read(self, size: int = 4096) -> bytes:
        if self._closed and self._output.empty():
            return b""
        return await self._output.get()

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise PtyError("Pseudo-terminal is closed")
        self.writes.append(bytes(data))

    async def wait(self) -> int | None:
        if self.spawned is None:
            return None
        await self._exited.wait()
        return self._exit_code

    async def terminate(self, group: bool = True, grace_period: float = 1.0) -> int | None:
        self.terminations.append(group)
        if self._closed:
            return self._exit_code
        self._closed = True
        if self.spawned is not None and self._exit_code is None:
            self._exit_code = 129  # SIGHUP
            self._exited.set()
        self._output.put_nowait(b"")
        return self._exit_code


class FakeTmuxDetector:
    """Scriptable stand-in for TmuxDetector."""

    def __init__(
        self,
        available: bool = True,
        sessions: list[TmuxSessionRecord] | None = None,
        clients: dict[str, str] | None = None,
    ):
        self.available = available
        self.sessions = list(sessions or [])
        self.clients = dict(clients or {})
        self.client_error: Exception | None = None
        self.session_error: Exception | None = None
        self.has_session_error: Exception | None = None
        self.client_calls = 0
        self.session_calls = 0

    def is_available(self) -> bool:
        return self.available

    async def list_clients(self) -> dict[str, str]:
        self.client_calls += 1
        if self.client_error is not None:
            raise self.client_error
        return dict(self.clients)

    async def list_sessions(self) -> list[TmuxSessionRecord]:
        self.session_calls += 1
        if self.session_error is not None:
            raise self.session_error
        return list(self.sessions)

    async def has_session(self, name: str) -> bool:
        if self.has_session_error is not None:
            raise self.has_session_error
        return any(s.name == name for s in self.sessions)


class FakeWebSocket:
    """Records outbound frames and replays queued inbound ones."""

    def __init__(self, fail_sends: bool = False):
        self.sent: list[str] = []
        self.incoming: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.fail_sends = fail_sends
        self.accepted = False
        self.closed = False
        self.client = SimpleNamespace(host="127.0.0.1")

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True

    async def send_text(self, text: str) -> None:
        if self.fail_sends:
            raise RuntimeError("WebSocket is not connected")
        self.sent.append(text)

    async def receive(self) -> dict[str, Any]:
        return await self.incoming.get()

    def push(self, payload: dict[str, Any] | str) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self, code: int = 1000) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": code})

    def messages(self, message_type: str | None = None) -> list[dict[str, Any]]:
        decoded = [json.loads(text) for text in self.sent]
        if message_type is None:
            return decoded
        return [m for m in decoded if m["type"] == message_type]


async def _eventually(
    predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01
) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def eventually() -> Callable[..., Any]:
    """Await until a predicate holds."""
    return _eventually


@pytest.fixture
def config() -> TermplexConfig:
    """Configuration with fast timings for tests."""
    return TermplexConfig(
        shell="/bin/sh",
        login_shell=False,
        output_batch_ms=5,
        terminate_grace_period=0.5,
        cwd_poll_interval=0.05,
    )


@pytest.fixture
def fake_ptys() -> list[FakePseudoTerminal]:
    """Every fake pty handed out by the registry fixture, in order."""
    return []


@pytest.fixture
def registry(fake_ptys: list[FakePseudoTerminal]) -> SessionRegistry:
    """Registry allocating fake ptys."""

    def factory() -> FakePseudoTerminal:
        pty = FakePseudoTerminal()
        fake_ptys.append(pty)
        return pty

    return SessionRegistry(pty_factory=factory, grace_period=0.5)


@pytest.fixture
def fake_detector() -> FakeTmuxDetector:
    return FakeTmuxDetector(
        sessions=[
            TmuxSessionRecord(name="main", windows=2, attached=1),
            TmuxSessionRecord(name="work", windows=1, attached=0),
        ]
    )


@pytest.fixture
def services(
    config: TermplexConfig, registry: SessionRegistry, fake_detector: FakeTmuxDetector
) -> TerminalServices:
    monitor = TmuxMonitor(fake_detector, registry)
    attachments = TmuxAttachmentManager(
        fake_detector, environ={"PATH": "/usr/bin", "TMUX": "/tmp/tmux-1000/default,1,0"}
    )
    return TerminalServices(
        config=config, registry=registry, attachments=attachments, monitor=monitor
    )


@pytest.fixture
def websocket() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def websocket_factory() -> type[FakeWebSocket]:
    """Build additional fake sockets for multi-connection tests."""
    return FakeWebSocket


@pytest.fixture
def channel(websocket: FakeWebSocket, services: TerminalServices) -> ChannelMultiplexer:
    return ChannelMultiplexer(websocket, "conn-1", services, "127.0.0.1")


@pytest.fixture
def reset_logging() -> Generator[None, None, None]:
    """Restore the root logger after tests that reconfigure logging."""
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level

    yield

    for handler in root_logger.handlers[:]:
        if handler not in original_handlers:
            handler.close()
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


@pytest.fixture
def temp_log_file() -> Generator[Path, None, None]:
    """Provide a temporary log file for testing."""
    with tempfile.NamedTemporaryFile(suffix=".log", delete=False) as f:
        log_file = Path(f.name)

    yield log_file

    if log_file.exists():
        log_file.unlink()


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """Create a temporary workspace directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)
