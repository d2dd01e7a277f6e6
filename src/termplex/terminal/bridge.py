"""
Per-session bridge between a pseudo-terminal and the channel.

Each bridge owns one scope task running two pumps:

- output: reads the pty, batches bytes for a short window and forwards them
  as ``output`` messages
- input: drains queued keystrokes into the pty unbatched

Whichever pump finishes first ends the scope; the other is cancelled and the
session is torn down before the scope returns.
"""

import asyncio
import codecs
from collections.abc import Awaitable, Callable

from ..protocol import ServerMessage
from ..utils.logging import PtyError
from .logging_utils import bridge_logger, log_bridge_exit
from .registry import SessionRegistry
from .session import Session

SendCallback = Callable[[ServerMessage], Awaitable[bool]]
ClosedCallback = Callable[[str], None]

DEFAULT_BATCH_INTERVAL = 0.016
DEFAULT_MAX_BATCH_BYTES = 64 * 1024


class SessionBridge:
    """Pumps bytes between one session and the channel it belongs to."""

    def __init__(
        self,
        session: Session,
        registry: SessionRegistry,
        send: SendCallback,
        batch_interval: float = DEFAULT_BATCH_INTERVAL,
        max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES,
        exit_grace_period: float = 1.0,
        on_closed: ClosedCallback | None = None,
    ):
        self.session = session
        self._registry = registry
        self._send = send
        self._batch_interval = batch_interval
        self._max_batch_bytes = max_batch_bytes
        self._exit_grace_period = exit_grace_period
        self._on_closed = on_closed
        self._inbound: asyncio.Queue[bytes] = asyncio.Queue()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._task: asyncio.Task[None] | None = None
        self._detach = False
        self._closing = False

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(
                self._run(), name=f"bridge-{self.session.id}"
            )

    def feed(self, data: bytes) -> None:
        """Queue keystrokes for the input pump."""
        if data and not self._closing:
            self._inbound.put_nowait(data)

    async def close(self, detach: bool = False) -> None:
        """Stop both pumps and tear the session down.

        Repeated calls wait for the first teardown to finish.
        """
        if self._task is None:
            self._closing = True
            await self._registry.close(self.session.id, detach=detach)
            return

        if not self._closing and not self._task.done():
            self._closing = True
            self._detach = detach
            self._task.cancel()

        try:
            await self._task
        except asyncio.CancelledError:
            pass

        # The scope may have been cancelled before it ever ran
        if await self._registry.close(self.session.id, detach=self._detach):
            if self._on_closed:
                self._on_closed(self.session.id)

    async def _run(self) -> None:
        output_task = asyncio.create_task(self._pump_output())
        input_task = asyncio.create_task(self._pump_input())
        exited = False
        try:
            await asyncio.wait(
                {output_task, input_task}, return_when=asyncio.FIRST_COMPLETED
            )
            exited = True
        finally:
            for task in (output_task, input_task):
                task.cancel()
            await asyncio.gather(output_task, input_task, return_exceptions=True)
            await self._teardown(exited)

    async def _teardown(self, exited: bool) -> None:
        if exited:
            # Collect the natural exit status before signalling anything
            try:
                await asyncio.wait_for(
                    self.session.pty.wait(), timeout=self._exit_grace_period
                )
            except asyncio.TimeoutError:
                bridge_logger.debug(
                    "Process still running after end of output",
                    session_id=self.session.id,
                )

        await self._registry.close(self.session.id, detach=self._detach)

        if exited:
            exit_code = self.session.exit_code or 0
            await self._send(ServerMessage.exit(self.session.id, exit_code))
            log_bridge_exit(self.session.id, "process_exit", exit_code)
        else:
            log_bridge_exit(
                self.session.id, "detached" if self._detach else "closed"
            )

        if self._on_closed:
            self._on_closed(self.session.id)

    async def _pump_output(self) -> None:
        loop = asyncio.get_running_loop()
        pty = self.session.pty

        while True:
            try:
                chunk = await pty.read()
            except PtyError as e:
                bridge_logger.warning(
                    "Output read failed", session_id=self.session.id, error=str(e)
                )
                await self._flush_decoder()
                return
            if not chunk:
                await self._flush_decoder()
                return

            buffer = bytearray(chunk)
            deadline = loop.time() + self._batch_interval
            eof = False
            while len(buffer) < self._max_batch_bytes:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    more = await asyncio.wait_for(pty.read(), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                except PtyError:
                    eof = True
                    break
                if not more:
                    eof = True
                    break
                buffer.extend(more)

            await self._emit(self._decoder.decode(bytes(buffer)))
            if eof:
                await self._flush_decoder()
                return

    async def _pump_input(self) -> None:
        while True:
            data = await self._inbound.get()
            try:
                await self.session.pty.write(data)
            except PtyError as e:
                bridge_logger.warning(
                    "Input write failed", session_id=self.session.id, error=str(e)
                )
                return

    async def _flush_decoder(self) -> None:
        await self._emit(self._decoder.decode(b"", final=True))

    async def _emit(self, text: str) -> None:
        # A batch may end inside a multi-byte sequence; the decoder holds it back
        if text:
            await self._send(ServerMessage.output(self.session.id, text))
