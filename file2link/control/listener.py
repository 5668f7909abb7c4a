"""
Control pipe listener.

Reads newline-delimited commands from a FIFO and hands each one to a dispatch
coroutine. The read end is opened non-blocking and the listener also keeps its
own write end open, so clients that open, write one line and close never make
the pipe hit EOF; the loop simply waits (no polling) for the next bytes.

States: IDLE -> READING (partial line buffered) -> DISPATCHING -> IDLE.
STOPPED is terminal and reached on `shutdown` or when the stop event is set.
"""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from file2link.control.fifo import ensure_fifo, remove_fifo
from file2link.control.protocol import MAX_LINE_BYTES, ControlCommand, decode_command, recover_command
from file2link.errors import ChannelError, UnknownCommandError

logger = logging.getLogger(__name__)

Dispatch = Callable[[ControlCommand], Awaitable[None]]

REOPEN_RETRY_SECONDS = 1.0

_PIPE_LOST = object()


class ListenerState(str, Enum):
    IDLE = "idle"
    READING = "reading"
    DISPATCHING = "dispatching"
    STOPPED = "stopped"


class _LineProtocol(asyncio.Protocol):
    """Splits the FIFO byte stream into lines for the listener."""

    def __init__(self, listener: "ControlListener") -> None:
        self._listener = listener
        self._buf = bytearray()
        self._discarding = False

    @property
    def has_partial(self) -> bool:
        return bool(self._buf)

    def data_received(self, data: bytes) -> None:
        # Bytes of the pending line that arrived before this chunk.
        carried = len(self._buf)
        self._buf.extend(data)
        while True:
            idx = self._buf.find(b"\n")
            if idx < 0:
                break
            line = bytes(self._buf[:idx])
            del self._buf[: idx + 1]
            boundary, carried = carried, 0
            if self._discarding:
                self._discarding = False
                continue
            if idx > MAX_LINE_BYTES:
                logger.warning("Discarding oversized control line (%d bytes)", idx)
                continue
            self._listener._lines.put_nowait((line, boundary))

        if len(self._buf) > MAX_LINE_BYTES:
            logger.warning("Discarding oversized control line (%d bytes buffered)", len(self._buf))
            self._buf.clear()
            self._discarding = True

        self._listener._on_buffer_change(self.has_partial)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._listener._on_pipe_lost(self, exc)


class ControlListener:
    """
    Single reader of the control FIFO.

    `open()` raises ChannelError if the FIFO cannot be created or opened; this
    is meant to be fatal at process start. After that, read failures are
    logged and the pipe is reopened.
    """

    def __init__(
        self,
        path: str,
        dispatch: Dispatch,
        *,
        stop_event: Optional[asyncio.Event] = None,
        mode: int = 0o644,
        remove_on_close: bool = True,
    ) -> None:
        self.path = path
        self.state = ListenerState.IDLE
        self._dispatch = dispatch
        self._stop = stop_event or asyncio.Event()
        self._mode = mode
        self._remove_on_close = remove_on_close
        self._created = False
        self._keepalive_fd: Optional[int] = None
        self._transport: Optional[asyncio.ReadTransport] = None
        self._protocol: Optional[_LineProtocol] = None
        self._lines: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    async def open(self) -> None:
        created = ensure_fifo(self.path, self._mode)
        self._created = self._created or created

        try:
            read_fd = os.open(self.path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            raise ChannelError(f"Failed to open FIFO for reading: {e.strerror or e}", self.path) from e
        try:
            self._keepalive_fd = os.open(self.path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            os.close(read_fd)
            raise ChannelError(f"Failed to open FIFO keepalive writer: {e.strerror or e}", self.path) from e

        loop = asyncio.get_running_loop()
        pipe = os.fdopen(read_fd, "rb", buffering=0)
        try:
            transport, protocol = await loop.connect_read_pipe(lambda: _LineProtocol(self), pipe)
        except Exception as e:
            pipe.close()
            self._close_keepalive()
            raise ChannelError(f"Failed to watch FIFO: {e}", self.path) from e

        self._transport = transport
        self._protocol = protocol
        self._closing = False
        logger.info("Listening for control commands on %s", self.path)

    async def close(self, *, release: bool = True) -> None:
        self._closing = True
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._protocol = None
        self._close_keepalive()
        if release and self._created and self._remove_on_close:
            remove_fifo(self.path)
            self._created = False

    def _close_keepalive(self) -> None:
        if self._keepalive_fd is not None:
            try:
                os.close(self._keepalive_fd)
            except OSError:
                logger.debug("Keepalive fd already closed for %s", self.path)
            self._keepalive_fd = None

    def _on_buffer_change(self, has_partial: bool) -> None:
        if self.state in (ListenerState.IDLE, ListenerState.READING):
            self.state = ListenerState.READING if has_partial else ListenerState.IDLE

    def _on_pipe_lost(self, protocol: _LineProtocol, exc: Optional[Exception]) -> None:
        # A transport closed by _reopen reports late; only the current one counts.
        if self._closing or protocol is not self._protocol:
            return
        if exc is not None:
            logger.error("Failed to read FIFO at %s: %s", self.path, exc)
        else:
            logger.warning("Control pipe at %s closed unexpectedly", self.path)
        self._lines.put_nowait(_PIPE_LOST)

    async def _next_item(self) -> Any:
        """Next queued line, or None once the stop event is set."""
        if self._stop.is_set():
            return None
        get_task = asyncio.ensure_future(self._lines.get())
        stop_task = asyncio.ensure_future(self._stop.wait())
        try:
            done, _ = await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_task.cancel()
        if get_task in done:
            return get_task.result()
        get_task.cancel()
        return None

    async def _reopen(self) -> bool:
        await self.close(release=False)
        while not self._stop.is_set():
            try:
                await self.open()
                return True
            except ChannelError as e:
                logger.error("Failed to reopen control pipe: %s", e)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=REOPEN_RETRY_SECONDS)
            except asyncio.TimeoutError:
                continue
        return False

    def _decode(self, line: bytes, boundary: int) -> Optional[ControlCommand]:
        try:
            return decode_command(line)
        except UnknownCommandError as e:
            recovered = recover_command(line, boundary)
            if recovered is None:
                logger.warning("Ignoring control line: %s", e)
                return None
            dropped, cmd = recovered
            logger.warning("Dropped unterminated bytes %r before control command '%s'", dropped, cmd.value)
            return cmd

    def _drain_pending(self) -> None:
        while not self._lines.empty():
            item = self._lines.get_nowait()
            if item is _PIPE_LOST:
                continue
            logger.warning("Dropping control line received after shutdown: %r", item[0])
        if self._protocol is not None and self._protocol.has_partial:
            logger.debug("Discarding partial control line on shutdown")

    async def run(self) -> None:
        """Serve commands until `shutdown` is read or the stop event is set."""
        if not self.is_open:
            await self.open()
        try:
            while True:
                item = await self._next_item()
                if item is None:
                    break
                if item is _PIPE_LOST:
                    if not await self._reopen():
                        break
                    continue

                line, boundary = item
                if not line.strip():
                    continue

                cmd = self._decode(line, boundary)
                if cmd is None:
                    continue

                self.state = ListenerState.DISPATCHING
                logger.info("Control command received: %s", cmd.value)
                try:
                    await self._dispatch(cmd)
                except Exception:
                    logger.exception("Control command '%s' failed", cmd.value)
                finally:
                    self.state = ListenerState.IDLE
                    if self._protocol is not None and self._protocol.has_partial:
                        self.state = ListenerState.READING

                if cmd is ControlCommand.SHUTDOWN:
                    logger.info("Shutdown command handled")
                    self._stop.set()
                    break
        finally:
            self._drain_pending()
            await self.close()
            self.state = ListenerState.STOPPED
