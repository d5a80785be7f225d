"""Serving a single HTTP connection over standard input and output."""

import asyncio
import logging
import sys
from typing import Any, Optional, TextIO

from hello_server.bootstrap.config import ServerConfig
from hello_server.domain.connection_id import ConnectionLoggerAdapter
from hello_server.lifecycle.state import ServerLifecycle
from hello_server.transport.connection import HttpConnection

STDIO_LOGGER = ConnectionLoggerAdapter(logging.getLogger("hello_server.transport.stdio"))
STOP_POLL_SECONDS = 0.5


class _ReadSide(asyncio.Protocol):
    def __init__(self, pipe: "StdioTransport") -> None:
        self._pipe = pipe

    def data_received(self, data: bytes) -> None:
        self._pipe.protocol.data_received(data)

    def eof_received(self) -> None:
        # Read pipe transports close themselves after EOF regardless of the
        # return value, so the write side decides when the connection ends.
        if not self._pipe.protocol.eof_received():
            self._pipe.close()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        STDIO_LOGGER.debug("Standard input closed", extra={"event": "stdin_closed"})


class _WriteSide(asyncio.BaseProtocol):
    def __init__(self, pipe: "StdioTransport") -> None:
        self._pipe = pipe

    def pause_writing(self) -> None:
        self._pipe.protocol.pause_writing()

    def resume_writing(self) -> None:
        self._pipe.protocol.resume_writing()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._pipe.write_side_lost(exc)


class StdioTransport(asyncio.Transport):
    """Joins a read pipe and a write pipe into one bidirectional transport."""

    def __init__(self, protocol: asyncio.Protocol) -> None:
        super().__init__()
        self.protocol = protocol
        self._reader: Optional[asyncio.ReadTransport] = None
        self._writer: Optional[asyncio.WriteTransport] = None
        self._closing = False
        self._lost = False

    async def connect(
        self,
        loop: asyncio.AbstractEventLoop,
        stdin: TextIO = sys.stdin,
        stdout: TextIO = sys.stdout,
    ) -> None:
        self._writer, _ = await loop.connect_write_pipe(lambda: _WriteSide(self), stdout)
        self.protocol.connection_made(self)
        self._reader, _ = await loop.connect_read_pipe(lambda: _ReadSide(self), stdin)

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        if name == "peername":
            return "STDIO"
        return default

    def is_closing(self) -> bool:
        return self._closing

    def write(self, data: bytes) -> None:
        if self._writer is not None and not self._closing:
            self._writer.write(data)

    def get_write_buffer_size(self) -> int:
        return self._writer.get_write_buffer_size() if self._writer is not None else 0

    def set_write_buffer_limits(
        self, high: Optional[int] = None, low: Optional[int] = None
    ) -> None:
        if self._writer is not None:
            self._writer.set_write_buffer_limits(high=high, low=low)

    def pause_reading(self) -> None:
        if self._reader is not None and self._reader.is_reading():
            self._reader.pause_reading()

    def resume_reading(self) -> None:
        if self._reader is not None and not self._reader.is_closing():
            self._reader.resume_reading()

    def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        if self._reader is not None:
            self._reader.close()
        if self._writer is not None:
            self._writer.close()

    def abort(self) -> None:
        self._closing = True
        if self._reader is not None:
            self._reader.abort()
        if self._writer is not None:
            self._writer.abort()

    def write_side_lost(self, exc: Optional[Exception]) -> None:
        if self._lost:
            return
        self._lost = True
        self._closing = True
        if self._reader is not None:
            self._reader.close()
        self.protocol.connection_lost(exc)


async def serve_stdio(config: ServerConfig, lifecycle: ServerLifecycle) -> None:
    """Serve one connection on stdin/stdout until it closes or a stop is requested."""
    loop = asyncio.get_running_loop()
    closed = loop.create_future()

    def _on_closed(_connection: HttpConnection) -> None:
        if not closed.done():
            closed.set_result(None)

    connection = HttpConnection(config, on_closed=_on_closed)
    transport = StdioTransport(connection)
    await transport.connect(loop)
    STDIO_LOGGER.info(
        "Serving HTTP over standard input and output",
        extra={"event": "server_listening", "target": "STDIO"},
    )

    while not closed.done():
        if lifecycle.should_stop():
            connection.close()
            break
        await asyncio.wait({closed}, timeout=STOP_POLL_SECONDS)
    await closed
