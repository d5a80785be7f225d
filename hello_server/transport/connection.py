"""Per-connection HTTP framing on top of an asyncio transport."""

import asyncio
import logging
from collections import deque
from typing import Callable, Optional

from hello_server.bootstrap.config import ServerConfig
from hello_server.domain.connection_id import (
    ConnectionLoggerAdapter,
    generate_connection_id,
)
from hello_server.domain.http_types import (
    InboundEvent,
    InputClosed,
    RequestHeadPart,
    ResponseEndPart,
    ResponseHeadPart,
    ResponsePart,
)
from hello_server.domain.response_builders import bad_request_head
from hello_server.pipeline.codec import (
    MalformedRequest,
    RequestDecoder,
    ResponseEncoder,
)
from hello_server.pipeline.handler import (
    HANDLER_LOGGER,
    ConnectionState,
    HelloWorldHandler,
    InvalidStateTransition,
    WriteCallback,
)

CONNECTION_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("hello_server.transport.connection")
)


def _peer_name(transport: asyncio.BaseTransport) -> str:
    peer = transport.get_extra_info("peername")
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    if peer:
        return str(peer)
    return "local"


class HttpConnection(asyncio.Protocol):
    """Decodes requests, drives the handler and writes its responses.

    Writes are queued until the handler flushes, which happens once per
    read. Completion callbacks fire when the transport's write buffer has
    drained: the write buffer limits are set to zero so ``resume_writing``
    signals that every flushed byte has been handed to the kernel.

    While a response is in flight, further request parts stay queued and
    reading is paused, so pipelined requests are answered one at a time.
    """

    def __init__(
        self,
        config: ServerConfig,
        tracker: Optional[set["HttpConnection"]] = None,
        on_closed: Optional[Callable[["HttpConnection"], None]] = None,
    ) -> None:
        self.connection_id = generate_connection_id()
        self._logger = CONNECTION_LOGGER.bind(self.connection_id)
        self._allow_half_closure = config.allow_half_closure
        self._tracker = tracker
        self._on_closed = on_closed
        self._transport: Optional[asyncio.Transport] = None
        self._decoder = RequestDecoder()
        self._encoder = ResponseEncoder()
        self._handler = HelloWorldHandler(self, HANDLER_LOGGER.bind(self.connection_id))
        self._inbound: deque[InboundEvent] = deque()
        self._pending: list[bytes] = []
        self._pending_callbacks: list[WriteCallback] = []
        self._unacknowledged: list[WriteCallback] = []
        self._request_method: Optional[str] = None
        self._reading_paused = False
        self._closed = False
        self._client = "unknown"

    @property
    def handler(self) -> HelloWorldHandler:
        return self._handler

    @property
    def closed(self) -> bool:
        return self._closed

    # asyncio.Protocol

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]
        self._transport.set_write_buffer_limits(high=0, low=0)
        self._client = _peer_name(transport)
        if self._tracker is not None:
            self._tracker.add(self)
        self._logger.debug(
            "Connection opened",
            extra={"event": "connection_opened", "client": self._client},
        )

    def data_received(self, data: bytes) -> None:
        if self._closed:
            return
        malformed: Optional[MalformedRequest] = None
        try:
            self._decoder.feed(data)
        except MalformedRequest as error:
            malformed = error
        self._inbound.extend(self._decoder.parts)
        self._decoder.parts.clear()
        self._process_inbound()
        if malformed is not None:
            self._reject(malformed)

    def eof_received(self) -> Optional[bool]:
        if self._closed:
            return False
        if not self._allow_half_closure:
            self._logger.debug(
                "Peer closed its side; half-closure disabled",
                extra={"event": "half_closure", "client": self._client},
            )
            self._closed = True
            return False
        self._inbound.append(InputClosed())
        self._process_inbound()
        return True

    def pause_writing(self) -> None:
        pass

    def resume_writing(self) -> None:
        if self._closed:
            return
        self._acknowledge_writes()
        self._process_inbound()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._closed = True
        self._inbound.clear()
        self._pending.clear()
        self._pending_callbacks.clear()
        self._unacknowledged.clear()
        if self._tracker is not None:
            self._tracker.discard(self)
        extra = {"event": "connection_closed", "client": self._client}
        if exc is not None:
            extra["error_type"] = type(exc).__name__
        self._logger.debug("Connection closed", extra=extra)
        if self._on_closed is not None:
            self._on_closed(self)

    # channel context used by the handler

    def write(self, part: ResponsePart, on_written: Optional[WriteCallback] = None) -> None:
        if self._closed:
            return
        self._pending.append(self._encoder.encode(part, self._request_method))
        if on_written is not None:
            self._pending_callbacks.append(on_written)

    def flush(self) -> None:
        if self._closed or self._transport is None:
            return
        if self._pending:
            data = b"".join(self._pending)
            self._pending.clear()
            if data:
                self._transport.write(data)
        self._unacknowledged.extend(self._pending_callbacks)
        self._pending_callbacks.clear()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbound.clear()
        if self._transport is not None:
            self._transport.close()

    # internals

    def _process_inbound(self) -> None:
        try:
            while not self._closed:
                self._dispatch_ready_events()
                self._handler.read_complete()
                if not self._unacknowledged or not self._write_buffer_drained():
                    break
                self._acknowledge_writes()
                if not self._inbound:
                    break
        except InvalidStateTransition as error:
            self._logger.error(
                "Invalid state transition; aborting connection",
                extra={
                    "event": "invalid_state_transition",
                    "client": self._client,
                    "state": error.state.value,
                },
                exc_info=True,
            )
            self._abort()
            return
        self._apply_read_backpressure()

    def _dispatch_ready_events(self) -> None:
        while self._inbound and not self._closed:
            event = self._inbound[0]
            if self._handler.is_responding and not isinstance(event, InputClosed):
                break
            self._inbound.popleft()
            if isinstance(event, RequestHeadPart):
                self._request_method = event.head.method
            self._handler.handle(event)

    def _write_buffer_drained(self) -> bool:
        return self._transport is not None and self._transport.get_write_buffer_size() == 0

    def _acknowledge_writes(self) -> None:
        callbacks = self._unacknowledged
        self._unacknowledged = []
        for callback in callbacks:
            callback()

    def _apply_read_backpressure(self) -> None:
        if self._closed or self._transport is None:
            return
        if self._inbound and not self._reading_paused:
            self._transport.pause_reading()
            self._reading_paused = True
        elif not self._inbound and self._reading_paused:
            self._transport.resume_reading()
            self._reading_paused = False

    def _reject(self, error: MalformedRequest) -> None:
        self._logger.warning(
            "Malformed request received",
            extra={
                "event": "bad_request",
                "client": self._client,
                "error_type": type(error.__cause__ or error).__name__,
            },
        )
        if self._closed:
            return
        if self._handler.state is ConnectionState.IDLE and not self._pending:
            self._request_method = None
            self.write(ResponseHeadPart(bad_request_head()))
            self.write(ResponseEndPart())
            self.flush()
        self.close()

    def _abort(self) -> None:
        self._closed = True
        self._inbound.clear()
        if self._transport is not None:
            self._transport.abort()
