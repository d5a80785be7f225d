"""Per-connection request handler producing the Hello World echo response."""

import enum
import logging
from typing import Callable, Optional, Protocol

from hello_server.domain.connection_id import ConnectionLoggerAdapter
from hello_server.domain.http_types import (
    InboundEvent,
    InputClosed,
    RequestBodyPart,
    RequestEndPart,
    RequestHead,
    RequestHeadPart,
    ResponseBodyPart,
    ResponseEndPart,
    ResponseHeadPart,
    ResponsePart,
)
from hello_server.domain.response_builders import build_echo_body, build_response_head

HANDLER_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("hello_server.pipeline.handler")
)

WriteCallback = Callable[[], None]


class ChannelContext(Protocol):
    """Operations a handler may invoke on its connection."""

    def write(self, part: ResponsePart, on_written: Optional[WriteCallback] = None) -> None:
        """Queue ``part``; ``on_written`` runs once its bytes left the process."""

    def flush(self) -> None:
        """Hand every queued write to the transport."""

    def close(self) -> None:
        """Close the connection."""


class ConnectionState(enum.Enum):
    IDLE = "idle"
    AWAITING_BODY = "awaiting_body"
    SENDING_RESPONSE = "sending_response"


class InvalidStateTransition(RuntimeError):
    """A request part arrived in a state that cannot accept it."""

    def __init__(self, event: str, state: ConnectionState) -> None:
        super().__init__(f"Invalid state for {event}: {state.value}")
        self.event = event
        self.state = state


class HelloWorldHandler:
    """Consumes request parts for one connection and answers each request.

    The cycle is strictly ``IDLE -> AWAITING_BODY -> SENDING_RESPONSE -> IDLE``.
    The response head goes out as soon as the request head is seen, the body
    and end of message once the request is complete. Writes are only queued;
    they reach the transport when the connection reports a finished read.
    """

    def __init__(
        self,
        context: ChannelContext,
        logger: ConnectionLoggerAdapter = HANDLER_LOGGER,
    ) -> None:
        self._context = context
        self._logger = logger
        self._state = ConnectionState.IDLE
        self._keep_alive = False
        self._buffer = bytearray()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def keep_alive(self) -> bool:
        return self._keep_alive

    @property
    def is_responding(self) -> bool:
        """True while a response is written but not yet acknowledged."""
        return self._state is ConnectionState.SENDING_RESPONSE

    def handle(self, event: InboundEvent) -> None:
        """Dispatch one inbound event."""
        if isinstance(event, RequestHeadPart):
            self.request_head(event.head)
        elif isinstance(event, RequestBodyPart):
            self.request_body(event.chunk)
        elif isinstance(event, RequestEndPart):
            self.request_end()
        elif isinstance(event, InputClosed):
            self.input_closed()
        else:
            raise TypeError(f"Unsupported inbound event: {event!r}")

    def request_head(self, request: RequestHead) -> None:
        self._transition(ConnectionState.IDLE, ConnectionState.AWAITING_BODY, "request head")
        self._keep_alive = request.keep_alive

        self._buffer.clear()
        self._buffer.extend(build_echo_body(request.uri).encode("utf-8"))

        head = build_response_head(request)
        head.headers.add("content-length", str(len(self._buffer)))
        self._logger.debug(
            "Request head received",
            extra={
                "event": "request_head",
                "method": request.method,
                "uri": request.uri,
                "keep_alive": request.keep_alive,
                "content_length": len(self._buffer),
            },
        )
        self._context.write(ResponseHeadPart(head))

    def request_body(self, chunk: bytes) -> None:
        if self._state is not ConnectionState.AWAITING_BODY:
            raise InvalidStateTransition("request body", self._state)

    def request_end(self) -> None:
        self._transition(
            ConnectionState.AWAITING_BODY,
            ConnectionState.SENDING_RESPONSE,
            "request complete",
        )
        self._context.write(ResponseBodyPart(bytes(self._buffer)))
        self._context.write(ResponseEndPart(), on_written=self._response_complete)

    def read_complete(self) -> None:
        self._context.flush()

    def input_closed(self) -> None:
        """The peer half-closed the connection."""
        self._logger.debug(
            "Peer closed its side of the connection",
            extra={"event": "half_closure", "state": self._state.value},
        )
        if self._state is ConnectionState.SENDING_RESPONSE:
            self._keep_alive = False
        else:
            self._context.close()

    def _response_complete(self) -> None:
        self._transition(
            ConnectionState.SENDING_RESPONSE, ConnectionState.IDLE, "response complete"
        )
        if not self._keep_alive:
            self._context.close()

    def _transition(
        self, expected: ConnectionState, target: ConnectionState, event: str
    ) -> None:
        if self._state is not expected:
            raise InvalidStateTransition(event, self._state)
        self._state = target
