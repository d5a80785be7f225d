"""Listening socket creation for TCP and Unix domain socket targets."""

import logging
import socket

from hello_server.domain.bind_target import (
    BindTarget,
    TcpTarget,
    UnixSocketTarget,
    describe_target,
)
from hello_server.domain.connection_id import ConnectionLoggerAdapter

SOCKET_LOGGER = ConnectionLoggerAdapter(logging.getLogger("hello_server.socket"))


class BindUnavailable(Exception):
    """Raised when the server cannot bind or report its listening address."""

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"Unable to bind {target}: {reason}")
        self.target = target
        self.reason = reason


def _create_tcp_listener(target: TcpTarget, backlog: int) -> socket.socket:
    family, _, _, _, address = socket.getaddrinfo(
        target.host,
        target.port,
        type=socket.SOCK_STREAM,
        flags=socket.AI_PASSIVE,
    )[0]
    return socket.create_server(address, family=family, backlog=backlog)


def _create_unix_listener(target: UnixSocketTarget, backlog: int) -> socket.socket:
    server_socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        server_socket.bind(target.path)
        server_socket.listen(backlog)
    except BaseException:
        server_socket.close()
        raise
    return server_socket


def create_listener(target: BindTarget, backlog: int) -> socket.socket:
    """Bind and listen on ``target``; every failure surfaces as BindUnavailable."""
    try:
        if isinstance(target, TcpTarget):
            return _create_tcp_listener(target, backlog)
        if isinstance(target, UnixSocketTarget):
            return _create_unix_listener(target, backlog)
    except (OSError, OverflowError, ValueError) as error:
        SOCKET_LOGGER.critical(
            "Failed to bind listening socket",
            extra={
                "event": "bind_failed",
                "target": describe_target(target),
                "error_type": type(error).__name__,
            },
        )
        raise BindUnavailable(describe_target(target), str(error)) from error
    raise BindUnavailable(describe_target(target), "not a socket target")


def describe_address(server_socket: socket.socket) -> str:
    """Format the bound address, e.g. ``[::1]:8888`` or ``unix:/tmp/hello.sock``."""
    try:
        address = server_socket.getsockname()
    except OSError as error:
        raise BindUnavailable("listening socket", str(error)) from error

    if server_socket.family == socket.AF_UNIX:
        if not address:
            raise BindUnavailable("listening socket", "no local address")
        path = address.decode() if isinstance(address, bytes) else address
        return f"unix:{path}"
    if server_socket.family == socket.AF_INET6:
        return f"[{address[0]}]:{address[1]}"
    if server_socket.family == socket.AF_INET:
        return f"{address[0]}:{address[1]}"
    raise BindUnavailable("listening socket", "unsupported address family")
