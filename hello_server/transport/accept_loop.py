"""Binding the configured target and serving until asked to stop."""

import asyncio
import functools
import logging
import os
import socket
import sys
from typing import Optional, TextIO

from hello_server.bootstrap.config import ServerConfig
from hello_server.bootstrap.socket_factory import create_listener, describe_address
from hello_server.domain.bind_target import (
    BindTarget,
    StdioTarget,
    UnixSocketTarget,
    describe_target,
)
from hello_server.domain.connection_id import ConnectionLoggerAdapter
from hello_server.lifecycle.state import ServerLifecycle
from hello_server.transport.connection import HttpConnection
from hello_server.transport.event_loops import EventLoopGroup
from hello_server.transport.stdio import serve_stdio

ACCEPT_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("hello_server.transport.accept")
)
STOP_POLL_SECONDS = 0.5
STDIO_ADDRESS = "STDIO"


def _announce(message: str, out: TextIO) -> None:
    print(message, file=out, flush=True)


def _connection_factory(config: ServerConfig, connections: set) -> HttpConnection:
    return HttpConnection(config, tracker=connections)


def _serve_socket(
    listener: socket.socket,
    config: ServerConfig,
    lifecycle: ServerLifecycle,
    out: TextIO,
) -> None:
    group = EventLoopGroup(config.workers, lifecycle, config.backlog)
    try:
        local_address = describe_address(listener)
        group.serve(listener, functools.partial(_connection_factory, config))
        _announce(f"Server started and listening on {local_address}", out)
        ACCEPT_LOGGER.info(
            "Server listening for connections",
            extra={
                "event": "server_listening",
                "local_address": local_address,
                "workers": group.size,
                "allow_half_closure": config.allow_half_closure,
            },
        )
        while not lifecycle.wait_for_stop(STOP_POLL_SECONDS):
            continue
    finally:
        listener.close()
        group.shutdown(config.shutdown_grace_seconds)


def run_server(
    target: BindTarget,
    config: ServerConfig,
    lifecycle: ServerLifecycle,
    out: Optional[TextIO] = None,
) -> None:
    """Bind ``target`` and serve until the lifecycle is stopped.

    Raises BindUnavailable when the listening socket cannot be created.
    """
    if isinstance(target, StdioTarget):
        announce_to = out or sys.stderr
        _announce(f"Server started and listening on {STDIO_ADDRESS}", announce_to)
        asyncio.run(serve_stdio(config, lifecycle))
    else:
        announce_to = out or sys.stdout
        listener = create_listener(target, config.backlog)
        try:
            _serve_socket(listener, config, lifecycle, announce_to)
        finally:
            if isinstance(target, UnixSocketTarget):
                try:
                    os.unlink(target.path)
                except FileNotFoundError:
                    pass

    ACCEPT_LOGGER.info(
        "Server shutdown complete",
        extra={"event": "server_stopped", "target": describe_target(target)},
    )
    _announce("Server closed", announce_to)
