"""Tests for the event loop group serving a shared listener."""

import functools
import socket

import pytest

from hello_server.bootstrap.config import ServerConfig
from hello_server.bootstrap.socket_factory import create_listener
from hello_server.domain.bind_target import TcpTarget
from hello_server.lifecycle.state import ServerLifecycle
from hello_server.transport.accept_loop import _connection_factory
from hello_server.transport.event_loops import EventLoopGroup
from tests.utils.http import BufferedReader, build_request


@pytest.fixture(name="running_group")
def fixture_running_group():
    lifecycle = ServerLifecycle()
    group = EventLoopGroup(2, lifecycle, backlog=16)
    listener = create_listener(TcpTarget("127.0.0.1", 0), backlog=16)
    group.serve(listener, functools.partial(_connection_factory, ServerConfig(workers=2)))
    try:
        yield listener.getsockname()[1], lifecycle
    finally:
        listener.close()
        group.shutdown(5)


def test_group_size_is_at_least_one():
    assert EventLoopGroup(0).size == 1
    assert EventLoopGroup(3).size == 3


def test_workers_are_registered_with_lifecycle(running_group):
    _, lifecycle = running_group

    assert lifecycle.active_worker_count() == 2


def test_each_connection_is_served(running_group):
    port, _ = running_group

    for index in range(4):
        with socket.create_connection(("127.0.0.1", port), timeout=2) as sock:
            sock.sendall(build_request(f"/conn{index}"))
            response = BufferedReader(sock).read_response()
            assert response.status == 200
            assert f"Path: /conn{index}".encode() in response.body


def test_shutdown_stops_every_worker():
    lifecycle = ServerLifecycle()
    group = EventLoopGroup(2, lifecycle, backlog=16)
    listener = create_listener(TcpTarget("127.0.0.1", 0), backlog=16)
    group.serve(listener, functools.partial(_connection_factory, ServerConfig()))
    listener.close()

    group.shutdown(5)

    assert lifecycle.active_worker_count() == 0
