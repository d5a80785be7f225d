"""A fixed group of event loop threads sharing one listening socket."""

import asyncio
import logging
import socket
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from hello_server.domain.connection_id import ConnectionLoggerAdapter
from hello_server.lifecycle.state import ServerLifecycle

LOOPS_LOGGER = ConnectionLoggerAdapter(logging.getLogger("hello_server.transport.loops"))

ProtocolFactory = Callable[[set], asyncio.Protocol]


class EventLoopGroup:
    """Runs one asyncio event loop per worker thread.

    Every loop accepts on its own duplicate of the listening socket, so a
    connection is owned by whichever loop accepted it for its whole life.
    """

    def __init__(
        self,
        workers: int,
        lifecycle: Optional[ServerLifecycle] = None,
        backlog: int = 256,
    ) -> None:
        self._workers = max(1, workers)
        self._lifecycle = lifecycle
        self._backlog = backlog
        self._loops: list[asyncio.AbstractEventLoop] = []
        self._threads: list[threading.Thread] = []

    @property
    def size(self) -> int:
        return self._workers

    def serve(self, listener: socket.socket, protocol_factory: ProtocolFactory) -> None:
        """Start every loop serving ``listener``; raises if any loop fails to start."""
        startups: list[Future] = []
        for index in range(self._workers):
            loop = asyncio.new_event_loop()
            started: Future = Future()
            thread = threading.Thread(
                target=self._run_loop,
                args=(loop, listener.dup(), protocol_factory, started),
                name=f"hello-server-loop-{index}",
                daemon=True,
            )
            self._loops.append(loop)
            self._threads.append(thread)
            startups.append(started)
            thread.start()
        for started in startups:
            started.result()
        LOOPS_LOGGER.debug(
            "Event loops started", extra={"event": "loops_started", "workers": self._workers}
        )

    def shutdown(self, grace_seconds: float) -> None:
        """Stop every loop and wait up to ``grace_seconds`` for the threads."""
        for loop in self._loops:
            if not loop.is_closed():
                try:
                    loop.call_soon_threadsafe(loop.stop)
                except RuntimeError:
                    # The loop closed between the check and the call.
                    continue
        if self._lifecycle is not None:
            self._lifecycle.wait_for_workers(grace_seconds)
        else:
            for thread in self._threads:
                thread.join(grace_seconds)

    def _run_loop(
        self,
        loop: asyncio.AbstractEventLoop,
        sock: socket.socket,
        protocol_factory: ProtocolFactory,
        started: Future,
    ) -> None:
        current_thread = threading.current_thread()
        if self._lifecycle is not None:
            self._lifecycle.register_worker(current_thread)
        asyncio.set_event_loop(loop)
        connections: set = set()
        server: Optional[asyncio.AbstractServer] = None
        try:
            try:
                server = loop.run_until_complete(
                    loop.create_server(
                        lambda: protocol_factory(connections),
                        sock=sock,
                        backlog=self._backlog,
                    )
                )
            except Exception as error:  # pylint: disable=broad-except
                sock.close()
                started.set_exception(error)
                return
            started.set_result(None)
            loop.run_forever()
            self._close_server(loop, server, connections)
        finally:
            loop.close()
            if self._lifecycle is not None:
                self._lifecycle.cleanup_worker(current_thread)

    @staticmethod
    def _close_server(
        loop: asyncio.AbstractEventLoop,
        server: asyncio.AbstractServer,
        connections: set,
    ) -> None:
        server.close()
        for connection in list(connections):
            connection.close()
        # Let the transports run their close callbacks before the loop goes away.
        loop.run_until_complete(asyncio.sleep(0))
        LOOPS_LOGGER.debug(
            "Event loop stopped",
            extra={"event": "loop_stopped", "open_connections": len(connections)},
        )
