"""Stop signalling and event loop thread tracking for the server process."""

import logging
import threading
import time

from hello_server.domain.connection_id import ConnectionLoggerAdapter

LIFECYCLE_LOGGER = ConnectionLoggerAdapter(logging.getLogger("hello_server.lifecycle"))


class ServerLifecycle:
    """Shared between the signal handlers, the accept loop and the event loop threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._workers: set[threading.Thread] = set()

    def should_stop(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Ask the server to close its listener and connections."""
        if not self._stop_event.is_set():
            LIFECYCLE_LOGGER.info("Stop requested", extra={"event": "stop_requested"})
        self._stop_event.set()

    def wait_for_stop(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; True once a stop was requested."""
        return self._stop_event.wait(timeout)

    def register_worker(self, thread: threading.Thread) -> None:
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        with self._lock:
            self._workers.discard(thread)

    def active_worker_count(self) -> int:
        with self._lock:
            return len(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Join every event loop thread, giving up after ``timeout`` seconds.

        Returns False when some thread is still running at the deadline.
        """
        deadline = time.monotonic() + timeout
        with self._lock:
            running = [thread for thread in self._workers if thread.is_alive()]
        for thread in running:
            thread.join(max(0.0, deadline - time.monotonic()))

        with self._lock:
            self._workers = {thread for thread in self._workers if thread.is_alive()}
            remaining = len(self._workers)
        if remaining:
            LIFECYCLE_LOGGER.warning(
                "Event loops still running after the grace period",
                extra={"event": "shutdown_timeout", "remaining_workers": remaining},
            )
            return False
        return True
