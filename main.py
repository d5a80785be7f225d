"""Hello World HTTP server echoing the request path and query parameters."""

import logging
import signal
import sys
from typing import Optional

from hello_server.bootstrap.config import build_server_config, parse_cli_args
from hello_server.bootstrap.logging_setup import configure_logging
from hello_server.bootstrap.socket_factory import BindUnavailable
from hello_server.domain.bind_target import (
    StdioTarget,
    describe_target,
    resolve_bind_target,
)
from hello_server.domain.connection_id import ConnectionLoggerAdapter
from hello_server.lifecycle.state import ServerLifecycle
from hello_server.transport.accept_loop import run_server

SERVER_LOGGER = ConnectionLoggerAdapter(logging.getLogger("hello_server.server"))


def main(argv: Optional[list[str]] = None) -> int:
    """Resolve the bind target, then serve until a signal stops the server."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    target = resolve_bind_target(args.target, args.port)
    console = sys.stderr if isinstance(target, StdioTarget) else None
    configure_logging(args.log_level, args.log_destination, args.log_json, console)

    config = build_server_config(args)
    lifecycle = ServerLifecycle()

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "shutdown_signal", "signal": signum},
        )
        lifecycle.request_stop()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        "Starting Hello World server",
        extra={
            "event": "server_starting",
            "target": describe_target(target),
            "workers": config.workers,
            "allow_half_closure": config.allow_half_closure,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
        },
    )
    try:
        run_server(target, config, lifecycle)
    except BindUnavailable as error:
        print(error, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
