"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


DEFAULT_HOST = "::1"
DEFAULT_PORT = 8888
STDIO_TARGET = "-"
LISTEN_BACKLOG = 256
DISABLE_HALF_CLOSURE_FLAG = "--disable-half-closure"

DEFAULT_WORKERS = _env_int("HELLO_SERVER_WORKERS", os.cpu_count() or 1)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("HELLO_SERVER_SHUTDOWN_GRACE_SECONDS", 5)


@dataclass(frozen=True)
class ServerConfig:
    """Startup settings shared by every worker loop."""

    allow_half_closure: bool = True
    workers: int = DEFAULT_WORKERS
    backlog: int = LISTEN_BACKLOG
    shutdown_grace_seconds: int = DEFAULT_SHUTDOWN_GRACE_SECONDS


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(
        description="Hello World HTTP server",
        usage="%(prog)s [--disable-half-closure] [host] port | [port] | [uds-path] | -",
    )
    parser.add_argument(
        "target",
        nargs="?",
        help="port, host (with a port), Unix socket path, or '-' for stdio",
    )
    parser.add_argument("port", nargs="?", help="port when a host is given")
    parser.add_argument(
        DISABLE_HALF_CLOSURE_FLAG,
        dest="disable_half_closure",
        action="store_true",
        help="Close the connection as soon as the peer shuts down its side",
    )
    default_log_level = os.getenv("HELLO_SERVER_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("HELLO_SERVER_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit structured JSON log records",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help="Number of event loop threads (default: CPU count)",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for open connections on shutdown",
    )
    args, unknown = parser.parse_known_args(argv)
    # Dash-prefixed values such as "-sock" are not options; they fill the
    # free positional slots. Surplus positionals are ignored.
    leftovers = [value for value in unknown if not value.startswith("--")]
    if args.target is None and leftovers:
        args.target = leftovers.pop(0)
    if args.port is None and leftovers:
        args.port = leftovers.pop(0)
    return args


def build_server_config(args: argparse.Namespace) -> ServerConfig:
    """Freeze the parsed arguments into the runtime configuration."""
    workers: Optional[int] = args.workers
    return ServerConfig(
        allow_half_closure=not args.disable_half_closure,
        workers=max(1, workers or 1),
        backlog=LISTEN_BACKLOG,
        shutdown_grace_seconds=max(0, args.shutdown_grace_seconds),
    )
