"""Resolution of startup arguments into the endpoint the server listens on."""

import re
from dataclasses import dataclass
from typing import Optional, Union

from hello_server.bootstrap.config import DEFAULT_HOST, DEFAULT_PORT, STDIO_TARGET

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class TcpTarget:
    """Listen on a TCP host and port."""

    host: str
    port: int


@dataclass(frozen=True)
class UnixSocketTarget:
    """Listen on a Unix domain socket path."""

    path: str


@dataclass(frozen=True)
class StdioTarget:
    """Serve a single connection over standard input and output."""


BindTarget = Union[TcpTarget, UnixSocketTarget, StdioTarget]


def parse_integer(value: Optional[str]) -> Optional[int]:
    """Return the integer value of a plain decimal string, or None."""
    if value is None or not _INTEGER_PATTERN.fullmatch(value):
        return None
    return int(value)


def resolve_bind_target(
    first: Optional[str] = None, second: Optional[str] = None
) -> BindTarget:
    """Map the positional startup arguments to exactly one bind target.

    The first matching rule wins:

    1. ``host port``  -> TCP on ``host`` when the second argument is an integer.
    2. ``port``       -> TCP on the default host when the first is an integer.
    3. ``-``          -> standard input/output.
    4. ``path``       -> Unix domain socket at any other first argument.
    5. nothing        -> TCP on ``[::1]:8888``.
    """
    second_port = parse_integer(second)
    if first is not None and second_port is not None:
        return TcpTarget(host=first, port=second_port)

    first_port = parse_integer(first)
    if first_port is not None:
        return TcpTarget(host=DEFAULT_HOST, port=first_port)

    if first == STDIO_TARGET:
        return StdioTarget()

    if first is not None:
        return UnixSocketTarget(path=first)

    return TcpTarget(host=DEFAULT_HOST, port=DEFAULT_PORT)


def describe_target(target: BindTarget) -> str:
    """Human readable form used in startup logging."""
    if isinstance(target, TcpTarget):
        return f"{target.host}:{target.port}"
    if isinstance(target, UnixSocketTarget):
        return f"unix:{target.path}"
    return "STDIO"
