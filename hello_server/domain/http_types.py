"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union


@dataclass(frozen=True)
class HttpVersion:
    """Protocol version of a request or response."""

    major: int
    minor: int

    @classmethod
    def parse(cls, text: str) -> "HttpVersion":
        """Build a version from the ``"1.1"`` form returned by the parser."""
        major, _, minor = text.partition(".")
        return cls(int(major), int(minor or 0))

    def __str__(self) -> str:
        return f"HTTP/{self.major}.{self.minor}"


HTTP_1_0 = HttpVersion(1, 0)
HTTP_1_1 = HttpVersion(1, 1)


class HttpHeaders:
    """Ordered header list with case-insensitive lookups."""

    def __init__(self, items: Optional[Iterable[tuple[str, str]]] = None) -> None:
        self._items: list[tuple[str, str]] = list(items or [])

    def add(self, name: str, value: str) -> None:
        """Append a header, keeping any existing values for the same name."""
        self._items.append((name, value))

    def get_all(self, name: str) -> list[str]:
        """Return every value for ``name`` in the order received."""
        lowered = name.lower()
        return [value for key, value in self._items if key.lower() == lowered]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value for ``name``."""
        values = self.get_all(name)
        return values[0] if values else default

    def tokens(self, name: str) -> list[str]:
        """Split comma separated values into lowercase tokens."""
        return [
            token.strip().lower()
            for value in self.get_all(name)
            for token in value.split(",")
            if token.strip()
        ]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and bool(self.get_all(name))

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HttpHeaders):
            return self._items == other._items
        return NotImplemented

    def __repr__(self) -> str:
        return f"HttpHeaders({self._items!r})"


@dataclass
class RequestHead:
    """Parsed request line and headers of one request."""

    method: str
    uri: str
    version: HttpVersion
    headers: HttpHeaders = field(default_factory=HttpHeaders)
    keep_alive: bool = True


@dataclass
class ResponseHead:
    """Status line and headers of an outgoing response."""

    version: HttpVersion
    status: int
    reason: str
    headers: HttpHeaders = field(default_factory=HttpHeaders)

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status} {self.reason}"


@dataclass
class RequestHeadPart:
    head: RequestHead


@dataclass
class RequestBodyPart:
    chunk: bytes


@dataclass
class RequestEndPart:
    pass


@dataclass
class InputClosed:
    """The peer shut down its sending side of the connection."""


@dataclass
class ResponseHeadPart:
    head: ResponseHead


@dataclass
class ResponseBodyPart:
    chunk: bytes


@dataclass
class ResponseEndPart:
    pass


RequestPart = Union[RequestHeadPart, RequestBodyPart, RequestEndPart]
InboundEvent = Union[RequestHeadPart, RequestBodyPart, RequestEndPart, InputClosed]
ResponsePart = Union[ResponseHeadPart, ResponseBodyPart, ResponseEndPart]
