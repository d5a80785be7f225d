"""Pure HTTP response builders."""

import re
import urllib.parse
from http import HTTPStatus
from typing import Optional

import httptools

from hello_server.domain.http_types import (
    HTTP_1_0,
    HTTP_1_1,
    HttpHeaders,
    RequestHead,
    ResponseHead,
)

GREETING = "Hello World"
CRLF = "\r\n"
# RFC 3986 characters, with every "%" starting a two digit hex escape.
URI_PATTERN = re.compile(r"(?:[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=]|%[0-9A-Fa-f]{2})*")


def _decode(component: Optional[bytes]) -> str:
    if not component:
        return ""
    return urllib.parse.unquote_to_bytes(component).decode("utf-8", errors="replace")


def query_items(query: Optional[bytes]) -> list[tuple[str, str]]:
    """Split a raw query string into decoded ``(name, value)`` pairs.

    A parameter without ``=`` gets an empty value; ``+`` is kept literally.
    """
    items = []
    for segment in (query or b"").split(b"&"):
        if not segment:
            continue
        name, _, value = segment.partition(b"=")
        items.append((_decode(name), _decode(value)))
    return items


def build_echo_body(uri: str) -> str:
    """Return the greeting followed by the request path and query parameters.

    Unparseable URIs only get the greeting line.
    """
    lines = [GREETING]
    if not URI_PATTERN.fullmatch(uri):
        return CRLF.join(lines) + CRLF
    try:
        url = httptools.parse_url(uri.encode("latin-1", errors="replace"))
    except httptools.HttpParserInvalidURLError:
        return CRLF.join(lines) + CRLF

    lines.append(f"Path: {_decode(url.path)}")
    lines.extend(f"{name} = {value}" for name, value in query_items(url.query))
    return CRLF.join(lines) + CRLF


def build_response_head(
    request: RequestHead,
    status: HTTPStatus = HTTPStatus.OK,
    headers: Optional[HttpHeaders] = None,
) -> ResponseHead:
    """Produce a response head whose Connection header agrees with the request.

    An explicit ``keep-alive`` or ``close`` token already in ``headers`` is left
    alone. Otherwise HTTP/1.0 keep-alive requests get ``Connection: keep-alive``
    and non keep-alive HTTP/1.1+ requests get ``Connection: close``.
    """
    head = ResponseHead(
        version=request.version,
        status=status.value,
        reason=status.phrase,
        headers=HttpHeaders(headers or []),
    )
    connection_tokens = head.headers.tokens("connection")
    if "keep-alive" in connection_tokens or "close" in connection_tokens:
        return head

    version = request.version
    if request.keep_alive and version == HTTP_1_0:
        head.headers.add("Connection", "keep-alive")
    elif not request.keep_alive and version.major == 1 and version.minor >= 1:
        head.headers.add("Connection", "close")
    return head


def bad_request_head() -> ResponseHead:
    """Produce the 400 head sent for malformed requests; it always closes."""
    status = HTTPStatus.BAD_REQUEST
    return ResponseHead(
        version=HTTP_1_1,
        status=status.value,
        reason=status.phrase,
        headers=HttpHeaders([("content-length", "0"), ("connection", "close")]),
    )
