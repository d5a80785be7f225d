"""HTTP/1.x framing: request decoding with httptools and response encoding."""

import logging
from collections import deque
from typing import Optional

import httptools

from hello_server.domain.connection_id import ConnectionLoggerAdapter
from hello_server.domain.http_types import (
    HTTP_1_1,
    HttpHeaders,
    HttpVersion,
    RequestBodyPart,
    RequestEndPart,
    RequestHead,
    RequestHeadPart,
    RequestPart,
    ResponseBodyPart,
    ResponseEndPart,
    ResponseHead,
    ResponseHeadPart,
    ResponsePart,
)

CODEC_LOGGER = ConnectionLoggerAdapter(logging.getLogger("hello_server.pipeline.codec"))


class MalformedRequest(ValueError):
    """Raised when the inbound byte stream is not valid HTTP/1.x."""


class RequestDecoder:
    """Turns raw bytes into request parts using httptools callbacks.

    Parts are collected into ``parts`` in arrival order; the caller drains
    them after each ``feed``.
    """

    def __init__(self) -> None:
        self.parts: deque[RequestPart] = deque()
        self._parser = httptools.HttpRequestParser(self)
        self._url = b""
        self._headers: list[tuple[str, str]] = []
        self._upgraded = False

    # httptools callbacks

    def on_message_begin(self) -> None:
        self._url = b""
        self._headers = []

    def on_url(self, url: bytes) -> None:
        self._url += url

    def on_header(self, name: bytes, value: bytes) -> None:
        self._headers.append((name.decode("latin-1"), value.decode("latin-1")))

    def on_headers_complete(self) -> None:
        head = RequestHead(
            method=self._parser.get_method().decode("ascii"),
            uri=self._url.decode("latin-1"),
            version=HttpVersion.parse(self._parser.get_http_version()),
            headers=HttpHeaders(self._headers),
            keep_alive=self._parser.should_keep_alive(),
        )
        self.parts.append(RequestHeadPart(head))

    def on_body(self, body: bytes) -> None:
        self.parts.append(RequestBodyPart(body))

    def on_message_complete(self) -> None:
        self.parts.append(RequestEndPart())

    def feed(self, data: bytes) -> None:
        """Parse ``data``; raises MalformedRequest on a protocol violation."""
        if self._upgraded:
            return
        try:
            self._parser.feed_data(data)
        except httptools.HttpParserUpgrade:
            # No protocol switching is offered; the request itself was
            # already emitted and whatever follows it is not HTTP/1.x.
            self._upgraded = True
            CODEC_LOGGER.debug("Ignoring bytes after upgrade request")
        except httptools.HttpParserError as error:
            raise MalformedRequest(str(error)) from error


class ResponseEncoder:
    """Serializes response parts for one connection.

    Responses without ``content-length`` or ``transfer-encoding`` are sent
    chunked on HTTP/1.1. Bodies of responses to HEAD requests are dropped.
    """

    def __init__(self) -> None:
        self._chunked = False
        self._suppress_body = False

    def encode(self, part: ResponsePart, request_method: Optional[str] = None) -> bytes:
        if isinstance(part, ResponseHeadPart):
            return self._encode_head(part.head, request_method)
        if isinstance(part, ResponseBodyPart):
            if self._suppress_body or not part.chunk:
                return b""
            if self._chunked:
                return b"%X\r\n%s\r\n" % (len(part.chunk), part.chunk)
            return part.chunk
        if isinstance(part, ResponseEndPart):
            trailer = b"0\r\n\r\n" if self._chunked and not self._suppress_body else b""
            self._chunked = False
            self._suppress_body = False
            return trailer
        raise TypeError(f"Unsupported response part: {part!r}")

    def _encode_head(self, head: ResponseHead, request_method: Optional[str]) -> bytes:
        headers = HttpHeaders(head.headers)
        self._suppress_body = request_method == "HEAD"
        self._chunked = False
        if "content-length" not in headers and "transfer-encoding" not in headers:
            if (head.version.major, head.version.minor) >= (
                HTTP_1_1.major,
                HTTP_1_1.minor,
            ):
                headers.add("transfer-encoding", "chunked")
                self._chunked = True
        elif "chunked" in headers.tokens("transfer-encoding"):
            self._chunked = True

        lines = [head.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers)
        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
