"""Unit tests covering HTTP request decoding and response encoding."""

import pytest

from hello_server.domain.http_types import (
    HTTP_1_0,
    HTTP_1_1,
    HttpHeaders,
    RequestBodyPart,
    RequestEndPart,
    RequestHeadPart,
    ResponseBodyPart,
    ResponseEndPart,
    ResponseHead,
    ResponseHeadPart,
)
from hello_server.pipeline.codec import MalformedRequest, RequestDecoder, ResponseEncoder


def drain(decoder):
    parts = list(decoder.parts)
    decoder.parts.clear()
    return parts


def test_decoder_emits_head_and_end_for_simple_get():
    decoder = RequestDecoder()
    decoder.feed(b"GET /mypath?a=b HTTP/1.1\r\nHost: localhost\r\n\r\n")

    head_part, end_part = drain(decoder)
    assert isinstance(head_part, RequestHeadPart)
    assert isinstance(end_part, RequestEndPart)
    head = head_part.head
    assert head.method == "GET"
    assert head.uri == "/mypath?a=b"
    assert head.version == HTTP_1_1
    assert head.keep_alive is True
    assert head.headers.get("host") == "localhost"


def test_decoder_handles_partial_reads():
    decoder = RequestDecoder()
    request = (
        b"POST /upload HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Content-Length: 5\r\n\r\n"
        b"hello"
    )
    for index in range(0, len(request), 7):
        decoder.feed(request[index : index + 7])

    parts = drain(decoder)
    assert isinstance(parts[0], RequestHeadPart)
    assert isinstance(parts[-1], RequestEndPart)
    body = b"".join(p.chunk for p in parts if isinstance(p, RequestBodyPart))
    assert body == b"hello"
    assert parts[0].head.uri == "/upload"


@pytest.mark.parametrize(
    ("request_bytes", "version", "keep_alive"),
    [
        (b"GET / HTTP/1.0\r\nHost: a\r\n\r\n", HTTP_1_0, False),
        (b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n", HTTP_1_0, True),
        (b"GET / HTTP/1.1\r\nHost: a\r\nConnection: close\r\n\r\n", HTTP_1_1, False),
    ],
)
def test_decoder_reports_keep_alive_intent(request_bytes, version, keep_alive):
    decoder = RequestDecoder()
    decoder.feed(request_bytes)

    head = drain(decoder)[0].head
    assert head.version == version
    assert head.keep_alive is keep_alive


def test_decoder_emits_pipelined_requests_in_order():
    decoder = RequestDecoder()
    decoder.feed(
        b"GET /one HTTP/1.1\r\nHost: a\r\n\r\nGET /two HTTP/1.1\r\nHost: a\r\n\r\n"
    )

    kinds = [type(p).__name__ for p in drain(decoder)]
    assert kinds == ["RequestHeadPart", "RequestEndPart"] * 2


def test_decoder_raises_on_garbage():
    decoder = RequestDecoder()

    with pytest.raises(MalformedRequest):
        decoder.feed(b"NOT HTTP AT ALL\r\n\r\n")


def test_encoder_writes_content_length_response():
    encoder = ResponseEncoder()
    head = ResponseHead(HTTP_1_1, 200, "OK", HttpHeaders([("content-length", "2")]))

    data = (
        encoder.encode(ResponseHeadPart(head), "GET")
        + encoder.encode(ResponseBodyPart(b"hi"))
        + encoder.encode(ResponseEndPart())
    )

    assert data == b"HTTP/1.1 200 OK\r\ncontent-length: 2\r\n\r\nhi"


def test_encoder_chunks_http11_body_without_length():
    encoder = ResponseEncoder()
    head = ResponseHead(HTTP_1_1, 200, "OK")

    data = (
        encoder.encode(ResponseHeadPart(head))
        + encoder.encode(ResponseBodyPart(b"hello"))
        + encoder.encode(ResponseEndPart())
    )

    assert data == (
        b"HTTP/1.1 200 OK\r\ntransfer-encoding: chunked\r\n\r\n5\r\nhello\r\n0\r\n\r\n"
    )
    assert "transfer-encoding" not in head.headers


def test_encoder_mirrors_http10_version():
    encoder = ResponseEncoder()
    head = ResponseHead(
        HTTP_1_0, 200, "OK", HttpHeaders([("Connection", "keep-alive")])
    )

    assert encoder.encode(ResponseHeadPart(head)).startswith(b"HTTP/1.0 200 OK\r\n")


def test_encoder_drops_body_for_head_requests():
    encoder = ResponseEncoder()
    head = ResponseHead(HTTP_1_1, 200, "OK", HttpHeaders([("content-length", "5")]))

    data = (
        encoder.encode(ResponseHeadPart(head), "HEAD")
        + encoder.encode(ResponseBodyPart(b"hello"))
        + encoder.encode(ResponseEndPart())
    )

    assert data == b"HTTP/1.1 200 OK\r\ncontent-length: 5\r\n\r\n"


def test_encoder_rejects_unknown_parts():
    with pytest.raises(TypeError):
        ResponseEncoder().encode(object())
