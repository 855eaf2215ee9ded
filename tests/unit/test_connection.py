"""
Unit tests for request reading on a client connection.
"""

import socket

import pytest

from staticserver.core.connection import Connection, RequestTooLarge
from staticserver.http.request import HTTPParseError, parse_request


@pytest.fixture
def pair():
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    server_side.close()
    client_side.close()


def make_connection(sock: socket.socket, **kwargs) -> Connection:
    return Connection(socket=sock, address=("127.0.0.1", 0), timeout=2.0, **kwargs)


class TestReadRequest:

    def test_content_length_body(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"POST /api/x HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello")

        data = make_connection(server_side).read_request()

        assert parse_request(data).body == b"hello"

    def test_chunked_body_is_decoded(self, pair):
        server_side, client_side = pair
        client_side.sendall(
            b"POST /api/x HTTP/1.1\r\nHost: x\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"3\r\npay\r\n4;name=value\r\nload\r\n0\r\nX-Trailer: 1\r\n\r\n"
            b"GET /next HTTP/1.1\r\n\r\n"
        )
        conn = make_connection(server_side)

        request = parse_request(conn.read_request())

        assert request.body == b"payload"
        assert request.get_header("content-length") == "7"
        assert request.get_header("transfer-encoding") == ""
        assert request.get_header("host") == "x"
        assert parse_request(conn.read_request()).path == "/next"

    def test_chunked_body_split_across_reads(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"POST /api/x HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n5\r\nab")
        client_side.sendall(b"cde\r\n0\r\n\r\n")

        data = make_connection(server_side, buffer_size=16).read_request()

        assert parse_request(data).body == b"abcde"

    @pytest.mark.parametrize("chunks", [
        b"zz\r\nab\r\n0\r\n\r\n",
        b"0x2\r\nab\r\n0\r\n\r\n",
        b"2\r\nabc\r\n0\r\n\r\n",
    ])
    def test_malformed_chunks(self, pair, chunks):
        server_side, client_side = pair
        client_side.sendall(b"POST /api/x HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n" + chunks)

        with pytest.raises(HTTPParseError) as exc_info:
            make_connection(server_side).read_request()

        assert exc_info.value.status_code == 400

    def test_truncated_chunked_body(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"POST /api/x HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n5\r\nab")
        client_side.shutdown(socket.SHUT_WR)

        with pytest.raises(HTTPParseError):
            make_connection(server_side).read_request()

    def test_unsupported_transfer_coding(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"POST /api/x HTTP/1.1\r\nTransfer-Encoding: gzip\r\n\r\n")

        with pytest.raises(HTTPParseError) as exc_info:
            make_connection(server_side).read_request()

        assert exc_info.value.status_code == 501

    def test_chunked_body_counts_against_size_limit(self, pair):
        server_side, client_side = pair
        client_side.sendall(
            b"POST /api/x HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"100\r\n" + b"x" * 256 + b"\r\n0\r\n\r\n"
        )

        with pytest.raises(RequestTooLarge):
            make_connection(server_side, max_request_size=128, buffer_size=64).read_request()

    def test_closed_before_request(self, pair):
        server_side, client_side = pair
        client_side.close()

        assert make_connection(server_side).read_request() is None
