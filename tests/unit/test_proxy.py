"""
Unit tests for the reverse proxy passthrough.
"""

import pytest

from staticserver.handlers.proxy import ReverseProxy, filter_hop_by_hop
from staticserver.http.request import HTTPRequest, parse_request


class TestFilterHopByHop:

    def test_standard_headers_dropped(self):
        items = [
            ("Host", "example.com"),
            ("Connection", "keep-alive"),
            ("Keep-Alive", "timeout=5"),
            ("Transfer-Encoding", "chunked"),
            ("TE", "trailers"),
            ("Upgrade", "websocket"),
            ("Proxy-Authorization", "Basic abc"),
            ("Accept", "*/*"),
        ]
        assert filter_hop_by_hop(items) == [("Host", "example.com"), ("Accept", "*/*")]

    def test_headers_named_by_connection_dropped(self):
        items = [
            ("Connection", "close, X-Session-Hint"),
            ("x-session-hint", "abc"),
            ("X-Other", "1"),
        ]
        assert filter_hop_by_hop(items) == [("X-Other", "1")]

    def test_order_and_repeats_kept(self):
        items = [("Set-Cookie", "a=1"), ("X-A", "1"), ("Set-Cookie", "b=2")]
        assert filter_hop_by_hop(items) == items


class TestReverseProxy:

    def test_upstream_url_keeps_raw_target(self):
        proxy = ReverseProxy("http://backend:3000/")
        request = HTTPRequest(method="GET", path="/api/a b", target="/api/a%20b?q=1&q=2")

        assert proxy.upstream_url(request) == "http://backend:3000/api/a%20b?q=1&q=2"

    def test_upstream_url_from_absolute_form_target(self):
        proxy = ReverseProxy("http://backend:3000")
        request = parse_request(b"GET http://example.com/api/x?y=1 HTTP/1.1\r\n\r\n")

        assert proxy.upstream_url(request) == "http://backend:3000/api/x?y=1"

    def test_request_headers(self):
        proxy = ReverseProxy()
        request = parse_request(
            b"GET /api/x HTTP/1.1\r\n"
            b"Host: localhost:9527\r\n"
            b"Connection: keep-alive\r\n"
            b"Accept: text/html\r\n"
            b"Accept: application/json\r\n"
            b"\r\n"
        )

        headers = proxy._request_headers(request)

        assert headers == {
            "Host": "localhost:9527",
            "Accept": "text/html, application/json",
        }

    def test_unreachable_upstream_is_500(self, free_port):
        proxy = ReverseProxy(f"http://127.0.0.1:{free_port}")
        request = HTTPRequest(method="GET", path="/api/users", target="/api/users?x=1")

        response = proxy.forward(request)

        assert response.status == 500
        assert response.get_header("Content-Type") == "text/plain; charset=utf-8"
        assert response.body.startswith(
            f"ERR: proxy request to http://127.0.0.1:{free_port}/api/users?x=1 failed".encode()
        )

    def test_relays_status_headers_and_body(self, upstream):
        proxy = ReverseProxy(upstream)
        request = parse_request(
            b"GET /api/users?page=2 HTTP/1.1\r\n"
            b"Host: front.example\r\n"
            b"X-Test: 42\r\n"
            b"\r\n"
        )

        response = proxy.forward(request)
        try:
            body = b"".join(response.stream)
        finally:
            response.close()

        assert response.status == 200
        assert response.get_header("X-Upstream") == "yes"
        assert response.headers["Set-Cookie"] == ["a=1", "b=2"]
        assert body == b"GET /api/users?page=2 host=front.example x-test=42 body="

    def test_relays_unusual_status_and_reason(self, upstream):
        proxy = ReverseProxy(upstream)

        response = proxy.forward(HTTPRequest(method="GET", path="/api/teapot"))
        response.close()

        assert response.status == 418
        assert response.reason == "I'm a teapot"

    def test_forwards_body(self, upstream):
        proxy = ReverseProxy(upstream)
        request = parse_request(
            b"POST /api/echo HTTP/1.1\r\n"
            b"Host: front.example\r\n"
            b"Content-Length: 5\r\n"
            b"\r\n"
            b"hello"
        )

        response = proxy.forward(request)
        try:
            body = b"".join(response.stream)
        finally:
            response.close()

        assert body.startswith(b"POST /api/echo ")
        assert body.endswith(b"body=hello")
