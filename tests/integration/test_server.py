"""
End-to-end tests: a real StaticServer on an ephemeral port, real sockets.
"""

import gzip
import socket

import pytest
import requests


def raw_exchange(port: int, data: bytes) -> bytes:
    """Send raw bytes, read until the server closes the connection."""
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def split_response(data: bytes):
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return lines[0], headers, body


class TestStartup:

    def test_os_assigned_port(self, server):
        assert server.port > 0
        assert server.server.is_running

    def test_server_and_date_headers(self, server):
        response = requests.get(f"{server.url}/notes.txt")

        assert response.headers["Server"] == "staticserver"
        assert response.headers["Date"].endswith(" GMT")


class TestFreshness:

    def test_exact_if_modified_since_is_304(self, server):
        first = requests.get(f"{server.url}/notes.txt")
        modified = first.headers["Last-Modified"]

        second = requests.get(
            f"{server.url}/notes.txt",
            headers={"If-Modified-Since": modified},
        )

        assert second.status_code == 304
        assert second.content == b""
        assert "Content-Type" not in second.headers
        assert second.headers["Cache-Control"] == "public, max-age=3600"

    def test_other_if_modified_since_is_200(self, server):
        response = requests.get(
            f"{server.url}/notes.txt",
            headers={"If-Modified-Since": "Thu, 01 Jan 1970 00:00:00 GMT"},
        )

        assert response.status_code == 200
        assert response.content == b"hello notes\n"

    def test_repeated_gets_are_identical(self, server):
        first = requests.get(f"{server.url}/data.bin")
        second = requests.get(f"{server.url}/data.bin")

        assert first.content == second.content
        assert first.headers["Last-Modified"] == second.headers["Last-Modified"]


class TestDirectories:

    def test_redirect_with_slash(self, server):
        response = requests.get(f"{server.url}/files?x=1", allow_redirects=False)

        assert response.status_code == 301
        assert response.headers["Location"] == "/files/?x=1"
        assert "Redirecting to" in response.text

    def test_redirect_is_followed_to_listing(self, server):
        response = requests.get(f"{server.url}/files")

        assert response.status_code == 200
        assert response.url.endswith("/files/")
        assert "<h1>Index of /files/</h1>" in response.text

    def test_listing_links(self, server, site):
        response = requests.get(f"{server.url}/")

        assert response.status_code == 200
        assert response.text.count("<a ") == len(list(site.iterdir()))
        assert "href='/docs/'" in response.text
        assert "href='/app.css'" in response.text

    def test_index_page(self, server):
        via_dir = requests.get(f"{server.url}/docs/")
        direct = requests.get(f"{server.url}/docs/index.html")

        assert via_dir.status_code == 200
        assert via_dir.content == direct.content
        assert via_dir.headers["Content-Type"] == direct.headers["Content-Type"]

    def test_not_found(self, server):
        response = requests.get(f"{server.url}/missing.html")

        assert response.status_code == 404
        assert "The requested URL /missing.html was not found" in response.text

    def test_traversal_stays_in_root(self, server, tmp_path):
        (tmp_path / "secret.txt").write_text("secret")

        data = raw_exchange(
            server.port,
            b"GET /../secret.txt HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n",
        )

        status_line, _, body = split_response(data)
        assert status_line == "HTTP/1.1 404 Not Found"
        assert b"secret" not in body.replace(b"secret.txt", b"")


class TestCompression:

    def test_gzip(self, server, site):
        response = requests.get(
            f"{server.url}/app.css",
            headers={"Accept-Encoding": "gzip, deflate"},
            stream=True,
        )
        raw = response.raw.read(decode_content=False)

        assert response.headers["Content-Encoding"] == "gzip"
        assert response.headers["Vary"] == "Accept-Encoding"
        assert response.headers["Transfer-Encoding"] == "chunked"
        assert gzip.decompress(raw) == (site / "app.css").read_bytes()

    def test_no_accept_encoding(self, server, site):
        response = requests.get(
            f"{server.url}/app.css",
            headers={"Accept-Encoding": None},
        )

        assert "Content-Encoding" not in response.headers
        assert response.headers["Content-Length"] == str((site / "app.css").stat().st_size)
        assert response.content == (site / "app.css").read_bytes()

    def test_ineligible_file(self, server, site):
        response = requests.get(
            f"{server.url}/data.bin",
            headers={"Accept-Encoding": "gzip"},
        )

        assert "Content-Encoding" not in response.headers
        assert response.content == (site / "data.bin").read_bytes()

    def test_http10_stream_is_close_delimited(self, server, site):
        data = raw_exchange(
            server.port,
            b"GET /app.css HTTP/1.0\r\nAccept-Encoding: gzip\r\n\r\n",
        )

        status_line, headers, body = split_response(data)
        assert status_line == "HTTP/1.1 200 OK"
        assert "transfer-encoding" not in headers
        assert headers["connection"] == "close"
        assert gzip.decompress(body) == (site / "app.css").read_bytes()


class TestProxy:

    def test_relayed(self, start_server, upstream):
        server = start_server(proxy_target=upstream)

        response = requests.get(f"{server.url}/api/local.txt?q=1", headers={"X-Test": "7"})

        assert response.status_code == 200
        assert response.text.startswith(
            f"GET /api/local.txt?q=1 host=127.0.0.1:{server.port} x-test=7"
        )
        assert "LOCAL" not in response.text
        assert response.raw.headers.getlist("Set-Cookie") == ["a=1", "b=2"]
        assert response.headers["X-Upstream"] == "yes"

    def test_post_body_forwarded(self, start_server, upstream):
        server = start_server(proxy_target=upstream)

        response = requests.post(f"{server.url}/api/echo", data=b"payload")

        assert response.text.endswith("body=payload")

    def test_chunked_post_body_forwarded(self, start_server, upstream):
        server = start_server(proxy_target=upstream)

        def gen():
            yield b"pay"
            yield b"load"

        response = requests.post(f"{server.url}/api/echo", data=gen())

        assert response.status_code == 200
        assert response.text.endswith("body=payload")

    def test_upstream_status_relayed(self, start_server, upstream):
        server = start_server(proxy_target=upstream)

        response = requests.get(f"{server.url}/api/teapot")

        assert response.status_code == 418
        assert response.reason == "I'm a teapot"

    def test_unreachable_upstream(self, start_server, free_port):
        server = start_server(proxy_target=f"http://127.0.0.1:{free_port}")

        response = requests.get(f"{server.url}/api/local.txt")

        assert response.status_code == 500
        assert response.headers["Content-Type"].startswith("text/plain")
        assert response.text.startswith("ERR: proxy request to")

    def test_proxy_disabled_serves_locally(self, start_server):
        server = start_server(proxy_match="")

        response = requests.get(f"{server.url}/api/local.txt")

        assert response.text == "LOCAL\n"


class TestConnection:

    def test_head(self, server):
        response = requests.head(f"{server.url}/notes.txt")

        assert response.status_code == 200
        assert response.headers["Content-Length"] == "12"
        assert response.content == b""

    def test_keep_alive_pipelined(self, server):
        data = raw_exchange(
            server.port,
            b"GET /notes.txt HTTP/1.1\r\nHost: x\r\n\r\n"
            b"GET /files/a.txt HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n",
        )

        assert data.count(b"HTTP/1.1 200 OK\r\n") == 2
        assert b"hello notes\n" in data
        assert data.endswith(b"a\n")

    def test_session_reuse(self, server):
        with requests.Session() as session:
            first = session.get(f"{server.url}/notes.txt")
            second = session.get(f"{server.url}/files/a.txt")

        assert first.content == b"hello notes\n"
        assert second.content == b"a\n"

    @pytest.mark.parametrize("request_bytes, status", [
        (b"BREW /pot HTTP/1.1\r\n\r\n", 405),
        (b"GET / HTTP/3.0\r\n\r\n", 505),
        (b"nonsense\r\n\r\n", 400),
    ])
    def test_unparsable_requests(self, server, request_bytes, status):
        data = raw_exchange(server.port, request_bytes)

        status_line, headers, _ = split_response(data)
        assert status_line.startswith(f"HTTP/1.1 {status} ")
        assert headers["connection"] == "close"

    def test_chunked_request_then_pipelined_request(self, server):
        data = raw_exchange(
            server.port,
            b"POST /notes.txt HTTP/1.1\r\nHost: x\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"3\r\npay\r\n4;ext=1\r\nload\r\n0\r\n\r\n"
            b"GET /files/a.txt HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n",
        )

        assert data.count(b"HTTP/1.1 200 OK\r\n") == 2
        assert data.endswith(b"a\n")

    @pytest.mark.parametrize("request_bytes, status", [
        (b"POST /notes.txt HTTP/1.1\r\nTransfer-Encoding: gzip\r\n\r\n", 501),
        (b"POST /notes.txt HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\n", 400),
    ])
    def test_unreadable_request_bodies(self, server, request_bytes, status):
        data = raw_exchange(server.port, request_bytes)

        status_line, headers, _ = split_response(data)
        assert status_line.startswith(f"HTTP/1.1 {status} ")
        assert headers["connection"] == "close"
