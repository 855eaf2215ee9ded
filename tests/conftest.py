"""
pytest configuration and fixtures.
"""

import os
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Generator, List

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from staticserver import StaticServer, ServerConfig
from staticserver.http import HTTPRequest


INDEX_HTML = b"<html><body><h1>Docs</h1></body></html>"
APP_CSS = b"body { color: #333; margin: 0; }\n" * 200
DATA_BIN = bytes(range(256)) * 64


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """
    A small document root:

        site/
        ├── app.css
        ├── data.bin
        ├── notes.txt
        ├── docs/
        │   └── index.html
        ├── files/
        │   ├── a.txt
        │   └── sub/
        └── api/
            └── local.txt     (shadowed by the proxy rule)
    """
    root = tmp_path / "site"
    root.mkdir()
    (root / "app.css").write_bytes(APP_CSS)
    (root / "data.bin").write_bytes(DATA_BIN)
    (root / "notes.txt").write_text("hello notes\n")

    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_bytes(INDEX_HTML)

    (root / "files").mkdir()
    (root / "files" / "a.txt").write_text("a\n")
    (root / "files" / "sub").mkdir()

    (root / "api").mkdir()
    (root / "api" / "local.txt").write_text("LOCAL\n")
    return root


@pytest.fixture
def make_request() -> Callable[..., HTTPRequest]:
    """Build an HTTPRequest by hand: make_request("/docs/", if_modified_since=...)."""
    def _make(target: str, method: str = "GET", **headers: str) -> HTTPRequest:
        path = target.partition("?")[0]
        header_map = {name.replace("_", "-"): value for name, value in headers.items()}
        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            headers=header_map,
        )
    return _make


@pytest.fixture
def free_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


# =============================================================================
# UPSTREAM FOR PROXY TESTS
# =============================================================================

class UpstreamHandler(BaseHTTPRequestHandler):
    """Echoes the request line and a few headers, sets two cookies."""

    def _reply(self, send_body: bool = True):
        length = int(self.headers.get("Content-Length", 0) or 0)
        received = self.rfile.read(length) if length else b""

        if self.path.startswith("/api/teapot"):
            body = b"short and stout"
            self.send_response(418, "I'm a teapot")
        else:
            body = (
                f"{self.command} {self.path} "
                f"host={self.headers.get('Host')} "
                f"x-test={self.headers.get('X-Test')} "
                f"body={received.decode('latin-1')}"
            ).encode("latin-1")
            self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Set-Cookie", "a=1")
        self.send_header("Set-Cookie", "b=2")
        self.send_header("X-Upstream", "yes")
        self.end_headers()
        if send_body:
            self.wfile.write(body)

    def do_GET(self):
        self._reply()

    def do_POST(self):
        self._reply()

    def do_HEAD(self):
        self._reply(send_body=False)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def upstream() -> Generator[str, None, None]:
    """A stdlib HTTP server on an ephemeral port; yields its base URL."""
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), UpstreamHandler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{httpd.server_address[1]}"

    httpd.shutdown()
    httpd.server_close()
    thread.join(timeout=5.0)


# =============================================================================
# RUNNING SERVER
# =============================================================================

class RunningServer:
    """StaticServer running in a background thread."""

    def __init__(self, server: StaticServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server.port}"

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def start_server(site: Path) -> Generator[Callable[..., RunningServer], None, None]:
    """
    Factory: start_server(proxy_target=..., max_age=60) → RunningServer
    serving the `site` tree on an OS-assigned port.
    """
    started: List[RunningServer] = []

    def _start(**overrides) -> RunningServer:
        values = dict(
            root=str(site),
            host="127.0.0.1",
            port=0,
            min_workers=2,
            max_workers=4,
            timeout=5.0,
            keep_alive_timeout=1.0,
            log_level="WARNING",
        )
        values.update(overrides)
        running = RunningServer(StaticServer(ServerConfig(**values)))
        running.start()
        started.append(running)
        return running

    yield _start

    for running in started:
        running.stop()


@pytest.fixture
def server(start_server) -> RunningServer:
    """The default server: proxy rule on, upstream pointing nowhere useful."""
    return start_server()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove STATIC_* variables that would leak into config tests."""
    for key in list(os.environ):
        if key.startswith("STATIC_"):
            monkeypatch.delenv(key)
