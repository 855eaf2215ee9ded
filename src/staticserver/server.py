"""
=============================================================================
STATIC SERVER
=============================================================================

Puts the pieces together: socket server, thread pool, request parser,
access logging, router, static handler and reverse proxy.

=============================================================================
REQUEST FLOW
=============================================================================

    accept() ──► ThreadPool.submit(conn)
                     │
                     ▼  (worker thread, one connection, keep-alive loop)
              read_request() ──► RequestParser.parse()
                                        │
                                        ▼
                              LoggingMiddleware
                                        │
                                        ▼
                                 Router.handle()
                               ╱                ╲
                  proxy_match hit            otherwise
                        │                        │
              ReverseProxy.forward()   StaticFileHandler.handle()
                               ╲                ╱
                                        ▼
                     Connection.write_response()  (head, then body chunks)

=============================================================================
STARTUP
=============================================================================

    server = StaticServer(ServerConfig(root="./public"))
    server.run()                # blocks; logs "Server started on port N"

From another thread (tests, embedding):

    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    server.wait_until_ready(5)
    requests.get(f"http://127.0.0.1:{server.port}/")
    server.shutdown()

=============================================================================
"""

import logging
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState, ThreadPool, RequestTooLarge
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, HTTPStatus, error_response, internal_error,
)
from .handlers import StaticFileHandler, ReverseProxy
from .middleware import MiddlewarePipeline, LoggingMiddleware
from .router import Router
from . import browser

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("staticserver").setLevel(numeric)


class StaticServer:
    """
    A running (or runnable) static file server.

    =========================================================================
    FEATURES
    =========================================================================

    - Files and directory listings from config.root
    - Conditional GET (Last-Modified / If-Modified-Since → 304)
    - gzip / deflate for files matching zip_match
    - Passthrough of proxy_match requests to proxy_target
    - Keep-alive, chunked streaming, graceful shutdown

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = (config or ServerConfig()).validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        static = StaticFileHandler(
            root=self.config.root,
            index_page=self.config.index_page,
            max_age=self.config.max_age,
            zip_match=self.config.zip_match,
            chunk_size=self.config.buffer_size,
        )
        proxy = ReverseProxy(self.config.proxy_target, chunk_size=self.config.buffer_size)
        self.router = Router(static, proxy.forward, self.config.proxy_match)

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))
        self._handler = self._middleware.wrap(self.router.handle)

        self._running = False

    # =========================================================================
    # PUBLIC HANDLE
    # =========================================================================

    @property
    def port(self) -> int:
        """The bound port (the OS-chosen one when configured with 0)."""
        return self._socket_server.port

    @property
    def is_running(self) -> bool:
        return self._running

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Run one parsed request through middleware and router."""
        return self._handler(request)

    def run(self) -> None:
        """
        Bind, log the port, optionally open a browser, serve until shutdown.

        Raises:
            OSError: The address could not be bound.
        """
        setup_logging(self.config.log_level)

        host, port = self._socket_server.bind()
        self._running = True
        self._thread_pool.start()

        logger.info(f"Server started on port {port}")
        logger.info(f"Serving {self.config.root} at http://{host}:{port}/")
        if self.config.proxy_match:
            logger.info(
                f"Proxying requests matching {self.config.proxy_match!r} "
                f"to {self.config.proxy_target}"
            )

        if self.config.open_browser:
            # Bound to every interface: the LAN address reaches us
            browser_host = "" if host in ("0.0.0.0", "") else host
            browser.open_browser(port, browser_host)

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self) -> None:
        """Stop accepting connections; run() returns once workers finish."""
        self._socket_server.shutdown()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue a connection on the pool; 503 if the queue is full."""
        submitted = self._thread_pool.submit(self._process_connection, args=(conn,))

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            conn.write_response(
                error_response(HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded"),
                server_name=self.config.server_name,
            )
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (runs in a worker thread).

            read → parse → handle → write → (again, or close)
        """
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except RequestTooLarge as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request body: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    break

                conn.state = ConnectionState.PROCESSING

                try:
                    response = self._handler(request)
                except Exception as e:
                    logger.exception(f"[{conn.id}] Handler error: {e}")
                    response = internal_error()

                keep_alive = request.is_keep_alive
                if not keep_alive:
                    response.set_header("Connection", "close")
                elif request.version == "HTTP/1.0":
                    response.set_header("Connection", "keep-alive")

                reusable = conn.write_response(
                    response,
                    head_only=request.method == "HEAD",
                    client_version=request.version,
                    server_name=self.config.server_name,
                )
                if not reusable or not keep_alive:
                    break

                conn.set_keep_alive()

    def _send_error(self, conn: Connection, status: int, message: str):
        conn.write_response(
            error_response(status, message),
            server_name=self.config.server_name,
        )


def create_server(config: Optional[ServerConfig] = None, **overrides) -> StaticServer:
    """
    Build a StaticServer from a config plus keyword overrides.

        server = create_server(root="./public", port=9527)
    """
    base = config or ServerConfig()
    return StaticServer(base.with_overrides(**overrides))
