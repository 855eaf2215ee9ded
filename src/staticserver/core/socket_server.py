"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

Owns the listening socket and the accept loop. Each accepted client is
wrapped in a Connection and handed to a callback (the HTTP layer, which
queues it on the thread pool).

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    socket() ──► setsockopt() ──► bind() ──► listen() ──► accept() loop
                                     │
                                     └── port 0: the OS picks a free port;
                                         getsockname() tells us which one

    ┌─────────────────────────────────────────────────────────────────────┐
    │   while running:                                                    │
    │       accept()          (1 s timeout, so shutdown() is noticed)     │
    │       Connection(...)   (buffering, timeouts)                       │
    │       handler(conn)     (returns immediately: work is queued)       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd, kill) trigger a graceful
shutdown. Python only lets the MAIN thread install signal handlers, so a
server started from another thread (tests, embedding) skips this step and
is stopped with shutdown() instead.

=============================================================================
"""

import socket
import signal
import threading
import logging
from typing import Callable, Optional, Tuple

from .connection import Connection

logger = logging.getLogger(__name__)

class SocketServer:
    """
    Listening socket + accept loop.

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)   # blocks until shutdown()

    `config` needs host, port, backlog, buffer_size, timeout,
    keep_alive_timeout and max_request_size.
    """

    def __init__(self, config):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None

        # Set once the socket is listening; wait_until_ready() blocks on it
        self._ready_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port) once listening, configured address before."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    @property
    def port(self) -> int:
        return self.address[1]

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._ready_event.wait(timeout)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting for TIME_WAIT sockets to expire
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Send small responses (304, redirects) without Nagle delay
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second to check _running
        sock.settimeout(1.0)

        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen. Returns the bound (host, port).

        Raises:
            OSError: Address in use, permission denied, ...
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]
        return self._bound_address

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind (if not already bound) and run the accept loop.

        Blocks until shutdown() is called.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Safe to call more than once, from any thread."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready_event.clear()
        logger.info("Socket server stopped")

