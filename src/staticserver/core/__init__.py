"""
=============================================================================
CORE: TRANSPORT LAYER
=============================================================================

Sockets and threads. Nothing in here knows about files or proxies.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ socket_server.py   listening socket, accept loop, signals           │
    │ connection.py      per-client reads, response framing, close        │
    │ thread_pool.py     bounded worker threads running connections       │
    └─────────────────────────────────────────────────────────────────────┘

THREAD-PER-CONNECTION MODEL
    Each connection is handled by one worker thread from start to close.
    Blocking reads and writes are simple to follow, and flow control comes
    for free: a slow client blocks sendall(), which stops the file or
    upstream read behind it.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLarge
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "ThreadPool",
]
