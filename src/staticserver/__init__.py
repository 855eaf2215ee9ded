"""
=============================================================================
STATICSERVER
=============================================================================

A small HTTP/1.1 server for front-end development:

    - serves a directory tree (files, listings, index pages)
    - answers conditional GETs with 304 Not Modified
    - gzip/deflate-compresses text assets on the fly
    - forwards /api/... (configurable) to a backend, unmodified

Built on raw sockets and a thread pool; the only third-party dependency
is `requests`, used for the upstream side of the proxy.

    from staticserver import StaticServer, ServerConfig

    StaticServer(ServerConfig(root="./public", port=9527)).run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import StaticServer, create_server
from .config import ServerConfig, ConfigError

__all__ = ["StaticServer", "create_server", "ServerConfig", "ConfigError", "__version__"]
