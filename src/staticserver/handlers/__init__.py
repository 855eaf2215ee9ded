"""
=============================================================================
HANDLERS MODULE
=============================================================================

The two request handlers the router chooses between.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Handler            │ Serves                                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │ StaticFileHandler  │ files, directory listings, 301s and 404s from  │
    │                    │ the configured root directory                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ReverseProxy       │ requests whose target matches proxy_match,     │
    │                    │ relayed to one upstream base URL               │
    └─────────────────────────────────────────────────────────────────────┘

Both are callables taking an HTTPRequest and returning an HTTPResponse.

=============================================================================
"""

from .static import (
    StaticFileHandler,
    Action,
    RegularFile,
    Directory,
    Missing,
    resolve,
    classify,
)
from .proxy import ReverseProxy

__all__ = [
    "StaticFileHandler",
    "Action",
    "RegularFile",
    "Directory",
    "Missing",
    "resolve",
    "classify",
    "ReverseProxy",
]
