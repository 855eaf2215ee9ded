"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

One immutable ServerConfig, built at startup and shared read-only by every
worker thread.

=============================================================================
WHERE VALUES COME FROM
=============================================================================

Later sources override earlier ones:

    ┌───────────────────────────┬─────────────────────────────────────────┐
    │ 1. dataclass defaults     │ ServerConfig()                          │
    │ 2. JSON file              │ ServerConfig.from_file("static.json")   │
    │ 3. environment            │ ServerConfig.from_env()  (STATIC_*)     │
    │ 4. command line           │ config.with_overrides(port=9000, ...)   │
    └───────────────────────────┴─────────────────────────────────────────┘

The config is frozen: nothing changes it after startup. The port the OS
actually bound (port=0) lives on the running server, not here.

=============================================================================
"""

import json
import os
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional


class ConfigError(ValueError):
    """Invalid configuration: raised at startup, before binding."""


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the static server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    CONTENT
    - root, index_page, max_age, zip_match

    PROXY
    - proxy_match, proxy_target

    NETWORK
    - host, port, backlog, buffer_size, timeout, keep_alive_timeout,
      max_request_size

    THREADING
    - min_workers, max_workers

    LOGGING / IDENTITY / STARTUP
    - log_level, log_format, server_name, open_browser

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    root: str = "."
    """Directory served at "/". Resolved to an absolute path by validate()."""

    index_page: str = "index.html"
    """File served for "dir/" requests when it exists in that directory."""

    max_age: int = 3600
    """Seconds for Cache-Control max-age and the Expires offset."""

    zip_match: str = r"^\.(css|js|html)$"
    """
    Regex searched in the file extension (".css"). Matching files are
    compressed when the client accepts gzip or deflate. "" disables.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROXY
    # ─────────────────────────────────────────────────────────────────────

    proxy_match: str = r"^/api/"
    """
    Regex searched in the raw path + query of the request-target. Matching
    requests go to proxy_target instead of the filesystem. "" disables.
    """

    proxy_target: str = "http://127.0.0.1"
    """Upstream base URL; the raw path + query is appended unchanged."""

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0"   - All interfaces (reachable from the LAN)
    """

    port: int = 0
    """0 lets the OS pick a free port; the chosen one is logged at startup."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 64 * 1024
    """recv() size and file/upstream read chunk size, in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout for reading the first request, in seconds."""

    keep_alive_timeout: float = 5.0
    """Idle time before a keep-alive connection is closed, in seconds."""

    max_request_size: int = 10 * 1024 * 1024
    """Largest accepted request (headers + body), in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY / STARTUP
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: "text" (Apache-style) or "json"."""

    server_name: str = "staticserver"
    """Value of the Server response header."""

    open_browser: bool = False
    """Open http://<lan-ip>:<port> in the default browser once listening."""

    # =========================================================================
    # LOADERS
    # =========================================================================

    @classmethod
    def field_names(cls) -> set:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServerConfig":
        """
        Build from a mapping of field → value. Unknown keys are an error.

        Raises:
            ConfigError: Unknown keys or values of the wrong type.
        """
        return cls().with_overrides(**data)

    @classmethod
    def from_file(cls, path: str) -> "ServerConfig":
        """
        Load a JSON object of field → value.

            {"root": "./public", "port": 9527, "proxy_target": "http://localhost:3000"}

        Raises:
            ConfigError: Unreadable file, invalid JSON, or bad keys/values.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")
        return cls.from_dict(data)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["ServerConfig"] = None,
    ) -> "ServerConfig":
        """
        Override `base` (default: defaults) with STATIC_* variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        STATIC_<FIELD> for every field, e.g.:

            STATIC_ROOT          Directory to serve
            STATIC_PORT          Port (0 = any free port)
            STATIC_HOST          Bind address
            STATIC_MAX_AGE       Cache lifetime in seconds
            STATIC_PROXY_MATCH   Proxy rule regex ("" disables)
            STATIC_PROXY_TARGET  Upstream base URL
            STATIC_OPEN_BROWSER  1/true/yes to open a browser
            STATIC_LOG_LEVEL     Logging level

        =====================================================================
        """
        environ = os.environ if environ is None else environ
        base = base or cls()

        overrides: Dict[str, Any] = {}
        for name in cls.field_names():
            key = f"STATIC_{name.upper()}"
            if key in environ:
                overrides[name] = environ[key]
        return base.with_overrides(**overrides)

    def with_overrides(self, **values: Any) -> "ServerConfig":
        """
        Copy with some fields replaced. None values are skipped, strings are
        converted to the field's type (env vars and CLI arguments).

        Raises:
            ConfigError: Unknown field or unconvertible value.
        """
        types = {f.name: f.type for f in fields(self)}
        changes: Dict[str, Any] = {}

        for name, value in values.items():
            if name not in types:
                raise ConfigError(f"Unknown config option: {name}")
            if value is None:
                continue
            changes[name] = _coerce(name, value, getattr(self, name))

        return replace(self, **changes)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self) -> "ServerConfig":
        """
        Check every value, fail fast at startup.

        Returns:
            A copy with root made absolute.

        Raises:
            ConfigError: First problem found.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")
        if not os.path.isdir(self.root):
            raise ConfigError(f"Root directory does not exist: {self.root}")
        if not self.index_page or "/" in self.index_page:
            raise ConfigError(f"index_page must be a plain file name: {self.index_page!r}")
        if self.max_age < 0:
            raise ConfigError("max_age must be >= 0")

        for name in ("zip_match", "proxy_match"):
            try:
                re.compile(getattr(self, name))
            except re.error as e:
                raise ConfigError(f"{name} is not a valid regex: {e}")

        if self.proxy_match and not self.proxy_target.startswith(("http://", "https://")):
            raise ConfigError(f"proxy_target must be an http(s) URL: {self.proxy_target}")

        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")
        if self.buffer_size < 1024:
            raise ConfigError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")
        if self.log_format not in ("text", "json"):
            raise ConfigError(f"log_format must be 'text' or 'json': {self.log_format}")

        return replace(self, root=os.path.abspath(self.root))


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _coerce(name: str, value: Any, current: Any) -> Any:
    """Convert value to the type of the field's current value."""
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"{name}: expected a boolean, got {value!r}")

    try:
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float) or name == "timeout":
            return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name}: expected a number, got {value!r}")

    if not isinstance(value, str):
        raise ConfigError(f"{name}: expected a string, got {value!r}")
    return value
