"""
=============================================================================
STATIC SERVER CLI ENTRY POINT
=============================================================================

    # Serve the current directory on a free port
    python -m staticserver

    # Serve ./public on 9527 and open a browser
    python -m staticserver ./public --port 9527 --open

    # Send /api/* to a local backend
    python -m staticserver ./dist --proxy-target http://localhost:3000

    # Disable the proxy rule
    python -m staticserver --proxy-match ""

    # Settings from a JSON file, CLI flags on top
    python -m staticserver --config static.json --log-level DEBUG

Precedence: defaults < --config file < STATIC_* environment < CLI flags.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig, ConfigError
from .server import StaticServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticserver",
        description="Static file server with reverse-proxy passthrough",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m staticserver                              # cwd, random port
  python -m staticserver ./public --port 9527 --open  # open a browser
  python -m staticserver --proxy-target http://localhost:3000
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "root",
        nargs="?",
        default=None,
        help="Directory to serve (default: current directory)"
    )
    parser.add_argument(
        "--index", "-i",
        dest="index_page",
        default=None,
        help="Index page for directories (default: index.html)"
    )
    parser.add_argument(
        "--max-age",
        type=int,
        default=None,
        help="Cache lifetime in seconds (default: 3600)"
    )
    parser.add_argument(
        "--zip-match",
        default=None,
        help=r"Regex over file extensions to compress (default: ^\.(css|js|html)$)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PROXY
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--proxy-match",
        default=None,
        help="Regex over the request target to proxy (default: ^/api/, '' disables)"
    )
    parser.add_argument(
        "--proxy-target",
        default=None,
        help="Upstream base URL (default: http://127.0.0.1)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for the LAN)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 0, any free port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # MISC
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="JSON file with configuration values"
    )
    parser.add_argument(
        "--open", "-o",
        dest="open_browser",
        action="store_true",
        default=None,
        help="Open the site in the default browser"
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"staticserver {__version__}"
    )
    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Defaults < file < environment < CLI flags, then validated."""
    config = ServerConfig.from_file(args.config) if args.config else ServerConfig()
    config = ServerConfig.from_env(base=config)
    config = config.with_overrides(
        root=args.root,
        index_page=args.index_page,
        max_age=args.max_age,
        zip_match=args.zip_match,
        proxy_match=args.proxy_match,
        proxy_target=args.proxy_target,
        host=args.host,
        port=args.port,
        open_browser=args.open_browser,
        log_level=args.log_level,
    )
    return config.validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as e:
        print(f"staticserver: {e}", file=sys.stderr)
        return 2

    server = StaticServer(config)
    try:
        server.run()
    except OSError as e:
        print(f"staticserver: failed to start server: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
