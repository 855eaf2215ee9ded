"""
Open the served site in the default browser.

The URL uses the machine's LAN address rather than localhost, so the same
link works when copied to a phone or another computer on the network.
"""

import logging
import socket
import webbrowser

logger = logging.getLogger(__name__)


def get_ip_address() -> str:
    """
    First non-loopback IPv4 address of this machine, or 127.0.0.1.

    Connecting a UDP socket sends nothing; it only makes the OS choose the
    outgoing interface, whose address getsockname() then reports.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            address = s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    if not address or address.startswith("127.") or address == "0.0.0.0":
        return "127.0.0.1"
    return address


def server_url(port: int, host: str = "") -> str:
    return f"http://{host or get_ip_address()}:{port}"


def open_browser(port: int, host: str = "") -> bool:
    """
    Open http://<lan-ip>:<port>. Failures are logged, never raised.

    Returns:
        True if a browser was launched.
    """
    url = server_url(port, host)
    try:
        opened = webbrowser.open(url)
    except Exception as e:
        logger.warning(f"Browser open failed for {url}: {e}")
        return False
    if not opened:
        logger.warning(f"No browser available to open {url}")
    return opened
