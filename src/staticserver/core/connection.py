"""
=============================================================================
CLIENT CONNECTION HANDLING
=============================================================================

Wraps an accepted client socket: buffered request reading, timeouts,
response writing (buffered or streamed) and a clean TCP close.

=============================================================================
KEEP-ALIVE
=============================================================================

HTTP/1.1 reuses the connection for several requests:

    ┌─────────────────────────────────────────────────────────────────┐
    │   TCP Connect                                                    │
    │       │                                                          │
    │       ├── GET /            → 200 index.html                      │
    │       ├── GET /app.css     → 200 (gzip, chunked)                 │
    │       ├── GET /logo.png    → 304                                 │
    │       │                                                          │
    │   TCP Close (or keep-alive timeout)                              │
    └─────────────────────────────────────────────────────────────────┘

Reuse only works if the client can tell where each body ends.

=============================================================================
BODY FRAMING
=============================================================================

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ Response                     │ How the end of the body is marked    │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ buffered body                │ Content-Length                       │
    │ stream + Content-Length      │ Content-Length (uncompressed file,   │
    │                              │ upstream that sent one)              │
    │ stream, HTTP/1.1 client      │ Transfer-Encoding: chunked           │
    │ stream, HTTP/1.0 client      │ Connection: close, then close        │
    │ 1xx / 204 / 304 / HEAD       │ no body at all                       │
    └──────────────────────────────┴──────────────────────────────────────┘

    Chunked coding (RFC 7230 §4.1):

        1a\r\n                  ← chunk size in hex
        <26 bytes>\r\n
        400\r\n
        <1024 bytes>\r\n
        0\r\n                   ← last chunk
        \r\n

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING ────────┐
     │             │                                    │           │
     │             │                                    │           ▼
     │             │                                    │      KEEP_ALIVE
     │             ▼                                    │           │
     └──────────► CLOSING ◄─────────────────────────────┴───────────┘
                    │
                    ▼
                  CLOSED

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Tuple
import uuid

from ..http.request import HTTPParseError
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)


HEX_DIGITS = b"0123456789abcdefABCDEF"


class RequestTooLarge(ValueError):
    """The buffered request grew past max_request_size."""


def _header_value(head: bytes, name: str) -> Optional[str]:
    """First value of a header in raw header bytes, or None."""
    prefix = name.lower() + ":"
    for line in head.decode("latin-1").split("\r\n")[1:]:
        if line.lower().startswith(prefix):
            return line[len(prefix):].strip()
    return None


def _with_content_length(head: bytes, body: bytes) -> bytes:
    """Re-frame a de-chunked request: drop Transfer-Encoding, set Content-Length."""
    lines = [
        line for line in head.split(b"\r\n")
        if not line.lower().startswith((b"transfer-encoding:", b"content-length:"))
    ]
    lines.append(b"Content-Length: %d" % len(body))
    return b"\r\n".join(lines) + b"\r\n\r\n" + body


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier for log lines.
        state: Current connection state.
        requests_handled: Number of requests read on this connection.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW

    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request (headers + body).

        The body is framed by Content-Length, or by chunked transfer coding.
        A chunked body is decoded here and handed on with a Content-Length,
        so the parser only ever sees one framing:

            POST /api/upload HTTP/1.1           POST /api/upload HTTP/1.1
            Transfer-Encoding: chunked   ──►    Content-Length: 7

            3\\r\\npay\\r\\n4\\r\\nload\\r\\n0\\r\\n\\r\\n     payload

        Bytes beyond the request stay buffered for the next call (pipelined
        keep-alive requests).

        Returns:
            The request bytes, or None if the client closed the connection
            or went idle past keep_alive_timeout.

        Raises:
            TimeoutError: First request not received within `timeout`.
            RequestTooLarge: Request exceeds max_request_size.
            HTTPParseError: Malformed chunked body (400) or a transfer
                coding other than chunked (501).
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            head = self._buffer[:header_end]
            body_start = header_end + 4

            transfer_encoding = _header_value(head, "transfer-encoding")
            if transfer_encoding is not None:
                if transfer_encoding.strip().lower() != "chunked":
                    raise HTTPParseError(
                        f"Unsupported Transfer-Encoding: {transfer_encoding}",
                        status_code=501,
                    )
                body, request_end = self._read_chunked(body_start)
                request_data = _with_content_length(head, body)
            else:
                content_length = self._parse_content_length(head)
                if body_start + content_length > self.max_request_size:
                    raise RequestTooLarge(
                        f"Request too large: {body_start + content_length} bytes"
                    )

                while len(self._buffer) - body_start < content_length:
                    chunk = self._recv()
                    if not chunk:
                        break
                    self._buffer += chunk

                request_end = body_start + content_length
                request_data = self._buffer[:request_end]

            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def _read_chunked(self, start: int) -> Tuple[bytes, int]:
        """
        Decode a chunked body beginning at self._buffer[start].

        Chunk extensions (";name=value") and trailer fields are read and
        discarded. The raw chunked bytes count against max_request_size.

        Returns:
            (decoded body, buffer index just past the last CRLF)
        """
        body = bytearray()
        pos = start

        while True:
            line_end = self._fill_until(b"\r\n", pos)
            size_field = self._buffer[pos:line_end].split(b";", 1)[0].strip()
            if not size_field or size_field.strip(HEX_DIGITS):
                raise HTTPParseError(f"Invalid chunk size: {size_field!r}")
            size = int(size_field, 16)
            pos = line_end + 2

            if size == 0:
                break

            self._fill_to(pos + size + 2)
            if self._buffer[pos + size:pos + size + 2] != b"\r\n":
                raise HTTPParseError("Chunk data not followed by CRLF")
            body += self._buffer[pos:pos + size]
            pos += size + 2

        # Trailer section ends with an empty line
        while True:
            line_end = self._fill_until(b"\r\n", pos)
            empty = line_end == pos
            pos = line_end + 2
            if empty:
                return bytes(body), pos

    def _fill_until(self, marker: bytes, pos: int) -> int:
        """Receive until marker appears at or after pos; return its index."""
        while True:
            index = self._buffer.find(marker, pos)
            if index != -1:
                return index
            self._receive_more()

    def _fill_to(self, size: int):
        while len(self._buffer) < size:
            self._receive_more()

    def _receive_more(self):
        chunk = self._recv()
        if not chunk:
            raise HTTPParseError("Incomplete chunked body")
        self._buffer += chunk
        self._check_size()

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from raw header bytes; 0 if absent or unparsable."""
        value = _header_value(headers, "content-length")
        try:
            return max(0, int(value)) if value is not None else 0
        except ValueError:
            return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send raw bytes with sendall().

        Returns:
            True if sent, False if the client is gone.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def write_response(
        self,
        response: HTTPResponse,
        head_only: bool = False,
        client_version: str = "HTTP/1.1",
        server_name: str = "staticserver",
    ) -> bool:
        """
        Write a response, streaming its body if it has one.

        Args:
            response: Response to send. Its stream is always closed on return.
            head_only: HEAD request; send the head and no body.
            client_version: Request version, selects chunked vs close framing.
            server_name: Value for the Server header.

        Returns:
            True if the whole response went out and the connection can
            carry another request; False if it must be closed.
        """
        reusable = True
        chunked = False

        if response.stream is not None and response.has_body and not response.has_header("Content-Length"):
            if client_version == "HTTP/1.1":
                response.set_header("Transfer-Encoding", "chunked")
                chunked = True
            else:
                response.set_header("Connection", "close")
                reusable = False

        if response.get_header("Connection", "").lower() == "close":
            reusable = False

        try:
            head = response.head_bytes(server_name)

            if response.stream is None:
                payload = head
                if response.has_body and not head_only:
                    payload += response.body
                return self.send_response(payload) and reusable

            if not self.send_response(head):
                return False
            if head_only or not response.has_body:
                return reusable

            return self._send_stream(response, chunked) and reusable

        finally:
            response.close()

    def _send_stream(self, response: HTTPResponse, chunked: bool) -> bool:
        try:
            for chunk in response.stream:
                if not chunk:
                    continue
                if chunked:
                    chunk = b"%x\r\n%s\r\n" % (len(chunk), chunk)
                if not self.send_response(chunk):
                    return False
        except Exception as e:
            # Head already sent: nothing to do but cut the response short
            logger.error(f"[{self.id}] Response stream failed: {e}")
            return False

        if chunked:
            return self.send_response(b"0\r\n\r\n")
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

            1. shutdown(SHUT_WR)  sends FIN: "no more data from us"
            2. drain              read whatever the client still sends
            3. close()            release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except (socket.timeout, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
