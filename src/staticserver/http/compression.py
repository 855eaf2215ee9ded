"""
=============================================================================
CONTENT-ENCODING NEGOTIATION
=============================================================================

Decides whether a file body is sent gzip-compressed, deflate-compressed or
as-is, and wraps the byte stream accordingly.

=============================================================================
CONTENT NEGOTIATION
=============================================================================

    Request:
    ┌───────────────────────────────────────────────────────────────┐
    │ GET /app.js HTTP/1.1                                          │
    │ Accept-Encoding: gzip, deflate, br                            │
    │              │      │       │                                 │
    │              │      │       └── ignored                       │
    │              │      └── DEFLATE (zlib format)                 │
    │              └── gzip (preferred when both are offered)       │
    └───────────────────────────────────────────────────────────────┘

    Response:
    ┌───────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 200 OK                                               │
    │ Content-Type: text/javascript                                 │
    │ Content-Encoding: gzip                                        │
    │ Vary: Accept-Encoding                                         │
    │ Transfer-Encoding: chunked   (compressed size is not known)   │
    └───────────────────────────────────────────────────────────────┘

Tokens are matched as WHOLE WORDS (regex \\b boundaries), so "x-gzip" counts
as gzip but "gzipped" does not. Quality values (";q=0") are not consulted.

Only files whose extension matches the configured zip_match pattern are
ELIGIBLE. Images and archives are already compressed and are sent as-is.

=============================================================================
STREAMING COMPRESSION
=============================================================================

The file is never read whole. Each chunk goes through a zlib compressobj
and whatever output is ready is yielded immediately:

    file chunks ──► compressobj.compress() ──► yield (if non-empty)
                    ...
    end of file ──► compressobj.flush()    ──► yield trailer

    wbits selects the container:
        31 = 16 + 15  → gzip header + CRC32 trailer
        15            → zlib header + Adler-32 trailer (HTTP "deflate")

=============================================================================
"""

from typing import Iterator, Optional, Tuple
import re
import zlib

GZIP = "gzip"
DEFLATE = "deflate"

_GZIP_TOKEN = re.compile(r"\bgzip\b")
_DEFLATE_TOKEN = re.compile(r"\bdeflate\b")

_WBITS = {
    GZIP: 16 + zlib.MAX_WBITS,
    DEFLATE: zlib.MAX_WBITS,
}


def choose_encoding(accept_encoding: Optional[str]) -> Optional[str]:
    """
    Pick the content coding for an Accept-Encoding header value.

        >>> choose_encoding("gzip, deflate")
        'gzip'
        >>> choose_encoding("deflate")
        'deflate'
        >>> choose_encoding("br") is None
        True
    """
    if not accept_encoding:
        return None
    if _GZIP_TOKEN.search(accept_encoding):
        return GZIP
    if _DEFLATE_TOKEN.search(accept_encoding):
        return DEFLATE
    return None


class CompressedStream:
    """
    Iterator that compresses a source chunk iterator incrementally.

    A class rather than a generator so close() reaches the source even when
    iteration never started (HEAD requests, a client gone before the first
    chunk).
    """

    def __init__(self, source: Iterator[bytes], encoding: str, level: int = 6):
        self.source = source
        self.encoding = encoding
        self._source_iter = iter(source)
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, _WBITS[encoding])
        self._finished = False

    def __iter__(self) -> "CompressedStream":
        return self

    def __next__(self) -> bytes:
        while not self._finished:
            try:
                chunk = next(self._source_iter)
            except StopIteration:
                self._finished = True
                tail = self._compressor.flush()
                if tail:
                    return tail
                break
            data = self._compressor.compress(chunk)
            if data:
                return data
        raise StopIteration

    def close(self) -> None:
        self._finished = True
        close = getattr(self.source, "close", None)
        if close is not None:
            close()


def compress_stream(
    chunks: Iterator[bytes],
    encoding: str,
    level: int = 6
) -> CompressedStream:
    """Compress an iterator of chunks with "gzip" or "deflate"."""
    return CompressedStream(chunks, encoding, level)


def negotiate(
    chunks: Iterator[bytes],
    accept_encoding: Optional[str],
    eligible: bool
) -> Tuple[Iterator[bytes], Optional[str]]:
    """
    Wrap a body stream according to the client's Accept-Encoding.

    Returns:
        (stream, encoding) where encoding is "gzip", "deflate" or None.
        With None the stream is returned untouched.

    The caller must set Content-Encoding from the returned token before the
    first body byte is sent.
    """
    if not eligible:
        return chunks, None

    encoding = choose_encoding(accept_encoding)
    if encoding is None:
        return chunks, None

    return compress_stream(chunks, encoding), encoding


def is_eligible(extension: str, zip_match: str) -> bool:
    """
    True if a file extension (with its dot, e.g. ".css") matches zip_match.
    The extension is matched as-is: ".CSS" does not match the default
    pattern.

    An empty pattern disables compression entirely.
    """
    if not zip_match:
        return False
    return re.search(zip_match, extension) is not None
