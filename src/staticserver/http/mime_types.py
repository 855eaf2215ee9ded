"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps a file extension to the Content-Type the browser needs:

    Wrong MIME type → browser may refuse to execute/display
    - app.js served as text/plain → script never runs
    - logo.png served as text/html → broken image

Only the extension is looked at; the file itself is never opened.
Unknown extensions fall back to application/octet-stream, which browsers
treat as "download this".

=============================================================================
"""

from pathlib import Path
from typing import Union


# =============================================================================
# MIME TYPE DATABASE
# =============================================================================
#
# Lowercase extension (with dot) → MIME type.
#
# =============================================================================

MIME_TYPES = {
    # -------------------------------------------------------------------------
    # TEXT / MARKUP
    # -------------------------------------------------------------------------
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",      # Modern standard (was application/javascript)
    ".mjs": "text/javascript",     # ES modules
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # -------------------------------------------------------------------------
    # IMAGES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",

    # -------------------------------------------------------------------------
    # FONTS
    # -------------------------------------------------------------------------
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",

    # -------------------------------------------------------------------------
    # AUDIO / VIDEO
    # -------------------------------------------------------------------------
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",

    # -------------------------------------------------------------------------
    # DOCUMENTS / ARCHIVES
    # -------------------------------------------------------------------------
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".7z": "application/x-7z-compressed",

    # -------------------------------------------------------------------------
    # WEB APP EXTRAS
    # -------------------------------------------------------------------------
    ".wasm": "application/wasm",
    ".map": "application/json",    # Source maps
    ".webmanifest": "application/manifest+json",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
}

# application/octet-stream = "I don't know what this is, treat as binary"
DEFAULT_MIME_TYPE = "application/octet-stream"


def lookup(path: Union[str, Path]) -> str:
    """
    Get the MIME type for a file based on its extension.

    Every input has an answer; there is no error case.

    Examples:
        >>> lookup("style.css")
        'text/css'
        >>> lookup("/srv/www/IMAGE.PNG")
        'image/png'
        >>> lookup("Makefile")
        'application/octet-stream'
    """
    extension = Path(path).suffix.lower()  # .PNG → .png
    return MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)
