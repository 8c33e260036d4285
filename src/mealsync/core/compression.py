"""Compression codec for snapshot files.

This module provides:
- compress: UTF-8 text to gzip bytes
- decompress: gzip bytes back to UTF-8 text
"""

from __future__ import annotations

import gzip
import zlib

# Fixed mtime keeps the output byte-identical for identical input
GZIP_MTIME = 0


class CodecError(Exception):
    """Raised when a blob cannot be decompressed into text."""


def compress(text: str) -> bytes:
    """Compress a string with gzip.

    Args:
        text: JSON text (or any string) to compress.

    Returns:
        Gzip-compressed UTF-8 bytes.
    """
    return gzip.compress(text.encode("utf-8"), mtime=GZIP_MTIME)


def decompress(blob: bytes) -> str:
    """Decompress gzip bytes produced by compress().

    Args:
        blob: Gzip-compressed data.

    Returns:
        The original string.

    Raises:
        CodecError: If the data is not valid gzip, is truncated, or does not
            decode as UTF-8.
    """
    try:
        raw = gzip.decompress(blob)
    except (OSError, EOFError, zlib.error) as e:
        raise CodecError(f"Invalid or truncated gzip data: {e}") from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CodecError(f"Decompressed data is not valid UTF-8: {e}") from e
