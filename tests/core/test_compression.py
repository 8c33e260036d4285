"""Tests for the gzip compression codec."""

from __future__ import annotations

import gzip

import pytest

from mealsync.core.compression import CodecError, compress, decompress


class TestCompress:
    """Tests for compress()."""

    def test_produces_gzip(self) -> None:
        """Output should be readable by the gzip module."""
        blob = compress('{"recipes":[]}')
        assert blob[:2] == b"\x1f\x8b"
        assert gzip.decompress(blob) == b'{"recipes":[]}'

    def test_deterministic(self) -> None:
        """Same input should give byte-identical output."""
        assert compress("crème brûlée") == compress("crème brûlée")

    def test_empty_string(self) -> None:
        """Empty string should round-trip."""
        assert decompress(compress("")) == ""

    def test_unicode(self) -> None:
        """Non-ASCII text should round-trip exactly."""
        text = "Käsespätzle 🧀 200 g"
        assert decompress(compress(text)) == text


class TestDecompress:
    """Tests for decompress() failure modes."""

    def test_not_gzip(self) -> None:
        """Plain bytes should raise CodecError."""
        with pytest.raises(CodecError):
            decompress(b'{"recipes": []}')

    def test_truncated(self) -> None:
        """Truncated gzip should raise, never return partial text."""
        blob = compress("x" * 10_000)
        with pytest.raises(CodecError):
            decompress(blob[: len(blob) // 2])

    def test_empty_blob(self) -> None:
        """Empty input is not a valid gzip stream."""
        with pytest.raises(CodecError):
            decompress(b"\x1f\x8b")

    def test_invalid_utf8(self) -> None:
        """Valid gzip of non-UTF-8 bytes should raise CodecError."""
        with pytest.raises(CodecError, match="UTF-8"):
            decompress(gzip.compress(b"\xff\xfe\xfa"))
