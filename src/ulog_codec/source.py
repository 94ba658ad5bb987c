"""Streaming reader over the underlying log input."""

from __future__ import annotations

from typing import BinaryIO

from ulog_codec.errors import UnexpectedEndOfFileError


class ByteSource:
    """Wraps a binary stream and counts the bytes consumed from it.

    A read that finds the stream already exhausted is a clean end of file:
    it returns ``b""`` and sets ``eof``. A read that gets some but not all of
    the requested bytes means the stream was truncated mid-record.
    """

    def __init__(self, stream: BinaryIO, limit: int | None = None) -> None:
        self._stream = stream
        self.bytes_read = 0
        self.eof = False
        self.limit = limit

    @property
    def limit_reached(self) -> bool:
        return self.limit is not None and self.bytes_read >= self.limit

    def read_exact(self, n: int) -> bytes:
        """Read exactly ``n`` bytes, or ``b""`` at a clean end of stream."""
        if n == 0:
            return b""
        chunks = []
        got = 0
        while got < n:
            chunk = self._stream.read(n - got)
            if not chunk:
                break
            chunks.append(chunk)
            got += len(chunk)

        if got == 0:
            self.eof = True
            return b""
        self.bytes_read += got
        if got < n:
            raise UnexpectedEndOfFileError(
                f"Unexpected end of file: wanted {n} bytes, got {got}"
            )
        return b"".join(chunks)

    def read_required(self, n: int) -> bytes:
        """Read exactly ``n`` bytes where the end of the stream is not allowed."""
        data = self.read_exact(n)
        if len(data) != n:
            raise UnexpectedEndOfFileError(
                f"Unexpected end of file: wanted {n} bytes, stream is exhausted"
            )
        return data

    def skip(self, n: int) -> None:
        """Discard ``n`` bytes."""
        self.read_required(n)
