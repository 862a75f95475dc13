"""Readers and writers over sockets that move data a chunk at a time.

The socket-like objects used here are expected to offer:

* ``async read_some(size) -> bytes | None``: at most ``size`` bytes; an empty
  result means the peer closed the stream, ``None`` means nothing could be
  read this time and the call should be retried.
* ``async write_some(data) -> int``: the number of bytes written; ``0`` means
  the peer closed the stream, a negative number means the call should be
  retried.
"""

from __future__ import annotations

import struct
from typing import Any, Protocol

from .linesplit import Line, ZeroCopyLineSplitter

__all__ = ["ByteReader", "ByteWriter", "StructReader", "LineReader"]

_READ_CHUNK = 1024


class _Readable(Protocol):
    async def read_some(self, size: int) -> bytes | None: ...


class _Writable(Protocol):
    async def write_some(self, data: bytes) -> int: ...


async def _read_exactly(socket: _Readable, size: int) -> bytes:
    parts: list[bytes] = []
    while size:
        chunk = await socket.read_some(size)
        if chunk is None:
            continue
        if not chunk:
            raise ConnectionError("Connection closed")
        parts.append(bytes(chunk))
        size -= len(chunk)
    return b"".join(parts)


class ByteReader:
    """Reads fixed-size blocks or delimited records, keeping any surplus."""

    def __init__(self, socket: _Readable) -> None:
        self._socket = socket
        self._buffer = bytearray()

    async def read(self, size: int) -> bytes:
        """Read exactly ``size`` bytes; raise ConnectionError if the peer closes."""
        head = bytes(self._buffer[:size])
        del self._buffer[:size]
        return head + await _read_exactly(self._socket, size - len(head))

    async def read_until(self, delimiter: bytes) -> bytes:
        """Read up to and including ``delimiter``.

        The delimiter is searched for in each newly read chunk.
        """
        result = bytearray()
        while True:
            pos = self._buffer.find(delimiter)
            if pos >= 0:
                end = pos + len(delimiter)
                result += self._buffer[:end]
                del self._buffer[:end]
                return bytes(result)

            result += self._buffer
            self._buffer.clear()

            chunk = await self._socket.read_some(_READ_CHUNK)
            if chunk is None:
                continue
            if not chunk:
                raise ConnectionError("Connection closed")
            self._buffer += chunk


class ByteWriter:
    """Writes whole buffers, retrying until every byte has gone out."""

    def __init__(self, socket: _Writable) -> None:
        self._socket = socket

    async def write(self, data: bytes) -> None:
        """Write all of ``data``; raise ConnectionError if the peer closes."""
        remaining = memoryview(bytes(data))
        while len(remaining):
            written = await self._socket.write_some(bytes(remaining))
            if written == 0:
                raise ConnectionError("Connection closed")
            if written < 0:
                continue
            remaining = remaining[written:]

    async def write_line(self, line: Line) -> None:
        """Write both parts of ``line`` in order."""
        await self.write(line.part1)
        await self.write(line.part2)


class StructReader:
    """Reads one fixed-size binary record described by a ``struct`` format."""

    def __init__(self, socket: _Readable, fmt: str | struct.Struct) -> None:
        self._socket = socket
        self._struct = fmt if isinstance(fmt, struct.Struct) else struct.Struct(fmt)

    async def read(self) -> tuple[Any, ...]:
        """Read and unpack one record; raise ConnectionError if the peer closes."""
        data = await _read_exactly(self._socket, self._struct.size)
        return self._struct.unpack(data)


class LineReader:
    """Reads newline-terminated lines through a zero-copy ring buffer."""

    def __init__(self, socket: _Readable, max_line_size: int = 4096) -> None:
        self._socket = socket
        self._splitter = ZeroCopyLineSplitter(max_line_size)
        self._chunk_size = max_line_size // 2

    async def read(self) -> Line:
        """Return the next line, or an empty line once the peer has closed."""
        line = self._splitter.pop()
        while not line:
            buf = self._splitter.acquire(self._chunk_size)
            chunk = await self._socket.read_some(len(buf))
            if chunk is None:
                continue
            if not chunk:
                break
            n = len(chunk)
            buf[:n] = chunk
            self._splitter.commit(n)
            line = self._splitter.pop()
        return line