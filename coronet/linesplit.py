"""Splitting byte streams into newline-terminated lines over a ring buffer."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["Line", "LineSplitter", "ZeroCopyLineSplitter"]


@dataclass(frozen=True)
class Line:
    """A line taken from a ring buffer, possibly split in two where it wraps."""

    part1: bytes = b""
    part2: bytes = b""

    def __len__(self) -> int:
        return len(self.part1) + len(self.part2)

    def __bool__(self) -> bool:
        return bool(self.part1)

    def __bytes__(self) -> bytes:
        return self.part1 + self.part2


class _RingBuffer:
    """Shared ring-buffer state and line extraction."""

    def _init_ring(self, max_len: int) -> None:
        self._cap = max_len * 2
        self._data = bytearray(self._cap)
        self._wpos = 0
        self._rpos = 0
        self._size = 0

    def _pop_line(self) -> Line:
        end = bytes(self._data[self._rpos:self._rpos + self._size])
        begin = bytes(self._data[:self._size - len(end)])

        p1 = end.find(b"\n")
        if p1 < 0:
            p2 = begin.find(b"\n")
            if p2 < 0:
                return Line()
            self._rpos = p2 + 1
            self._size -= len(end) + p2 + 1
            return Line(end, begin[:p2 + 1])

        self._rpos += p1 + 1
        self._size -= p1 + 1
        return Line(end[:p1 + 1])


class LineSplitter(_RingBuffer):
    """Ring buffer that holds up to twice ``max_len`` bytes and yields lines."""

    def __init__(self, max_len: int) -> None:
        self._init_ring(max_len)

    def pop(self) -> Line:
        """Remove and return the next complete line, or an empty line if none."""
        return self._pop_line()

    def push(self, data: bytes) -> None:
        """Copy ``data`` into the buffer; raise BufferError if it does not fit."""
        size = len(data)
        if self._size + size > self._cap:
            raise BufferError("Overflow")
        data = bytes(data)
        first = min(size, self._cap - self._wpos)
        self._data[self._wpos:self._wpos + first] = data[:first]
        rest = data[first:]
        self._data[:len(rest)] = rest
        self._wpos = (self._wpos + size) % self._cap
        self._size += size


class ZeroCopyLineSplitter(_RingBuffer):
    """Line splitter whose buffer can be written in place through ``acquire``."""

    def __init__(self, max_len: int) -> None:
        self._init_ring(max_len)

    def pop(self) -> Line:
        """Remove and return the next complete line, or an empty line if none."""
        return self._pop_line()

    def acquire(self, size: int) -> memoryview:
        """Return a writable view of free space, at most ``size`` bytes long."""
        size = min(size, self._cap - self._size)
        if size == 0:
            raise BufferError("Overflow")
        view = memoryview(self._data)
        first = min(size, self._cap - self._wpos)
        if first:
            return view[self._wpos:self._wpos + first]
        return view[:size]

    def commit(self, size: int) -> None:
        """Mark ``size`` bytes written into the last acquired view as data."""
        self._wpos = (self._wpos + size) % self._cap
        self._size += size

    def push(self, data: bytes) -> None:
        """Copy ``data`` into the buffer; raise BufferError if it does not fit."""
        remaining = memoryview(bytes(data))
        while len(remaining):
            buf = self.acquire(len(remaining))
            n = len(buf)
            buf[:] = remaining[:n]
            self.commit(n)
            remaining = remaining[n:]