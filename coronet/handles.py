"""Non-blocking descriptors driven by the running asyncio event loop."""

from __future__ import annotations

import asyncio
import os
import select
from contextlib import suppress
from typing import Any, Protocol, Union

__all__ = ["Handle", "FileHandle"]

_MONITOR_INTERVAL = 0.05


class _HasFileno(Protocol):
    def fileno(self) -> int: ...


def _wake(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(None)


async def _wait_ready(fd: int, writable: bool) -> None:
    loop = asyncio.get_running_loop()
    fut = loop.create_future()
    if writable:
        loop.add_writer(fd, _wake, fut)
        remove = loop.remove_writer
    else:
        loop.add_reader(fd, _wake, fut)
        remove = loop.remove_reader
    try:
        await fut
    finally:
        remove(fd)


class Handle:
    """An owned, non-blocking descriptor with awaitable partial reads and writes.

    ``read_some`` returns the bytes read, ``b""`` once the peer has closed, or
    ``None`` when nothing could be read and the call should be retried.
    ``write_some`` returns the number of bytes written, or ``-1`` when nothing
    could be written and the call should be retried. Any other failure of the
    underlying call is raised as ``OSError``.
    """

    def __init__(self, fd: int) -> None:
        self._fd = int(fd)
        os.set_blocking(self._fd, False)

    def _read(self, size: int) -> bytes:
        return os.read(self._fd, size)

    def _write(self, data: bytes) -> int:
        return os.write(self._fd, data)

    def _close(self, fd: int) -> None:
        os.close(fd)

    def _try_read(self, size: int) -> bytes | None:
        try:
            return self._read(size)
        except (BlockingIOError, InterruptedError):
            return None

    def _try_write(self, data: bytes) -> int:
        try:
            return self._write(data)
        except (BlockingIOError, InterruptedError):
            return -1

    async def read_some(self, size: int) -> bytes | None:
        """Read at most ``size`` bytes, waiting for readiness if none are ready."""
        data = self._try_read(size)
        if data is not None:
            return data
        await _wait_ready(self._fd, writable=False)
        return self._try_read(size)

    async def read_some_yield(self, size: int) -> bytes | None:
        """Like ``read_some`` but always waits for the loop before reading."""
        await _wait_ready(self._fd, writable=False)
        return self._try_read(size)

    async def write_some(self, data: bytes) -> int:
        """Write some of ``data``, waiting for readiness if the write would block."""
        written = self._try_write(data)
        if written >= 0:
            return written
        await _wait_ready(self._fd, writable=True)
        return self._try_write(data)

    async def write_some_yield(self, data: bytes) -> int:
        """Like ``write_some`` but always waits for the loop before writing."""
        await _wait_ready(self._fd, writable=True)
        return self._try_write(data)

    def _hung_up(self) -> bool:
        poll_factory = getattr(select, "poll", None)
        if poll_factory is None:
            return True
        mask = select.POLLHUP | getattr(select, "POLLRDHUP", 0)
        poller = poll_factory()
        poller.register(self._fd, mask)
        return any(events & mask for _, events in poller.poll(0))

    async def monitor(self) -> bool:
        """Wait until the remote end hangs up, then return True."""
        while True:
            await _wait_ready(self._fd, writable=False)
            if self._hung_up():
                return True
            await asyncio.sleep(_MONITOR_INTERVAL)

    def close(self) -> None:
        """Close the descriptor and drop it from the event loop; idempotent."""
        if self._fd < 0:
            return
        fd, self._fd = self._fd, -1
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            loop.remove_reader(fd)
            loop.remove_writer(fd)
        self._close(fd)

    def fileno(self) -> int:
        """The descriptor, or -1 once closed."""
        return self._fd

    def __enter__(self) -> Handle:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __del__(self) -> None:
        fd = getattr(self, "_fd", -1)
        if fd >= 0:
            self._fd = -1
            with suppress(OSError):
                self._close(fd)


class FileHandle(Handle):
    """A handle over a file or pipe descriptor, which it owns and closes."""

    def __init__(self, fd: Union[int, _HasFileno]) -> None:
        super().__init__(fd if isinstance(fd, int) else fd.fileno())