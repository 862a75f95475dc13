"""Non-blocking TCP and UDP sockets driven by the running asyncio event loop."""

from __future__ import annotations

import asyncio
import errno
import os
import socket
from typing import Optional

from .address import Address
from .handles import Handle, _wait_ready

__all__ = ["Socket"]

_PENDING_CONNECT = frozenset(
    {errno.EINTR, errno.EAGAIN, errno.EWOULDBLOCK, errno.EINPROGRESS}
)


class Socket(Handle):
    """A non-blocking socket with awaitable connect, accept, reads and writes.

    A new socket is created from ``family`` and ``type`` unless an existing
    ``sock`` is given, in which case the socket takes ownership of it.
    ``remote_addr`` records the peer of an already connected socket.
    """

    def __init__(
        self,
        family: int = socket.AF_INET,
        type: int = socket.SOCK_STREAM,
        sock: Optional[socket.socket] = None,
        remote_addr: Optional[Address] = None,
    ) -> None:
        if sock is None:
            sock = socket.socket(family, type)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        self._sock = sock
        self._local: Optional[Address] = None
        self._remote: Optional[Address] = remote_addr
        super().__init__(sock.fileno())

    def _read(self, size: int) -> bytes:
        return self._sock.recv(size)

    def _write(self, data: bytes) -> int:
        return self._sock.send(data)

    def _close(self, fd: int) -> None:
        self._sock.close()

    async def connect(self, addr: Address, deadline: Optional[float] = None) -> None:
        """Connect to ``addr``.

        ``deadline`` is an absolute time on the event loop's clock
        (``loop.time()``); once it passes, ``TimeoutError`` is raised.
        Raises ``RuntimeError`` if the socket already has a peer and
        ``OSError`` if the connection fails.
        """
        if self._remote is not None:
            raise RuntimeError("Already connected")
        self._remote = addr

        err = self._sock.connect_ex(addr.sockaddr())
        if err == 0:
            return
        if err not in _PENDING_CONNECT:
            raise OSError(err, os.strerror(err))

        waiting = _wait_ready(self._fd, writable=True)
        if deadline is None:
            await waiting
        else:
            loop = asyncio.get_running_loop()
            try:
                await asyncio.wait_for(waiting, max(0.0, deadline - loop.time()))
            except asyncio.TimeoutError:
                raise TimeoutError(
                    errno.ETIMEDOUT, os.strerror(errno.ETIMEDOUT)
                ) from None

        err = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err:
            raise OSError(err, os.strerror(err))

    async def accept(self) -> Socket:
        """Wait for an incoming connection and return a socket for it."""
        while True:
            await _wait_ready(self._fd, writable=False)
            try:
                conn, peer = self._sock.accept()
            except (BlockingIOError, InterruptedError):
                continue
            try:
                remote = Address.from_sockaddr(peer)
            except ValueError:
                conn.close()
                raise
            return Socket(sock=conn, remote_addr=remote)

    def bind(self, addr: Address) -> None:
        """Bind to ``addr`` with ``SO_REUSEADDR``; raise RuntimeError if bound."""
        if self._local is not None:
            raise RuntimeError("Already bound")
        self._local = addr
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(addr.sockaddr())

    def listen(self, backlog: int = 128) -> None:
        """Start listening for connections."""
        self._sock.listen(backlog)

    def local_addr(self) -> Optional[Address]:
        """The address given to ``bind``, or None if not bound."""
        return self._local

    def remote_addr(self) -> Optional[Address]:
        """The peer's address, or None if there is none."""
        return self._remote