"""IPv4 and IPv6 socket addresses with a port."""

from __future__ import annotations

import socket

__all__ = ["Address"]


def _parse_ip(host: str) -> tuple[int, bytes]:
    for family in (socket.AF_INET, socket.AF_INET6):
        try:
            return family, socket.inet_pton(family, host)
        except (OSError, ValueError):
            continue
    raise ValueError(f"Cannot parse address: '{host}'")


class Address:
    """An IPv4 or IPv6 address together with a port number."""

    __slots__ = ("_family", "_packed", "_port", "_flowinfo", "_scope_id")

    def __init__(self, host: str, port: int) -> None:
        self._family, self._packed = _parse_ip(host)
        self._port = int(port) & 0xFFFF
        self._flowinfo = 0
        self._scope_id = 0

    @classmethod
    def from_sockaddr(cls, sockaddr: tuple) -> Address:
        """Build an address from a tuple as returned by the socket module.

        A 2-tuple is an IPv4 address, a 4-tuple an IPv6 address.
        """
        size = len(sockaddr)
        if size == 2:
            host, port = sockaddr
            addr = cls(host, port)
            if addr._family != socket.AF_INET:
                raise ValueError(f"Bad address size: {size}")
            return addr
        if size == 4:
            host, port, flowinfo, scope_id = sockaddr
            addr = cls(host.split("%", 1)[0], port)
            if addr._family != socket.AF_INET6:
                raise ValueError(f"Bad address size: {size}")
            addr._flowinfo = int(flowinfo)
            addr._scope_id = int(scope_id)
            return addr
        raise ValueError(f"Bad address size: {size}")

    @property
    def host(self) -> str:
        """The IP part in its canonical text form."""
        return socket.inet_ntop(self._family, self._packed)

    @property
    def port(self) -> int:
        return self._port

    @property
    def packed(self) -> bytes:
        return self._packed

    def domain(self) -> int:
        """The address family: ``AF_INET`` or ``AF_INET6``."""
        return self._family

    def with_port(self, port: int) -> Address:
        """Return a copy of this address with another port."""
        clone = Address.__new__(Address)
        clone._family = self._family
        clone._packed = self._packed
        clone._port = int(port) & 0xFFFF
        clone._flowinfo = self._flowinfo
        clone._scope_id = self._scope_id
        return clone

    def sockaddr(self) -> tuple:
        """The tuple to hand to ``connect``, ``bind`` or ``sendto``."""
        if self._family == socket.AF_INET:
            return (self.host, self._port)
        return (self.host, self._port, self._flowinfo, self._scope_id)

    def _key(self) -> tuple:
        return (self._family, self._packed, self._port, self._flowinfo, self._scope_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        if self._family == socket.AF_INET:
            return f"{self.host}:{self._port}"
        return f"[{self.host}]:{self._port}"

    def __repr__(self) -> str:
        return f"Address({self.host!r}, {self._port})"