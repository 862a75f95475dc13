"""A small asynchronous DNS stub resolver speaking UDP to one nameserver."""

from __future__ import annotations

import asyncio
import socket
import struct
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, NamedTuple, Optional, Sequence, Union

from .address import Address
from .sockets import Socket
from .streams import ByteWriter

__all__ = [
    "DnsType",
    "create_packet",
    "parse_packet",
    "ResolvConf",
    "Resolver",
    "HostPort",
]

_HEADER = struct.Struct("!HHHHHH")
_RECORD = struct.Struct("!HHIH")
_MAX_PACKET = 4096
_RECV_SIZE = 512
_DNS_PORT = 53
_TIMEOUT_CHECK_INTERVAL = 0.1
_DEFAULT_RESOLV_CONF = "/etc/resolv.conf"


class DnsType(IntEnum):
    """DNS record types a resolution request may ask for."""

    DEFAULT = 0
    A = 1
    AAAA = 28


def create_packet(name: str, type: DnsType = DnsType.A, xid: int = 0) -> bytes:
    """Build a recursive query for one question about ``name``."""
    labels = name.encode().split(b".")
    qname = bytearray()
    for label in labels:
        if len(label) > 0xFF:
            raise ValueError(f"Label too long in name: '{name}'")
        qname.append(len(label))
        qname += label
    qname.append(0)

    packet = (
        _HEADER.pack(xid & 0xFFFF, 0x0100, 1, 0, 0, 0)
        + bytes(qname)
        + struct.pack("!HH", int(type), 1)
    )
    if len(packet) > _MAX_PACKET:
        raise ValueError("Packet too large")
    return packet


def _not_enough_data() -> ValueError:
    return ValueError("Not enough data")


def _address_from_bytes(raw: bytes) -> Address:
    family = socket.AF_INET if len(raw) == 4 else socket.AF_INET6
    return Address(socket.inet_ntop(family, raw), 0)


def parse_packet(data: bytes) -> tuple[int, list[Address]]:
    """Parse a DNS response into its transaction id and A/AAAA addresses.

    Raises ``RuntimeError`` when the response carries an error code and
    ``ValueError`` when the packet is truncated.
    """
    data = bytes(data)
    if len(data) < _HEADER.size:
        raise _not_enough_data()
    xid, flags, _, ancount, _, _ = _HEADER.unpack_from(data)
    if flags & 0xF:
        raise RuntimeError("Resolver Error")

    p = _HEADER.size
    size = len(data) - p
    if size <= 0:
        raise _not_enough_data()

    while data[p] != 0:
        fragment = data[p] + 1
        p += fragment
        size -= fragment
        if size <= 0:
            raise _not_enough_data()

    if ancount == 0:
        return xid, []

    p += 5
    size -= 5
    if size <= 0:
        raise _not_enough_data()

    addresses: list[Address] = []
    for _ in range(ancount):
        if size < 2:
            raise _not_enough_data()
        compression = int.from_bytes(data[p:p + 2], "big")
        p += 2
        size -= 2
        if size <= 0:
            raise _not_enough_data()
        if compression & 0xC000 != 0xC000:
            while data[p]:
                p += 1
                size -= 1
                if size <= 0:
                    raise _not_enough_data()
            p += 1
            size -= 1
            if size <= 0:
                raise _not_enough_data()

        if size < _RECORD.size:
            raise _not_enough_data()
        _, _, _, length = _RECORD.unpack_from(data, p)
        if size - _RECORD.size - length < 0:
            raise _not_enough_data()
        start = p + _RECORD.size
        if length in (4, 16):
            addresses.append(_address_from_bytes(data[start:start + length]))
        p += _RECORD.size + length
        size -= _RECORD.size + length

    return xid, addresses


class ResolvConf:
    """The nameservers listed in a resolver configuration."""

    def __init__(self, nameservers: Optional[Sequence[Address]] = None) -> None:
        self.nameservers: list[Address] = list(nameservers or ())
        if not self.nameservers:
            self.nameservers.append(Address("127.0.0.1", _DNS_PORT))

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> ResolvConf:
        """Collect ``nameserver <ip>`` lines; fall back to 127.0.0.1 if none."""
        nameservers = []
        for line in lines:
            tokens = [tok for tok in line.rstrip("\r\n").split(" ") if tok]
            if len(tokens) == 2 and tokens[0] == "nameserver":
                nameservers.append(Address(tokens[1], _DNS_PORT))
        return cls(nameservers)

    @classmethod
    def from_file(cls, path: str = _DEFAULT_RESOLV_CONF) -> ResolvConf:
        """Read a configuration file; a missing file gives the default server."""
        try:
            with open(path, encoding="utf-8", errors="replace") as handle:
                return cls.from_lines(handle)
        except OSError:
            return cls()

    def __repr__(self) -> str:
        return f"ResolvConf({self.nameservers!r})"


class _Request(NamedTuple):
    name: str
    type: DnsType


class Resolver:
    """Resolves host names by querying one nameserver over UDP.

    ``dns_addr`` is the nameserver's address, a ``ResolvConf`` whose first
    nameserver is used, or None to read the system configuration. Identical
    concurrent requests share one query. A request that gets no answer within
    ``timeout`` seconds fails with ``TimeoutError``.
    """

    def __init__(
        self,
        dns_addr: Union[Address, ResolvConf, None] = None,
        default_type: DnsType = DnsType.A,
        timeout: float = 2.0,
    ) -> None:
        if dns_addr is None:
            dns_addr = ResolvConf.from_file()
        if isinstance(dns_addr, ResolvConf):
            dns_addr = dns_addr.nameservers[0]
        self._dns_addr: Address = dns_addr
        self._default_type = DnsType(default_type)
        self._timeout = timeout
        self._socket = Socket(dns_addr.domain(), socket.SOCK_DGRAM)
        self._queue: Optional[asyncio.Queue[_Request]] = None
        self._timeouts: deque[tuple[float, _Request]] = deque()
        self._waiting: dict[_Request, list[asyncio.Future]] = {}
        self._inflight: dict[int, _Request] = {}
        self._xid = 1
        self._tasks: list[asyncio.Task] = []
        self._closed = False

    def _start(self) -> None:
        if self._tasks:
            return
        self._queue = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._sender()),
            asyncio.create_task(self._receiver()),
            asyncio.create_task(self._watch_timeouts()),
        ]

    def _resume_waiters(
        self,
        req: _Request,
        addresses: Sequence[Address] = (),
        exc: Optional[BaseException] = None,
    ) -> None:
        for fut in self._waiting.pop(req, ()):
            if fut.done():
                continue
            if exc is not None:
                fut.set_exception(exc)
            else:
                fut.set_result(list(addresses))

    async def _sender(self) -> None:
        assert self._queue is not None
        await self._socket.connect(self._dns_addr)
        writer = ByteWriter(self._socket)
        while True:
            req = await self._queue.get()
            try:
                packet = create_packet(req.name, req.type, self._xid)
            except ValueError as exc:
                self._resume_waiters(req, exc=exc)
                continue
            self._inflight[self._xid] = req
            self._xid = 1 + (self._xid + 1) % 65535
            try:
                await writer.write(packet)
            except OSError as exc:
                self._resume_waiters(req, exc=exc)

    async def _receiver(self) -> None:
        while True:
            try:
                data = await self._socket.read_some(_RECV_SIZE)
            except OSError:
                continue
            if data is None or len(data) < _HEADER.size:
                continue
            xid = int.from_bytes(data[:2], "big")
            addresses: list[Address] = []
            error: Optional[Exception] = None
            try:
                _, addresses = parse_packet(data)
            except (ValueError, RuntimeError) as exc:
                error = exc
            req = self._inflight.pop(xid, None)
            if req is not None:
                self._resume_waiters(req, addresses, error)

    async def _watch_timeouts(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            now = loop.time()
            while self._timeouts and self._timeouts[0][0] <= now:
                _, req = self._timeouts.popleft()
                self._resume_waiters(req, exc=TimeoutError("Timeout"))
            await asyncio.sleep(_TIMEOUT_CHECK_INTERVAL)

    async def resolve(
        self, hostname: str, type: DnsType = DnsType.DEFAULT
    ) -> list[Address]:
        """Return the addresses of ``hostname``, each with port 0."""
        if self._closed:
            raise RuntimeError("Resolver is closed")
        self._start()
        assert self._queue is not None

        type = DnsType(type)
        if type == DnsType.DEFAULT:
            type = self._default_type
        req = _Request(hostname, type)

        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        waiters = self._waiting.get(req)
        if waiters is None:
            waiters = self._waiting[req] = []
            self._queue.put_nowait(req)
            self._timeouts.append((loop.time() + self._timeout, req))
        waiters.append(fut)
        return await fut

    def close(self) -> None:
        """Stop the background tasks, cancel pending requests, close the socket."""
        self._closed = True
        for task in self._tasks:
            task.cancel()
        for waiters in self._waiting.values():
            for fut in waiters:
                fut.cancel()
        self._waiting.clear()
        self._socket.close()

    async def __aenter__(self) -> Resolver:
        self._start()
        return self

    async def __aexit__(self, *args: object) -> None:
        tasks = self._tasks
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.close()


def _is_ip_literal(host: str) -> bool:
    for family in (socket.AF_INET, socket.AF_INET6):
        try:
            socket.inet_pton(family, host)
            return True
        except (OSError, ValueError):
            continue
    return False


@dataclass(frozen=True)
class HostPort:
    """A host name or IP literal together with a port."""

    host: str
    port: int

    @classmethod
    def parse(cls, host_port: str) -> HostPort:
        """Parse ``host:port``; an IPv6 host may be written in brackets."""
        pos = host_port.rfind(":")
        if pos < 0:
            raise ValueError("Cannot parse hostPort")
        host, port_text = host_port[:pos], host_port[pos + 1:]
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        try:
            port = int(port_text)
        except ValueError:
            raise ValueError("Cannot parse hostPort") from None
        return cls(host, port)

    async def resolve(self, resolver: Resolver) -> Address:
        """Return the first address of the host with this port."""
        if _is_ip_literal(self.host):
            return Address(self.host, self.port)
        addresses = await resolver.resolve(self.host)
        if not addresses:
            raise LookupError("Empty address")
        return addresses[0].with_port(self.port)