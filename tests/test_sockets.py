import asyncio
import socket

import pytest

from coronet.address import Address
from coronet.sockets import Socket
from coronet.streams import ByteReader, ByteWriter


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def _connected_pair():
    port = _free_port()
    server = Socket()
    server.bind(Address("127.0.0.1", port))
    server.listen()
    client = Socket()
    accept_task = asyncio.create_task(server.accept())
    await client.connect(Address("127.0.0.1", port))
    conn = await asyncio.wait_for(accept_task, 5)
    return server, client, conn, port


def test_new_socket_has_no_addresses():
    with Socket() as sock:
        assert sock.local_addr() is None
        assert sock.remote_addr() is None
        assert sock.fileno() >= 0


def test_bind_records_local_address():
    addr = Address("127.0.0.1", _free_port())
    with Socket() as sock:
        sock.bind(addr)
        assert sock.local_addr() == addr


def test_bind_twice_raises():
    with Socket() as sock:
        sock.bind(Address("127.0.0.1", _free_port()))
        with pytest.raises(RuntimeError, match="Already bound"):
            sock.bind(Address("127.0.0.1", _free_port()))


def test_udp_socket_binds():
    addr = Address("127.0.0.1", _free_port())
    with Socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(addr)
        assert sock.local_addr() == addr


def test_close_is_idempotent():
    sock = Socket()
    sock.close()
    sock.close()
    assert sock.fileno() == -1


def test_context_manager_closes():
    with Socket() as sock:
        pass
    assert sock.fileno() == -1


def test_remote_addr_from_constructor():
    a, b = socket.socketpair()
    peer = Address("127.0.0.1", 1234)
    with Socket(sock=a, remote_addr=peer) as wrapped:
        assert wrapped.remote_addr() == peer
    b.close()


@pytest.mark.asyncio
async def test_connect_accept_round_trip():
    server, client, conn, port = await _connected_pair()
    try:
        assert client.remote_addr() == Address("127.0.0.1", port)
        assert conn.remote_addr().host == "127.0.0.1"
        assert conn.remote_addr().domain() == socket.AF_INET

        await ByteWriter(client).write(b"hello\n")
        assert await ByteReader(conn).read_until(b"\n") == b"hello\n"

        await ByteWriter(conn).write(b"world")
        assert await ByteReader(client).read(5) == b"world"
    finally:
        for s in (conn, client, server):
            s.close()


@pytest.mark.asyncio
async def test_read_after_peer_close_returns_empty():
    server, client, conn, _ = await _connected_pair()
    try:
        client.close()
        data = None
        while data is None:
            data = await conn.read_some(16)
        assert data == b""
    finally:
        conn.close()
        server.close()


@pytest.mark.asyncio
async def test_connect_twice_raises():
    server, client, conn, port = await _connected_pair()
    try:
        with pytest.raises(RuntimeError, match="Already connected"):
            await client.connect(Address("127.0.0.1", port))
    finally:
        for s in (conn, client, server):
            s.close()


@pytest.mark.asyncio
async def test_connect_refused():
    port = _free_port()
    target = Address("127.0.0.1", port)
    with Socket() as client:
        with pytest.raises(ConnectionRefusedError):
            await client.connect(target)
        assert client.remote_addr() == target


@pytest.mark.asyncio
async def test_connect_with_deadline_succeeds():
    port = _free_port()
    server = Socket()
    server.bind(Address("127.0.0.1", port))
    server.listen()
    client = Socket()
    try:
        accept_task = asyncio.create_task(server.accept())
        deadline = asyncio.get_running_loop().time() + 5
        await client.connect(Address("127.0.0.1", port), deadline)
        conn = await asyncio.wait_for(accept_task, 5)
        await ByteWriter(conn).write(b"ok")
        assert await ByteReader(client).read(2) == b"ok"
        conn.close()
    finally:
        client.close()
        server.close()


@pytest.mark.asyncio
async def test_ipv6_connect_accept():
    port = _free_port()
    server = Socket(socket.AF_INET6)
    try:
        server.bind(Address("::1", port))
    except OSError:
        server.close()
        with pytest.raises(RuntimeError):
            raise RuntimeError("no ipv6")
        return
    server.listen()
    client = Socket(socket.AF_INET6)
    try:
        accept_task = asyncio.create_task(server.accept())
        await client.connect(Address("::1", port))
        conn = await asyncio.wait_for(accept_task, 5)
        assert conn.remote_addr().domain() == socket.AF_INET6
        assert conn.remote_addr().host == "::1"
        conn.close()
    finally:
        client.close()
        server.close()