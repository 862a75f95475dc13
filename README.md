# coronet

Small building blocks for asynchronous network code on top of `asyncio`:

- `coronet.address` — `Address`, an IPv4 or IPv6 address together with a port.
- `coronet.linesplit` — `Line`, `LineSplitter` and `ZeroCopyLineSplitter`,
  which split a byte stream into newline-terminated lines using a fixed-size
  ring buffer.
- `coronet.streams` — `ByteReader`, `ByteWriter`, `StructReader` and
  `LineReader`, which read and write exact amounts of data on top of any object
  offering `read_some` / `write_some`.
- `coronet.handles` — `Handle` and `FileHandle`, owned non-blocking
  descriptors with awaitable partial reads and writes.
- `coronet.sockets` — `Socket`, a non-blocking TCP or UDP socket with
  awaitable `connect` and `accept`.
- `coronet.resolver` — a stub DNS resolver that asks one nameserver for A or
  AAAA records (`Resolver`, `ResolvConf`, `HostPort`, `DnsType`,
  `create_packet`, `parse_packet`).

The package has no runtime dependencies beyond the standard library. It is
meant for POSIX systems.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Addresses

```python
from coronet.address import Address

addr = Address("127.0.0.1", 8080)
print(addr)                  # 127.0.0.1:8080
print(Address("::1", 9090))  # [::1]:9090

other = addr.with_port(8081)  # same host, new port
addr.domain()                 # socket.AF_INET
addr.sockaddr()               # ("127.0.0.1", 8080), ready for connect/bind
```

A host string that is neither an IPv4 nor an IPv6 literal raises
`ValueError`. `Address.from_sockaddr` builds an address from the 2-tuple
(IPv4) or 4-tuple (IPv6) that the `socket` module returns. Addresses compare
equal when family, IP and port match, and they can be used as dictionary keys.

## Splitting lines

```python
from coronet.linesplit import LineSplitter

splitter = LineSplitter(1024)
splitter.push(b"Hello\nWorld\n")

first = splitter.pop()
print(bytes(first))   # b"Hello\n"
```

The ring buffer holds twice `max_len` bytes. `pop()` returns a falsy `Line`
when no complete line is buffered yet; a returned line keeps its trailing
`\n`. Pushing more data than the buffer has room for raises `BufferError`.
A line that wraps round the end of the ring buffer comes back in two parts,
`part1` and `part2`; `bytes(line)` joins them and `len(line)` gives the total
length.

`ZeroCopyLineSplitter` offers the same `pop` and `push`, plus `acquire(size)`,
which returns a writable `memoryview` of free space (raising `BufferError`
when the buffer is full), and `commit(size)`, which marks the bytes written
into it as data.

## Reading and writing streams

```python
from coronet.streams import ByteReader, ByteWriter, LineReader, StructReader

async def echo_greeting(sock):
    reader = ByteReader(sock)
    writer = ByteWriter(sock)
    header = await reader.read(4)
    line = await reader.read_until(b"\r\n")   # includes the delimiter
    await writer.write(header + line)

async def read_record(sock):
    return await StructReader(sock, "!IH").read()   # tuple from struct.unpack

async def read_lines(sock):
    reader = LineReader(sock, 4096)
    while line := await reader.read():
        print(bytes(line))
```

The objects these helpers wrap must provide:

- `async read_some(size)` returning up to `size` bytes, `b""` when the peer
  has closed, or `None` when the call should be retried;
- `async write_some(data)` returning the number of bytes written, `0` when
  the peer has closed, or a negative number when the call should be retried.

`Handle`, `FileHandle` and `Socket` all fit. `ByteReader.read`,
`read_until`, `StructReader.read` and `ByteWriter.write` raise
`ConnectionError` if the peer closes before the work is done.
`LineReader.read` returns an empty line once the peer has closed.
`ByteWriter.write_line` writes both parts of a `Line`.

## Handles and sockets

```python
import asyncio
import os
from coronet.address import Address
from coronet.handles import FileHandle
from coronet.sockets import Socket

async def main():
    r, w = os.pipe()
    with FileHandle(r) as reader, FileHandle(w) as writer:
        await writer.write_some(b"ping")
        print(await reader.read_some(4))

    server = Socket()
    server.bind(Address("127.0.0.1", 0))
    server.listen()
    ...
    client = Socket()
    loop = asyncio.get_running_loop()
    await client.connect(Address("127.0.0.1", 8080), deadline=loop.time() + 5)

asyncio.run(main())
```

A handle owns its descriptor, makes it non-blocking and closes it on
`close()`, on leaving a `with` block, or when collected. `read_some_yield`
and `write_some_yield` always wait for the event loop before trying.
`monitor()` waits until the remote end hangs up and then returns `True`.

`Socket()` creates an `AF_INET` stream socket by default; pass `family` and
`type` for others, or `sock=` to take over an existing `socket.socket`.
`connect` raises `RuntimeError` if the socket already has a peer,
`TimeoutError` once the `deadline` (on the loop's clock) passes and `OSError`
if the connection fails. `bind` sets `SO_REUSEADDR` and raises `RuntimeError`
if called twice. `accept` returns a new `Socket` whose `remote_addr()` is the
peer. `local_addr()` is the address given to `bind`, or `None`.

## Resolving names

```python
from coronet.address import Address
from coronet.resolver import DnsType, HostPort, Resolver

async def lookup():
    async with Resolver(Address("127.0.0.1", 53)) as resolver:
        v4 = await resolver.resolve("example.com")
        v6 = await resolver.resolve("example.com", DnsType.AAAA)
        target = await HostPort("example.com", 443).resolve(resolver)
        return v4, v6, target
```

`Resolver` takes a nameserver `Address`, a `ResolvConf` (its first
nameserver is used), or nothing, in which case `/etc/resolv.conf` is read.
Resolved addresses carry port 0. Identical requests in flight at the same
time share a single query. A request without an answer within `timeout`
seconds (2 by default) fails with `TimeoutError`; a response with an error
code raises `RuntimeError`, a truncated one `ValueError`. `close()` stops the
background tasks and cancels pending requests.

`ResolvConf.from_file` and `ResolvConf.from_lines` collect `nameserver <ip>`
lines; when none are found (or the file is missing) they fall back to
`127.0.0.1:53`.

`HostPort.parse("host:port")` splits at the last colon and accepts an IPv6
host in brackets. `HostPort.resolve` returns an IP literal directly, otherwise
the first resolved address with the port set, and raises `LookupError` when
the name has no addresses.

`create_packet(name, type, xid)` and `parse_packet(data)` build and read the
raw DNS messages and can be used on their own.

## What it does not do

- There is no event loop or poller of its own: everything runs on the
  running `asyncio` loop.
- The resolver talks to one nameserver over UDP only. It does not retry,
  does not fall back to TCP, does not follow CNAME chains and reads only A and
  AAAA records.
- There are no command-line programs and no server built in; the package is
  a library.