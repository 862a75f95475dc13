"""Asyncio sockets and file handles, ring-buffer line splitting, stream readers and writers, and a stub DNS resolver."""

__version__ = "0.1.0"

__all__ = ["address", "linesplit", "streams", "handles", "sockets", "resolver"]