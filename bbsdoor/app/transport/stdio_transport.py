"""
Stdio transport.

Used when the BBS host has redirected the door's stdin/stdout to the
caller's connection itself (Synchronet "Standard I/O", WWIV STDIO exec,
EleBBS pipe I/O). No protocol negotiation, bytes pass through unchanged.
"""
import asyncio
import sys
from typing import Optional

from ..exceptions import ConnectionClosedError, TransportInitError
from ..utils.logger import get_logger
from .base import Transport, TransportCapabilities, TransportKind

logger = get_logger("transport.stdio")


class StdioWriteProtocol(asyncio.Protocol):
    """Simple protocol for stdout write pipe."""

    def __init__(self):
        self._transport = None

    def connection_made(self, transport):
        self._transport = transport

    def connection_lost(self, exc):
        self._transport = None


class StdioTransport(Transport):
    """Wraps stdin/stdout as asyncio pipes.

    Key differences from the socket transport:
    - No IAC escaping (bytes pass through unchanged)
    - The host cannot report pending input, so data_available() is None
    - Always assumed ANSI capable
    """

    kind = TransportKind.STDIO

    def __init__(self, reader: asyncio.StreamReader, write_transport):
        super().__init__(TransportCapabilities(color=True, raw_keys=True, echo=True, utf8=False))
        self._reader = reader
        self._write_transport = write_transport

    @classmethod
    async def open(cls, stdin=None, stdout=None) -> "StdioTransport":
        """Create a StdioTransport connected to stdin/stdout.

        Uses asyncio's pipe APIs to wrap file descriptors for raw byte safety.
        """
        stdin = stdin if stdin is not None else sys.stdin
        stdout = stdout if stdout is not None else sys.stdout
        if stdin is None or stdout is None:
            raise TransportInitError("stdin/stdout not attached")

        loop = asyncio.get_running_loop()
        try:
            reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(reader)
            await loop.connect_read_pipe(lambda: protocol, getattr(stdin, "buffer", stdin))

            write_transport, _ = await loop.connect_write_pipe(
                StdioWriteProtocol, getattr(stdout, "buffer", stdout)
            )
        except (OSError, ValueError) as e:
            # Regular files and closed descriptors cannot be wrapped as pipes
            raise TransportInitError(f"Cannot attach to standard streams: {e}") from e

        logger.info("Standard I/O transport attached")
        return cls(reader, write_transport)

    async def read(self, n: int = 1) -> bytes:
        if self._closed:
            raise ConnectionClosedError("stdio transport closed")
        data = await self._reader.read(n)
        if not data:
            raise ConnectionClosedError("stdin reached end of stream")
        return data

    async def write(self, data: bytes) -> None:
        if self._closed or self._write_transport.is_closing():
            raise ConnectionClosedError("stdout closed")
        self._write_transport.write(data)

    def data_available(self) -> Optional[bool]:
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._write_transport:
            self._write_transport.close()
