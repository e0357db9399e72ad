"""
Inherited socket transport.

The host has already accepted the caller's network connection and passes
the descriptor number in DOOR32.SYS. The door never listens or connects;
it adopts the descriptor and moves raw bytes.
"""

import asyncio
import select
import socket
from typing import Optional

from telnetlib3 import DO, DONT, IAC, SB, SE, WILL, WONT

from ..exceptions import ConnectionClosedError, TransportInitError
from ..utils.logger import get_logger
from .base import Transport, TransportCapabilities, TransportKind

logger = get_logger("transport.socket")

_IAC = IAC[0]
_SB = SB[0]
_SE = SE[0]
_OPTION_VERBS = frozenset((WILL[0], WONT[0], DO[0], DONT[0]))


class IacFilter:
    """Strips Telnet command sequences from the inbound byte stream.

    The door does no option negotiation; the client's commands are simply
    dropped. ``IAC IAC`` decodes to a literal 0xFF. State survives across
    reads so sequences split between packets are handled.
    """

    DATA, COMMAND, OPTION, SUBNEG, SUBNEG_IAC = range(5)

    def __init__(self):
        self.state = self.DATA

    def feed(self, data: bytes) -> bytes:
        out = bytearray()
        for byte in data:
            if self.state == self.DATA:
                if byte == _IAC:
                    self.state = self.COMMAND
                else:
                    out.append(byte)
            elif self.state == self.COMMAND:
                if byte == _IAC:
                    out.append(byte)
                    self.state = self.DATA
                elif byte in _OPTION_VERBS:
                    self.state = self.OPTION
                elif byte == _SB:
                    self.state = self.SUBNEG
                else:
                    self.state = self.DATA
            elif self.state == self.OPTION:
                self.state = self.DATA
            elif self.state == self.SUBNEG:
                if byte == _IAC:
                    self.state = self.SUBNEG_IAC
            elif self.state == self.SUBNEG_IAC:
                self.state = self.DATA if byte == _SE else self.SUBNEG
        return bytes(out)


def escape_iac(data: bytes) -> bytes:
    """Double 0xFF so the client's Telnet layer passes it through."""
    return data.replace(IAC, IAC + IAC)


class SocketTransport(Transport):
    kind = TransportKind.SOCKET

    def __init__(self, sock: socket.socket, handle: int):
        super().__init__(TransportCapabilities(color=True, raw_keys=True, echo=True, utf8=False))
        self._sock = sock
        self._handle = handle
        self._filter = IacFilter()
        self._pending = bytearray()

    @classmethod
    async def open(cls, handle: Optional[int]) -> "SocketTransport":
        """Adopt an inherited, already connected socket descriptor."""
        if not handle:
            raise TransportInitError("No socket handle in drop file")
        try:
            sock = socket.socket(fileno=handle)
        except OSError as e:
            raise TransportInitError(f"Socket handle {handle} is not usable: {e}") from e

        try:
            sock.getpeername()
            sock.setblocking(False)
        except OSError as e:
            sock.detach()
            raise TransportInitError(f"Socket handle {handle} is not connected: {e}") from e

        logger.info(f"Adopted inherited socket handle {handle} (0x{handle:08X})")
        return cls(sock, handle)

    async def read(self, n: int = 1) -> bytes:
        loop = asyncio.get_running_loop()
        while not self._pending:
            if self._closed:
                raise ConnectionClosedError("socket transport closed")
            try:
                chunk = await loop.sock_recv(self._sock, 4096)
            except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError) as e:
                raise ConnectionClosedError(f"Connection lost: {e}") from e
            if not chunk:
                raise ConnectionClosedError("Remote side closed the connection")
            self._pending += self._filter.feed(chunk)

        result = bytes(self._pending[:n])
        del self._pending[:n]
        return result

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionClosedError("socket transport closed")
        loop = asyncio.get_running_loop()
        # Part of the buffer may already be on the wire, so never retry.
        try:
            await loop.sock_sendall(self._sock, escape_iac(data))
        except OSError as e:
            raise ConnectionClosedError(f"Connection lost: {e}") from e

    def data_available(self) -> Optional[bool]:
        if self._pending:
            return True
        if self._closed:
            return False
        try:
            readable, _, _ = select.select([self._sock], [], [], 0)
        except (OSError, ValueError):
            return None
        return bool(readable)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket handle {self._handle}: {e}")

    def describe(self) -> str:
        return f"socket:{self._handle}"
