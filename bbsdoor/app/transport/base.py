"""
Common transport contract.

Every transport moves raw bytes between the door and the caller. They are
interchangeable and selected once at start-up by the transport factory.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TransportKind(Enum):
    """Transport variants, in fallback order."""

    STDIO = "stdio"
    SOCKET = "socket"
    SERIAL = "serial"
    LOCAL = "local"


@dataclass(frozen=True)
class TransportCapabilities:
    """What the far end of a transport can do.

    color: ANSI colour sequences are understood
    raw_keys: keys arrive one at a time, not a cooked line
    echo: the door must echo typed characters itself
    utf8: the terminal speaks UTF-8, no code page translation
    """

    color: bool = True
    raw_keys: bool = True
    echo: bool = True
    utf8: bool = False


class Transport(ABC):
    kind: TransportKind

    def __init__(self, capabilities: TransportCapabilities):
        self.capabilities = capabilities
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def read(self, n: int = 1) -> bytes:
        """Read up to n bytes.

        Raises ConnectionClosedError at end of stream; never returns b"".
        """

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write bytes, raising OSError on failure."""

    def data_available(self) -> Optional[bool]:
        """Whether input is pending; None when the transport cannot tell."""
        return None

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying handle. Safe to call twice."""

    def describe(self) -> str:
        return self.kind.value
