"""
Transport package.

Four interchangeable byte channels to the caller, chosen once at start-up:
- SocketTransport: descriptor inherited from the host
- StdioTransport: host-redirected stdin/stdout
- SerialTransport: COM port through pyserial
- LocalConsoleTransport: the process's own terminal
"""

from .base import Transport, TransportCapabilities, TransportKind
from .factory import AttemptResult, TransportFlags, open_transport, plan, select

__all__ = [
    'Transport',
    'TransportCapabilities',
    'TransportKind',
    'TransportFlags',
    'AttemptResult',
    'open_transport',
    'plan',
    'select',
]
