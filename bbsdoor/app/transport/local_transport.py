"""
Local console transport: the process's own terminal.

Used for --local play and as the last step of every fallback plan.
"""

import asyncio
import os
import select
import sys
from typing import Optional

from ..exceptions import ConnectionClosedError, TransportInitError
from ..utils.logger import get_logger
from .base import Transport, TransportCapabilities, TransportKind

try:
    import termios
    import tty
except ImportError:  # Windows consoles have no termios
    termios = None
    tty = None

logger = get_logger("transport.local")


class LocalConsoleTransport(Transport):
    kind = TransportKind.LOCAL

    def __init__(self, in_fd: int, out_stream, capabilities: TransportCapabilities, saved_mode=None):
        super().__init__(capabilities)
        self._in_fd = in_fd
        self._out = out_stream
        self._saved_mode = saved_mode

    @classmethod
    async def open(cls, stdin=None, stdout=None) -> "LocalConsoleTransport":
        stdin = stdin if stdin is not None else sys.stdin
        stdout = stdout if stdout is not None else sys.stdout
        if stdin is None or stdout is None:
            raise TransportInitError("No console attached")

        try:
            in_fd = stdin.fileno()
            out = getattr(stdout, "buffer", stdout)
            interactive = os.isatty(in_fd)
            color = os.isatty(stdout.fileno())
        except (OSError, ValueError) as e:
            raise TransportInitError(f"Console unavailable: {e}") from e

        saved_mode = None
        if interactive and termios is not None:
            try:
                saved_mode = termios.tcgetattr(in_fd)
                tty.setcbreak(in_fd)
            except termios.error as e:
                logger.warning(f"Could not switch console to cbreak mode: {e}")
                saved_mode = None

        raw = saved_mode is not None
        encoding = (getattr(stdout, "encoding", None) or "").lower().replace("-", "")
        capabilities = TransportCapabilities(
            color=color,
            raw_keys=raw,
            echo=raw,
            utf8=encoding in ("utf8", "utf8sig"),
        )
        logger.info(f"Local console attached (raw keys={raw}, color={color})")
        return cls(in_fd, out, capabilities, saved_mode)

    async def read(self, n: int = 1) -> bytes:
        if self._closed:
            raise ConnectionClosedError("console closed")
        loop = asyncio.get_running_loop()
        try:
            await self._wait_readable(loop)
            data = os.read(self._in_fd, n)
        except OSError as e:
            raise ConnectionClosedError(f"Console read failed: {e}") from e
        if not data:
            raise ConnectionClosedError("Console input reached end of stream")
        return data

    async def _wait_readable(self, loop: asyncio.AbstractEventLoop) -> None:
        # Plain files cannot be watched and never block.
        ready = loop.create_future()

        def on_readable():
            if not ready.done():
                ready.set_result(None)

        try:
            loop.add_reader(self._in_fd, on_readable)
        except (OSError, NotImplementedError, ValueError):
            return
        try:
            await ready
        finally:
            loop.remove_reader(self._in_fd)

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionClosedError("console closed")
        self._out.write(data)
        self._out.flush()

    def data_available(self) -> Optional[bool]:
        if self._closed:
            return False
        try:
            readable, _, _ = select.select([self._in_fd], [], [], 0)
        except (OSError, ValueError):
            return None
        return bool(readable)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._saved_mode is not None:
            try:
                termios.tcsetattr(self._in_fd, termios.TCSADRAIN, self._saved_mode)
            except termios.error as e:
                logger.debug(f"Could not restore console mode: {e}")
        try:
            self._out.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Could not flush console: {e}")
