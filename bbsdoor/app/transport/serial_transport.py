"""
Serial transport for hosts still bridging through a modem/FOSSIL layer.
"""

import asyncio
from typing import Dict, Optional

import serial
from serial import EIGHTBITS, PARITY_NONE, STOPBITS_ONE

from ..exceptions import ConnectionClosedError, SerialUnavailableError
from ..utils.logger import get_logger
from .base import Transport, TransportCapabilities, TransportKind

logger = get_logger("transport.serial")

DEFAULT_BAUD = 115200


def resolve_port_name(port: str, aliases: Optional[Dict[str, str]] = None) -> str:
    """Map a DOS style port name ("COM1") through the configured aliases."""
    aliases = {k.upper(): v for k, v in (aliases or {}).items()}
    return aliases.get(port.upper().rstrip(":"), port)


class SerialTransport(Transport):
    kind = TransportKind.SERIAL

    def __init__(self, port: "serial.Serial", name: str):
        super().__init__(TransportCapabilities(color=True, raw_keys=True, echo=True, utf8=False))
        self._port = port
        self._name = name

    @classmethod
    async def open(
        cls,
        port: Optional[str],
        baud_rate: int = 0,
        aliases: Optional[Dict[str, str]] = None,
        read_timeout: float = 0.5,
    ) -> "SerialTransport":
        if not port:
            raise SerialUnavailableError("No serial port specified")

        device = resolve_port_name(port, aliases)
        baud = baud_rate if baud_rate > 0 else DEFAULT_BAUD
        logger.info(f"Opening serial port {device} at {baud} baud")

        try:
            handle = serial.Serial(
                port=device,
                baudrate=baud,
                bytesize=EIGHTBITS,
                parity=PARITY_NONE,
                stopbits=STOPBITS_ONE,
                timeout=read_timeout,
                write_timeout=5,
            )
        except (serial.SerialException, ValueError) as e:
            logger.error(f"Failed to open serial port {device}: {e}")
            logger.error(
                "FOSSIL drivers use DOS interrupts a modern process cannot reach. "
                "Configure the host to redirect standard I/O and run with --stdio, "
                "or map the port with serial.port_aliases."
            )
            raise SerialUnavailableError(f"Serial port {device} unavailable: {e}") from e

        return cls(handle, device)

    async def read(self, n: int = 1) -> bytes:
        loop = asyncio.get_running_loop()
        while True:
            if self._closed:
                raise ConnectionClosedError("serial transport closed")
            try:
                data = await loop.run_in_executor(None, self._port.read, n)
            except serial.SerialException as e:
                raise ConnectionClosedError(f"Serial port {self._name} lost: {e}") from e
            if data:
                return data

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionClosedError("serial transport closed")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._port.write, data)
        except serial.SerialTimeoutException as e:
            raise OSError(f"Serial write timed out: {e}") from e
        except serial.SerialException as e:
            raise ConnectionClosedError(f"Serial port {self._name} lost: {e}") from e

    def data_available(self) -> Optional[bool]:
        try:
            return self._port.in_waiting > 0
        except (serial.SerialException, OSError):
            return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._port.close()
        except serial.SerialException as e:
            logger.debug(f"Error closing {self._name}: {e}")

    def describe(self) -> str:
        return f"serial:{self._name}"
