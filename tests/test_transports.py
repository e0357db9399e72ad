"""
Serial, stdio and local console transport tests.
"""

import asyncio
import os

import pytest
import serial

from bbsdoor.app.exceptions import ConnectionClosedError, SerialUnavailableError, TransportInitError
from bbsdoor.app.transport.local_transport import LocalConsoleTransport
from bbsdoor.app.transport.serial_transport import SerialTransport, resolve_port_name
from bbsdoor.app.transport.stdio_transport import StdioTransport


class TestSerial:
    """pyserial backed transport"""

    def test_port_aliases(self):
        aliases = {"com1": "/dev/ttyUSB0"}
        assert resolve_port_name("COM1", aliases) == "/dev/ttyUSB0"
        assert resolve_port_name("COM1:", aliases) == "/dev/ttyUSB0"
        assert resolve_port_name("COM2", aliases) == "COM2"

    def test_no_port(self):
        with pytest.raises(SerialUnavailableError):
            asyncio.run(SerialTransport.open(None))

    def test_missing_port(self):
        with pytest.raises(SerialUnavailableError):
            asyncio.run(SerialTransport.open("/dev/does-not-exist-bbsdoor"))

    def test_unavailable_is_init_error(self):
        assert issubclass(SerialUnavailableError, TransportInitError)

    def test_loopback(self):
        port = serial.serial_for_url("loop://", timeout=0.1)
        transport = SerialTransport(port, "loop")

        async def scenario():
            await transport.write(b"ATZ")
            received = await transport.read(3)
            await transport.close()
            return received

        assert asyncio.run(scenario()) == b"ATZ"
        assert transport.describe() == "serial:loop"


class TestStdio:
    """Pipes standing in for host redirected standard I/O"""

    def test_round_trip(self):
        in_read, in_write = os.pipe()
        out_read, out_write = os.pipe()
        stdin = os.fdopen(in_read, "rb", buffering=0)
        stdout = os.fdopen(out_write, "wb", buffering=0)

        async def scenario():
            transport = await StdioTransport.open(stdin, stdout)
            os.write(in_write, b"k")
            key = await transport.read(1)
            await transport.write(b"\xff raw")
            available = transport.data_available()
            os.close(in_write)
            with pytest.raises(ConnectionClosedError):
                await transport.read(1)
            await transport.close()
            return key, available

        key, available = asyncio.run(scenario())
        assert key == b"k"
        assert available is None
        assert os.read(out_read, 10) == b"\xff raw"
        os.close(out_read)

    def test_regular_file_is_rejected(self, tmp_path):
        path = tmp_path / "not-a-pipe"
        path.write_bytes(b"")

        with open(path, "rb") as stdin, open(path, "ab") as stdout:
            with pytest.raises(TransportInitError):
                asyncio.run(StdioTransport.open(stdin, stdout))


class TestLocalConsole:
    """Local console over pipes (no TTY, so no cbreak)"""

    def test_pipe_console(self):
        in_read, in_write = os.pipe()
        out_read, out_write = os.pipe()
        stdin = os.fdopen(in_read, "rb", buffering=0)
        stdout = os.fdopen(out_write, "wb", buffering=0)

        async def scenario():
            transport = await LocalConsoleTransport.open(stdin, stdout)
            os.write(in_write, b"q")
            key = await transport.read(1)
            await transport.write(b"bye")
            os.close(in_write)
            with pytest.raises(ConnectionClosedError):
                await transport.read(1)
            await transport.close()
            return transport, key

        transport, key = asyncio.run(scenario())
        assert key == b"q"
        assert not transport.capabilities.color
        assert not transport.capabilities.raw_keys
        assert not transport.capabilities.echo
        assert os.read(out_read, 10) == b"bye"
        os.close(out_read)
        stdin.close()
        stdout.close()
