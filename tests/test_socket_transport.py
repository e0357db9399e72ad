"""
Inherited socket transport and Telnet byte transparency tests.
"""

import asyncio
import errno
import os
import socket

import pytest

from bbsdoor.app.encoding import CharacterEncoder
from bbsdoor.app.exceptions import ConnectionClosedError, TransportInitError
from bbsdoor.app.session import TerminalAdapter
from bbsdoor.app.transport.socket_transport import IacFilter, SocketTransport, escape_iac


class TestIacFilter:
    """Inbound Telnet command stripping"""

    def test_plain_data(self):
        assert IacFilter().feed(b"hello") == b"hello"

    def test_option_commands_dropped(self):
        # IAC WILL ECHO, IAC DO SGA
        assert IacFilter().feed(b"a\xff\xfb\x01b\xff\xfd\x03c") == b"abc"

    def test_subnegotiation_dropped(self):
        data = b"x\xff\xfa\x18\x00XTERM\xff\xf0y"
        assert IacFilter().feed(data) == b"xy"

    def test_escaped_iac_is_literal(self):
        assert IacFilter().feed(b"\xff\xff") == b"\xff"

    def test_two_byte_commands_dropped(self):
        # IAC NOP, IAC AYT
        assert IacFilter().feed(b"a\xff\xf1\xff\xf6b") == b"ab"

    def test_split_across_reads(self):
        f = IacFilter()
        assert f.feed(b"a\xff") == b"a"
        assert f.feed(b"\xfb") == b""
        assert f.feed(b"\x01b\xff\xfa\x1f") == b"b"
        assert f.feed(b"\x00\x50\xff") == b""
        assert f.feed(b"\xf0c") == b"c"


class TestEscape:
    def test_escape_iac(self):
        assert escape_iac(b"a\xffb") == b"a\xff\xffb"
        assert escape_iac(b"plain") == b"plain"


class TestSocketTransport:
    """SocketTransport over a local socket pair"""

    @pytest.fixture
    def pair(self):
        door_end, client = socket.socketpair()
        yield door_end, client
        door_end.close()
        client.close()

    def test_round_trip(self, pair):
        door_end, client = pair

        async def scenario():
            transport = await SocketTransport.open(os.dup(door_end.fileno()))
            client.sendall(b"hi\xff\xfb\x01!")
            received = b""
            while len(received) < 3:
                received += await transport.read(10)
            await transport.write(b"ok\xff")
            await transport.close()
            return transport, received

        transport, received = asyncio.run(scenario())
        assert received == b"hi!"
        assert client.recv(10) == b"ok\xff\xff"
        assert transport.describe().startswith("socket:")

    def test_remote_close_raises(self, pair):
        door_end, client = pair

        async def scenario():
            transport = await SocketTransport.open(os.dup(door_end.fileno()))
            client.shutdown(socket.SHUT_RDWR)
            try:
                await transport.read(1)
            finally:
                await transport.close()

        with pytest.raises(ConnectionClosedError):
            asyncio.run(scenario())

    def test_data_available(self, pair):
        door_end, client = pair

        async def scenario():
            transport = await SocketTransport.open(os.dup(door_end.fileno()))
            before = transport.data_available()
            client.sendall(b"k")
            await asyncio.sleep(0.05)
            after = transport.data_available()
            await transport.close()
            return before, after

        assert asyncio.run(scenario()) == (False, True)

    def test_missing_handle(self):
        with pytest.raises(TransportInitError):
            asyncio.run(SocketTransport.open(0))

    def test_bad_handle(self):
        with pytest.raises(TransportInitError):
            asyncio.run(SocketTransport.open(987654))

    def test_unconnected_socket(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            with pytest.raises(TransportInitError):
                asyncio.run(SocketTransport.open(sock.fileno()))
        finally:
            sock.close()

    def test_failed_send_is_not_retried(self, pair, monkeypatch):
        door_end, _ = pair
        calls = []

        async def failing_sendall(loop, sock, data):
            calls.append(data)
            raise OSError(errno.EIO, "half sent")

        async def scenario():
            monkeypatch.setattr(type(asyncio.get_running_loop()), "sock_sendall", failing_sendall)
            transport = await SocketTransport.open(os.dup(door_end.fileno()))
            terminal = TerminalAdapter(transport, CharacterEncoder(color=False), write_retries=3)
            try:
                await terminal.write("once only")
            finally:
                await transport.close()

        with pytest.raises(ConnectionClosedError):
            asyncio.run(scenario())
        assert calls == [b"once only"]
