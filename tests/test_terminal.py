"""
Terminal adapter tests against an in-memory transport.
"""

import asyncio

import pytest

from bbsdoor.app.encoding import CharacterEncoder
from bbsdoor.app.exceptions import ConnectionClosedError
from bbsdoor.app.session import TerminalAdapter
from bbsdoor.app.transport.base import TransportCapabilities

from conftest import FakeTransport


def make_terminal(incoming: bytes = b"", echo: bool = True, color: bool = True, **kwargs):
    caps = TransportCapabilities(color=color, echo=echo)
    transport = FakeTransport(incoming, capabilities=caps, **kwargs)
    terminal = TerminalAdapter(transport, CharacterEncoder(color=color), write_retries=2)
    return terminal, transport


class TestReadLine:
    """Line editing"""

    @pytest.mark.parametrize("ending", [b"\r", b"\n", b"\r\n", b"\r\x00"])
    def test_line_endings(self, ending):
        terminal, _ = make_terminal(b"hello" + ending + b"world\r")

        async def scenario():
            return await terminal.read_line(), await terminal.read_line()

        assert asyncio.run(scenario()) == ("hello", "world")

    def test_empty_line(self):
        terminal, _ = make_terminal(b"\r\n")
        assert asyncio.run(terminal.read_line()) == ""

    def test_backspace_and_delete(self):
        terminal, _ = make_terminal(b"helpx\x08\x7flo\r")
        assert asyncio.run(terminal.read_line()) == "hello"

    def test_escape_clears_line(self):
        terminal, _ = make_terminal(b"oops\x1bfine\r")
        assert asyncio.run(terminal.read_line()) == "fine"

    @pytest.mark.parametrize("keys", [
        b"ab\x1b[Dc\r",        # cursor left
        b"a\x1b[Ab\x1b[Bc\r",  # cursor up, down
        b"ab\x1bOPc\r",        # F1 (SS3)
        b"ab\x1b[1;5Cc\r",     # ctrl + cursor right
        b"ab\x1b[15~c\r",      # F5
    ])
    def test_cursor_and_function_keys_ignored(self, keys):
        terminal, transport = make_terminal(keys)
        assert asyncio.run(terminal.read_line()) == "abc"
        assert b"[" not in transport.output

    def test_escape_then_enter(self):
        terminal, _ = make_terminal(b"oops\x1b\rnext\r")

        async def scenario():
            return await terminal.read_line(), await terminal.read_line()

        assert asyncio.run(scenario()) == ("", "next")

    def test_control_bytes_ignored(self):
        terminal, _ = make_terminal(b"a\x01\x02b\r")
        assert asyncio.run(terminal.read_line()) == "ab"

    def test_max_length(self):
        terminal, _ = make_terminal(b"x" * 300 + b"\r")
        assert asyncio.run(terminal.read_line()) == "x" * 255

    def test_cp437_input_decoded(self):
        terminal, _ = make_terminal("é\r".encode("cp437"))
        assert asyncio.run(terminal.read_line()) == "é"

    def test_echo(self):
        terminal, transport = make_terminal(b"ab\x08\r")
        asyncio.run(terminal.read_line("Name: "))
        assert transport.output == b"Name: ab\x08 \x08\r\n"

    def test_no_echo_when_host_echoes(self):
        terminal, transport = make_terminal(b"ab\r", echo=False)
        asyncio.run(terminal.read_line())
        assert transport.output == b""

    def test_end_of_stream_raises(self):
        terminal, _ = make_terminal(b"partial")
        with pytest.raises(ConnectionClosedError):
            asyncio.run(terminal.read_line())


class TestKeys:
    def test_read_key(self):
        terminal, _ = make_terminal(b"%")
        assert asyncio.run(terminal.read_key()) == "%"

    def test_read_key_folds_crlf(self):
        terminal, _ = make_terminal(b"\r\nq")

        async def scenario():
            return await terminal.read_key(), await terminal.read_key()

        assert asyncio.run(scenario()) == ("\r", "q")

    @pytest.mark.parametrize("available,expected", [(None, False), (False, False), (True, True)])
    def test_key_available(self, available, expected):
        terminal, _ = make_terminal(available=available)
        assert terminal.try_read_key_available() is expected


class TestOutput:
    """Writes, colour and retries"""

    def test_write_line_encodes(self):
        terminal, transport = make_terminal()
        asyncio.run(terminal.write_line("╔═╗"))
        assert transport.output == bytes([201, 205, 187]) + b"\r\n"

    def test_set_color(self):
        terminal, transport = make_terminal()
        asyncio.run(terminal.set_color("bright_green"))
        assert transport.output == b"\x1b[1;32m"
        assert terminal.current_color == "bright_green"

    def test_no_colour_bytes_without_colour(self):
        terminal, transport = make_terminal(color=False)

        async def scenario():
            await terminal.set_color("red")
            await terminal.write("[cyan]hi[/]")

        asyncio.run(scenario())
        assert transport.output == b"hi"

    def test_clear(self):
        terminal, transport = make_terminal()
        asyncio.run(terminal.clear())
        assert transport.output == b"\x1b[2J\x1b[1;1H"

    def test_clear_without_ansi_scrolls(self):
        terminal, transport = make_terminal(color=False)
        asyncio.run(terminal.clear())
        assert transport.output == b"\r\n" * 24

    def test_transient_write_failure_is_retried(self):
        terminal, transport = make_terminal(fail_writes=2)
        asyncio.run(terminal.write("ok"))
        assert transport.output == b"ok"
        assert transport.write_attempts == 3

    def test_retry_budget_exhausted(self):
        terminal, transport = make_terminal(fail_writes=10)
        with pytest.raises(ConnectionClosedError):
            asyncio.run(terminal.write("lost"))
        assert transport.write_attempts == 3


class TestPrompts:
    """Game helper prompts"""

    @pytest.mark.parametrize("answer,default,expected", [
        (b"y\r", False, True),
        (b"YES\r", False, True),
        (b"n\r", True, False),
        (b"\r", True, True),
        (b"\r", False, False),
    ])
    def test_confirm(self, answer, default, expected):
        terminal, _ = make_terminal(answer)
        assert asyncio.run(terminal.confirm("Sure?", default)) is expected

    def test_get_number_reprompts(self):
        terminal, transport = make_terminal(b"abc\r500\r42\r")
        assert asyncio.run(terminal.get_number("Gold: ", 0, 100)) == 42
        assert "valid number" in transport.text
        assert "between 0 and 100" in transport.text

    def test_menu_choice_by_key_and_position(self):
        options = [("A", "Attack"), ("R", "Run")]
        terminal, _ = make_terminal(b"r\r2\r")

        async def scenario():
            return await terminal.menu_choice(options), await terminal.menu_choice(options)

        assert asyncio.run(scenario()) == ("R", "R")

    def test_press_any_key(self):
        terminal, transport = make_terminal(b"x")
        asyncio.run(terminal.press_any_key())
        assert "Press any key" in transport.text
