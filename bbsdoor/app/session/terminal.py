"""
Terminal adapter.

The single terminal interface the game talks to. Text goes through the
CharacterEncoder, then the transport; keyboard input is decoded in the
same charset and echoed when the far end expects the door to do it.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from ..encoding import CharacterEncoder
from ..exceptions import ConnectionClosedError
from ..transport.base import Transport
from ..utils.logger import get_logger

logger = get_logger("session.terminal")

ENTER = "\r"
BACKSPACE = ("\x08", "\x7f")
ESCAPE = "\x1b"
MAX_SEQUENCE_LENGTH = 16


class TerminalAdapter:
    """Line/key oriented terminal over any transport.

    End of stream raises ConnectionClosedError; it is never reported as an
    empty line, so callers can tell a hang-up from a user pressing Enter.
    """

    def __init__(
        self,
        transport: Transport,
        encoder: CharacterEncoder,
        write_retries: int = 3,
        max_line_length: int = 255,
        rows: int = 24,
    ):
        self.transport = transport
        self.encoder = encoder
        self.write_retries = write_retries
        self.max_line_length = max_line_length
        self.rows = rows
        self.current_color = "white"
        self._decoder = encoder.decoder()
        self._pushback: List[str] = []
        self._after_cr = False

    @property
    def capabilities(self):
        return self.transport.capabilities

    @property
    def ansi(self) -> bool:
        return self.encoder.color

    # === Output ===

    async def _send(self, data: bytes) -> None:
        """Write with a small retry budget for transient failures.

        Only OSErrors are retried; transports whose writes can fail part way
        raise ConnectionClosedError instead.
        """
        if not data:
            return

        for attempt in range(self.write_retries + 1):
            try:
                await self.transport.write(data)
                return
            except OSError as e:
                logger.warning(
                    f"Write to {self.transport.describe()} failed "
                    f"(attempt {attempt + 1}/{self.write_retries + 1}): {e}"
                )
                last_error = e
                await asyncio.sleep(0.05 * (attempt + 1))

        raise ConnectionClosedError(
            f"Giving up after {self.write_retries + 1} failed writes: {last_error}"
        ) from last_error

    async def write(self, text: str) -> None:
        """Write text; ``[colour]...[/]`` markup is honoured."""
        if "[" in text:
            data = self.encoder.render_markup(text, base_color=self.current_color)
        else:
            data = self.encoder.encode_text(text)
        await self._send(data)

    async def write_line(self, text: str = "") -> None:
        await self.write(f"{text}\r\n")

    async def write_raw(self, data: bytes) -> None:
        """Bytes straight to the transport (ANSI art, pre-encoded screens)."""
        await self._send(data)

    async def set_color(self, name: str) -> None:
        self.current_color = name or "white"
        await self._send(self.encoder.encode_color(self.current_color))

    async def reset_color(self) -> None:
        self.current_color = "white"
        await self._send(self.encoder.reset())

    async def clear(self) -> None:
        if self.ansi:
            await self._send(self.encoder.clear_screen())
        else:
            await self._send(b"\r\n" * self.rows)

    # === Input ===

    async def _read_char(self) -> str:
        while not self._pushback:
            data = await self.transport.read(1)
            text = self._decoder.decode(data)
            self._pushback.extend(text)
        return self._pushback.pop(0)

    async def _next_char(self) -> str:
        """Next typed character with CR, LF and CRLF all folded to ENTER."""
        while True:
            ch = await self._read_char()
            if self._after_cr and ch in ("\n", "\x00"):
                self._after_cr = False
                continue
            self._after_cr = ch == "\r"
            return ENTER if ch == "\n" else ch

    async def _skip_escape_sequence(self) -> bool:
        """Drop a CSI or SS3 sequence (cursor and function keys) after ESC.

        Anything else after ESC is left for the next read.
        """
        ch = await self._read_char()
        if ch not in ("[", "O"):
            self._pushback.insert(0, ch)
            return False
        for _ in range(MAX_SEQUENCE_LENGTH):
            ch = await self._read_char()
            if "\x40" <= ch <= "\x7e":
                break
        return True

    async def read_key(self) -> str:
        """Block until one key arrives."""
        return await self._next_char()

    def try_read_key_available(self) -> bool:
        """Whether a key is waiting. False when the transport cannot tell."""
        if self._pushback:
            return True
        try:
            return bool(self.transport.data_available())
        except OSError as e:
            logger.debug(f"Input poll failed: {e}")
            return False

    async def read_line(self, prompt: str = "", echo: bool = True) -> str:
        if prompt:
            await self.write(prompt)

        echo = echo and self.capabilities.echo
        buffer: List[str] = []
        while True:
            ch = await self._next_char()

            if ch == ENTER:
                if self.capabilities.echo:
                    await self._send(b"\r\n")
                break
            elif ch in BACKSPACE:
                if buffer:
                    buffer.pop()
                    if echo:
                        await self._send(b"\x08 \x08")
            elif ch == ESCAPE:
                if await self._skip_escape_sequence():
                    continue
                if echo and buffer:
                    await self._send(b"\x08 \x08" * len(buffer))
                buffer.clear()
            elif ch >= " " and len(buffer) < self.max_line_length:
                buffer.append(ch)
                if echo:
                    await self._send(self.encoder.encode_text(ch))

        return "".join(buffer)

    async def read_password(self, prompt: str = "Password: ") -> str:
        """Read password input without echo."""
        return await self.read_line(prompt, echo=False)

    # === Prompts used across the game ===

    async def confirm(self, message: str, default: bool = False) -> bool:
        hint = " [Y/n] " if default else " [y/N] "
        await self.set_color("yellow")
        answer = (await self.read_line(message + hint)).strip().upper()
        if not answer:
            return default
        return answer in ("Y", "YES")

    async def get_number(self, prompt: str = "", minimum: int = 0, maximum: Optional[int] = None) -> int:
        while True:
            answer = (await self.read_line(prompt)).strip()
            try:
                value = int(answer)
            except ValueError:
                await self.set_color("red")
                await self.write_line("Please enter a valid number.")
                continue
            if value >= minimum and (maximum is None or value <= maximum):
                return value
            await self.set_color("red")
            upper = maximum if maximum is not None else "any"
            await self.write_line(f"Please enter a number between {minimum} and {upper}.")

    async def press_any_key(self, message: str = "Press any key to continue...") -> None:
        await self.set_color("gray")
        await self.write(message)
        await self.read_key()
        await self.write_line()

    async def menu_choice(self, options: Sequence[Tuple[str, str]], prompt: str = "> ") -> str:
        """Show ``[key] text`` options and return the chosen key.

        Numeric answers select by position.
        """
        await self.write_line()
        for key, text in options:
            await self.set_color("yellow")
            await self.write(f"[{key}] ")
            await self.set_color("white")
            await self.write_line(text)
        await self.write_line()

        while True:
            answer = (await self.read_line(prompt)).strip().upper()
            for key, _ in options:
                if key.upper() == answer:
                    return key
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return options[int(answer) - 1][0]
            await self.set_color("red")
            await self.write_line("Invalid choice. Please try again.")

    async def close(self) -> None:
        await self.transport.close()
