"""
Door lobby.

First screen the caller sees: who the door thinks they are, the SysOp
console offer (before any save is loaded) and the hand-off to the game.
"""

import importlib
import inspect
from typing import Awaitable, Callable, Optional

from ..exceptions import ConfigurationError
from ..session import Session, SessionManager
from ..utils.logger import get_logger
from .sysop_console import SysOpConsole

logger = get_logger("ui.lobby")

SYSOP_KEY = "%"

GameEntry = Callable[[Session], Awaitable[None]]


def resolve_entry_point(entry_point: Optional[str]) -> Optional[GameEntry]:
    """Import ``package.module:function``. None when nothing is configured."""
    if not entry_point:
        return None

    module_name, _, attr = entry_point.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"game.entry_point must look like 'module:function', got {entry_point!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import game module {module_name!r}: {e}") from e

    target = module
    for part in attr.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise ConfigurationError(f"{module_name!r} has no attribute {attr!r}")
    if not callable(target):
        raise ConfigurationError(f"game.entry_point {entry_point!r} is not callable")
    return target


class DoorLobby:
    def __init__(self, session: Session, manager: SessionManager, entry: Optional[GameEntry] = None):
        self.session = session
        self.manager = manager
        self.entry = entry
        self.terminal = session.terminal

    async def show_welcome(self) -> None:
        term = self.terminal
        info = self.session.info
        await term.clear()

        await term.set_color("bright_cyan")
        await term.write_line(f"Welcome to {info.bbs_name}!")
        await term.reset_color()
        await term.write_line()
        await term.write_line(f"[bright_white]Character:[/] {self.session.character_name}")
        if info.is_door_mode:
            await term.write_line(f"[bright_white]Node:[/] {info.node_number}")
            await term.write_line(f"[bright_white]Time left:[/] {self.session.minutes_left()} minutes")
        else:
            await term.write_line("[yellow]Local mode[/]")
        await term.write_line()

    async def offer_sysop_console(self) -> None:
        if not self.session.sysop_console_granted:
            return

        term = self.terminal
        await term.set_color("bright_magenta")
        await term.write(f"SysOp access detected. Press {SYSOP_KEY} for the SysOp console, any other key to play: ")
        key = await term.read_key()
        await term.write_line()
        await term.reset_color()

        if key == SYSOP_KEY:
            await SysOpConsole(self.session, self.manager).run()

    async def run(self) -> None:
        await self.show_welcome()
        await self.offer_sysop_console()

        if self.entry is None:
            await self.terminal.set_color("yellow")
            await self.terminal.write_line("No game engine is configured for this door.")
            await self.terminal.write_line("Ask your SysOp to set game.entry_point.")
            await self.terminal.press_any_key()
            return

        logger.info(f"Starting game for {self.session.character_name}")
        result = self.entry(self.session)
        if inspect.isawaitable(result):
            await result
        logger.info(f"Game returned for {self.session.character_name}")
