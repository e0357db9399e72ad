from ..exceptions import AuthorizationError
from ..session import Session, SessionManager
from ..utils.logger import get_logger
from .menu import Menu

logger = get_logger("ui.sysop")

WIPE_CONFIRMATION = "WIPE"


class SysOpConsole:
    """Save administration for the board's SysOp.

    Reached from the lobby before any save is loaded, so nothing it
    deletes can be open in the game.
    """

    def __init__(self, session: Session, manager: SessionManager):
        self.session = session
        self.manager = manager
        self.terminal = session.terminal

    async def run(self) -> None:
        try:
            self.manager.require_sysop(self.session)
        except AuthorizationError as e:
            logger.warning(f"SysOp console refused: {e}")
            await self.terminal.set_color("red")
            await self.terminal.write_line("Access denied. SysOp privileges required.")
            await self.terminal.press_any_key()
            return

        logger.info(f"SysOp console opened by {self.session.character_name}")
        menu = Menu(self.terminal, f"SysOp Console - {self.session.info.bbs_name}")
        menu.add_item("L", "List Player Saves", self.list_saves)
        menu.add_item("D", "Delete a Player Save", self.delete_save)
        menu.add_item("W", "Wipe All Saves", self.wipe_saves)
        menu.add_item("T", f"SysOp Level (now {self.session.sysop_threshold})", self.set_threshold)
        menu.add_item("Q", "Back", menu.stop)
        self._menu = menu

        await menu.run()

    async def list_saves(self) -> None:
        term = self.terminal
        await term.clear()
        await term.set_color("bright_cyan")
        await term.write_line("=== Player Saves ===")
        await term.reset_color()
        await term.write_line()

        saves = self.manager.list_player_saves(self.session.info)
        if not saves:
            await term.write_line("No saves on this BBS.")
        for index, name in enumerate(saves, 1):
            await term.write_line(f"{index:>3}. {name}")

        await term.write_line()
        await term.write_line(f"Total: {len(saves)}")
        await term.press_any_key()

    async def delete_save(self) -> None:
        term = self.terminal
        name = (await term.read_line("Player name or save folder: ")).strip()
        if not name:
            return

        if not await term.confirm(f"Really delete the save for '{name}'?"):
            await term.write_line("Deletion cancelled.")
            await term.press_any_key()
            return

        if self.manager.delete_player_save(self.session.info, name):
            logger.warning(f"SysOp {self.session.character_name} deleted save '{name}'")
            await term.set_color("green")
            await term.write_line("Save deleted.")
        else:
            await term.set_color("red")
            await term.write_line(f"No save found for '{name}'.")
        await term.press_any_key()

    async def wipe_saves(self) -> None:
        term = self.terminal
        await term.set_color("bright_red")
        await term.write_line("This deletes every player save on this BBS.")
        answer = await term.read_line(f"Type {WIPE_CONFIRMATION} to confirm: ")

        if answer.strip() != WIPE_CONFIRMATION:
            await term.reset_color()
            await term.write_line("Wipe cancelled.")
            await term.press_any_key()
            return

        count = self.manager.wipe_saves(self.session.info)
        logger.warning(f"SysOp {self.session.character_name} wiped {count} saves")
        await term.reset_color()
        await term.write_line(f"{count} saves deleted.")
        await term.press_any_key()

    async def set_threshold(self) -> None:
        term = self.terminal
        await term.write_line(f"Current SysOp level: {self.session.sysop_threshold}")
        level = await term.get_number("New SysOp level (0-255): ", 0, 255)

        if level > self.session.info.security_level:
            await term.set_color("yellow")
            await term.write_line("That is above your own level; you would lose console access.")
            if not await term.confirm("Set it anyway?"):
                return

        self.session.sysop_threshold = self.manager.effective_threshold(self.session.info, level)
        self.session.sysop_console_granted = self.manager.is_sysop_authorized(
            self.session.info, self.session.sysop_threshold
        )
        for item in self._menu.items:
            if item.key == "T":
                item.label = f"SysOp Level (now {self.session.sysop_threshold})"
        if not self.session.sysop_console_granted:
            self._menu.stop()

        await term.set_color("green")
        await term.write_line(f"SysOp level set to {level}.")
        await term.press_any_key()
