import inspect
from typing import Callable, List, Optional

from ..exceptions import ConnectionClosedError, DoorException
from ..session import TerminalAdapter
from ..utils.logger import get_logger

logger = get_logger("ui.menu")


class MenuItem:
    def __init__(self, key: str, label: str, handler: Optional[Callable] = None):
        self.key = key.upper()
        self.label = label
        self.handler = handler


class Menu:
    def __init__(self, terminal: TerminalAdapter, title: str = "Menu"):
        self.terminal = terminal
        self.title = title
        self.items: List[MenuItem] = []
        self.running = True

    def add_item(self, key: str, label: str, handler: Optional[Callable] = None) -> None:
        self.items.append(MenuItem(key, label, handler))

    def stop(self) -> None:
        self.running = False

    async def display(self) -> None:
        term = self.terminal
        await term.clear()

        width = max(len(self.title) + 2, max(len(f"[{i.key}] {i.label}") for i in self.items) + 2)
        if term.ansi:
            await term.set_color("bright_yellow")
            await term.write_line("╔" + "═" * width + "╗")
            await term.write_line("║" + self.title.center(width) + "║")
            await term.write_line("╟" + "─" * width + "╢")

            for item in self.items:
                await term.set_color("bright_yellow")
                await term.write("║ ")
                await term.set_color("cyan")
                await term.write(f"[{item.key}] ")
                await term.set_color("white")
                await term.write(item.label.ljust(width - len(item.key) - 4))
                await term.set_color("bright_yellow")
                await term.write_line("║")

            await term.write_line("╚" + "═" * width + "╝")
            await term.reset_color()
        else:
            await term.write_line("=" * width)
            await term.write_line(self.title.center(width))
            await term.write_line("-" * width)
            for item in self.items:
                await term.write_line(f"  [{item.key}] {item.label}")
            await term.write_line("=" * width)

        await term.write_line()

    async def get_choice(self) -> Optional[MenuItem]:
        choice = (await self.terminal.read_line("Your choice: ")).strip().upper()
        for item in self.items:
            if item.key == choice:
                return item
        return None

    async def run(self) -> None:
        while self.running:
            await self.display()
            item = await self.get_choice()

            if item is None:
                await self.terminal.set_color("red")
                await self.terminal.write_line("Invalid selection. Please try again.")
                await self.terminal.press_any_key()
                continue

            if item.handler is None:
                continue
            try:
                result = item.handler()
                if inspect.iscoroutine(result):
                    await result
            except ConnectionClosedError:
                raise
            except (DoorException, OSError) as e:
                logger.error(f"Menu handler error: {e}", exc_info=True)
                await self.terminal.set_color("red")
                await self.terminal.write_line(f"Error: {e}")
                await self.terminal.press_any_key()
