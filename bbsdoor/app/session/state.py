"""
Session state management.

One Session per door process. It owns the transport and terminal adapter,
the player's identity as the host BBS reported it, and the save directory
the game is allowed to touch.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..dropfile import SessionInfo
from ..exceptions import CharacterLockedError, SessionError
from ..transport.base import Transport
from ..utils.logger import get_logger
from .terminal import TerminalAdapter

logger = get_logger("session")

EmergencySave = Callable[["Session"], Union[None, Awaitable[None]]]


class SessionState(Enum):
    """Session lifecycle states."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CONNECTION_LOST = "connection_lost"
    CLOSED = "closed"


@dataclass
class Session:
    """Live state of one door connection."""

    info: SessionInfo
    transport: Transport
    terminal: TerminalAdapter
    save_path: Path
    character_name: str
    sysop_console_granted: bool = False
    sysop_threshold: int = 100
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: SessionState = SessionState.CONNECTING
    connected_at: datetime = field(default_factory=datetime.now)
    data: Dict[str, Any] = field(default_factory=dict)
    _emergency_save: Optional[EmergencySave] = field(default=None, repr=False)

    @property
    def is_door_mode(self) -> bool:
        return self.info.is_door_mode

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def activate(self) -> None:
        if self.state != SessionState.CONNECTING:
            raise SessionError(f"Cannot activate a session in state {self.state.value}")
        self.state = SessionState.ACTIVE
        logger.info(
            f"Session {self.id}: {self.character_name} on node {self.info.node_number} "
            f"via {self.transport.describe()}"
        )

    def rename_character(self, new_name: str) -> str:
        """Change the character name. Only allowed outside door mode."""
        if self.is_door_mode:
            raise CharacterLockedError(
                f"Character name is locked to '{self.character_name}' by the BBS"
            )
        new_name = (new_name or "").strip()
        if not new_name:
            raise SessionError("Character name cannot be empty")
        self.character_name = new_name
        return new_name

    def get_session_time(self) -> str:
        """Get formatted session duration as HH:MM:SS."""
        delta = datetime.now() - self.connected_at
        hours = int(delta.total_seconds() // 3600)
        minutes = int((delta.total_seconds() % 3600) // 60)
        seconds = int(delta.total_seconds() % 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    def minutes_left(self) -> int:
        """Advisory time left from the drop file."""
        elapsed = (datetime.now() - self.connected_at).total_seconds() // 60
        return max(0, self.info.time_remaining_minutes - int(elapsed))

    # === Emergency save ===

    def register_emergency_save(self, callback: Optional[EmergencySave]) -> None:
        """Called once by the game once a save is loaded; None unregisters."""
        self._emergency_save = callback

    async def run_emergency_save(self) -> bool:
        """Run the registered callback at most once. Returns True if it ran."""
        callback, self._emergency_save = self._emergency_save, None
        if callback is None:
            return False

        logger.warning(f"Session {self.id}: running emergency save for {self.character_name}")
        try:
            result = callback(self)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Session {self.id}: emergency save failed: {e}", exc_info=True)
            return False
        return True

    # === Shutdown ===

    def mark_connection_lost(self) -> None:
        if self.state != SessionState.CLOSED:
            self.state = SessionState.CONNECTION_LOST

    async def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        if self.state == SessionState.CLOSED:
            return
        try:
            await self.terminal.close()
        except OSError as e:
            logger.debug(f"Session {self.id}: error closing transport: {e}")
        self.state = SessionState.CLOSED
        logger.info(f"Session {self.id} closed after {self.get_session_time()}")
