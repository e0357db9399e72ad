"""
Per-connection isolation and SysOp authorisation.

Every BBS gets its own directory under the save root and every player a
directory below it, so two nodes (or two boards sharing one install) can
never touch each other's saves. Directory names carry a short hash of the
real name so that names which sanitise to the same text stay apart.
"""

import hashlib
import re
import shutil
from pathlib import Path
from typing import List, Optional

import toml

from ..dropfile import SessionInfo
from ..exceptions import AuthorizationError, ConfigurationError
from ..transport.base import Transport
from ..utils.config import Config, get_config
from ..utils.logger import get_logger
from .state import Session
from .terminal import TerminalAdapter

logger = get_logger("session.manager")

MAX_NAME_LENGTH = 32
_INVALID_PATH_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')


def sanitize_name(name: str, fallback: str) -> str:
    """Make a name safe as one path component on any platform."""
    cleaned = _INVALID_PATH_CHARS.sub("_", (name or "").strip())
    cleaned = cleaned.strip(" .")[:MAX_NAME_LENGTH]
    if not cleaned or set(cleaned) == {"_"}:
        return fallback
    return cleaned


def short_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:8]


def bbs_dirname(bbs_name: str) -> str:
    return f"{sanitize_name(bbs_name, 'BBS')}-{short_hash(bbs_name or '')}"


def player_dirname(alias: str) -> str:
    # Hosts disagree on capitalisation of the same user.
    folded = (alias or "").strip().casefold()
    return f"{sanitize_name(folded, 'player')}-{short_hash(folded)}"


class SysOpConfigStore:
    """Persisted per-BBS SysOp settings, one TOML file per BBS name."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)

    def path_for(self, bbs_name: str) -> Path:
        return self.config_dir / f"{bbs_dirname(bbs_name)}.toml"

    def load_threshold(self, bbs_name: str) -> Optional[int]:
        path = self.path_for(bbs_name)
        if not path.exists():
            return None

        try:
            with open(path, "r") as f:
                data = toml.load(f)
        except toml.TomlDecodeError as e:
            raise ConfigurationError(f"Invalid SysOp config {path}: {e}") from e

        value = data.get("sysop", {}).get("threshold")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric SysOp threshold in {path}: {value!r}")
            return None

    def save_threshold(self, bbs_name: str, threshold: int) -> Path:
        path = self.path_for(bbs_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {"sysop": {"bbs_name": bbs_name, "threshold": int(threshold)}}
        with open(path, "w") as f:
            toml.dump(data, f)
        logger.info(f"SysOp threshold for '{bbs_name}' set to {threshold}")
        return path


class SessionManager:
    """Resolves identity, save location and SysOp rights for a session."""

    def __init__(self, config: Optional[Config] = None, store: Optional[SysOpConfigStore] = None):
        self.config = config or get_config()
        self.save_root = Path(self.config.paths.save_root)
        self.store = store or SysOpConfigStore(Path(self.config.paths.config_dir))

    # === Save isolation ===

    def bbs_save_root(self, info: SessionInfo) -> Path:
        return self.save_root / bbs_dirname(info.bbs_name)

    def resolve_save_path(self, info: SessionInfo, alias: Optional[str] = None) -> Path:
        """Save directory for a player; does not touch the filesystem."""
        if alias is None:
            alias = info.player_name
        return self.bbs_save_root(info) / player_dirname(alias)

    def ensure_save_path(self, info: SessionInfo) -> Path:
        path = self.resolve_save_path(info)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def lock_character_name(self, info: SessionInfo) -> str:
        return info.player_name

    # === SysOp authorisation ===

    @staticmethod
    def is_sysop_authorized(info: SessionInfo, threshold: int) -> bool:
        return info.security_level >= threshold

    def effective_threshold(self, info: SessionInfo, override: Optional[int] = None) -> int:
        if override is not None:
            if override < 0:
                raise ConfigurationError(f"SysOp level cannot be negative: {override}")
            self.store.save_threshold(info.bbs_name, override)
            return override

        persisted = self.store.load_threshold(info.bbs_name)
        if persisted is not None:
            return persisted
        return self.config.sysop.default_threshold

    def require_sysop(self, session: Session) -> None:
        if not session.sysop_console_granted:
            raise AuthorizationError(
                f"{session.character_name} (level {session.info.security_level}) "
                f"is below the SysOp threshold {session.sysop_threshold}"
            )

    # === Session construction ===

    def build_session(
        self,
        info: SessionInfo,
        transport: Transport,
        terminal: TerminalAdapter,
        threshold_override: Optional[int] = None,
    ) -> Session:
        # Evaluated once, before the game can load anything.
        threshold = self.effective_threshold(info, threshold_override)
        granted = self.is_sysop_authorized(info, threshold)
        save_path = self.ensure_save_path(info)

        logger.info(
            f"Player '{info.player_name}' on '{info.bbs_name}' node {info.node_number}: "
            f"security {info.security_level}, SysOp threshold {threshold}, granted={granted}"
        )
        logger.debug(f"Save path: {save_path}")

        return Session(
            info=info,
            transport=transport,
            terminal=terminal,
            save_path=save_path,
            character_name=self.lock_character_name(info),
            sysop_console_granted=granted,
            sysop_threshold=threshold,
        )

    # === Administration ===

    def list_player_saves(self, info: SessionInfo) -> List[str]:
        """Player save directories on this BBS, sorted by name."""
        root = self.bbs_save_root(info)
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_dir())

    def delete_player_save(self, info: SessionInfo, alias: str) -> bool:
        """Delete one player's save on this BBS.

        ``alias`` may be the player's name or a directory name as returned
        by ``list_player_saves``.
        """
        root = self.bbs_save_root(info)
        candidates = [root / alias] if alias in self.list_player_saves(info) else []
        candidates.append(self.resolve_save_path(info, alias))

        for path in candidates:
            if path.is_dir() and path.parent == root:
                shutil.rmtree(path)
                logger.warning(f"Deleted save {path}")
                return True
        return False

    def wipe_saves(self, info: SessionInfo) -> int:
        """Delete every player save on this BBS. Other BBSes are untouched."""
        names = self.list_player_saves(info)
        root = self.bbs_save_root(info)
        for name in names:
            shutil.rmtree(root / name)
        logger.warning(f"Wiped {len(names)} saves for '{info.bbs_name}'")
        return len(names)
