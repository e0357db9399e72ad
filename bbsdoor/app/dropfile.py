"""
Drop file parsing.

A BBS host writes a small positional text file before launching a door,
describing the caller and the connection. Two layouts are understood:

- DOOR32.SYS: 11 lines, one field per line, carries a socket handle.
- DOOR.SYS: up to 52 lines, legacy layout, names a COM port instead.
"""

import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import chardet

from .exceptions import DropFileError
from .utils.logger import get_logger

logger = get_logger("dropfile")

DOOR32_NAME = "door32.sys"
DOORSYS_NAME = "door.sys"

DOOR32_LINES = 11
# DOOR.SYS positions the door depends on (1-based)
DOORSYS_REQUIRED = (1, 4, 10, 16, 20, 21, 26)
DOORSYS_EXTENDED_LINES = 52


class CommType(Enum):
    """How the caller is connected to the host."""

    LOCAL = 0
    SERIAL = 1
    TELNET = 2


class Emulation(Enum):
    """Terminal emulation announced by the host."""

    ASCII = 0
    ANSI = 1
    AVATAR = 2
    RIP = 3


class DropFileType(Enum):
    NONE = "none"
    DOOR32 = "door32"
    DOORSYS = "doorsys"


@dataclass(frozen=True)
class SessionInfo:
    """Caller and connection details from a drop file.

    Immutable: command line overrides produce a new instance with
    ``dataclasses.replace`` before the session is built.
    """

    comm_type: CommType = CommType.LOCAL
    socket_handle: Optional[int] = None
    com_port: Optional[str] = None
    baud_rate: int = 0
    bbs_name: str = ""
    user_record_number: int = 0
    real_name: str = "Player"
    alias: str = "Player"
    security_level: int = 0
    time_remaining_minutes: int = 60
    emulation: Emulation = Emulation.ANSI
    node_number: int = 1
    location: str = ""
    sysop_name: str = ""
    screen_height: int = 24
    source_type: DropFileType = DropFileType.NONE
    source_path: Optional[Path] = None
    raw_lines: Tuple[str, ...] = field(default=(), repr=False)

    @property
    def is_door_mode(self) -> bool:
        return self.source_type != DropFileType.NONE

    @property
    def color_enabled(self) -> bool:
        return self.emulation != Emulation.ASCII

    @property
    def player_name(self) -> str:
        """Alias if present, else real name."""
        for name in (self.alias, self.real_name):
            if name and name.strip():
                return name.strip()
        return "Player"


def _to_int(value: str) -> int:
    """Numeric drop file field; garbage reads as 0."""
    try:
        return int(value.strip())
    except ValueError:
        return 0


def _decode(data: bytes) -> str:
    """Decode drop file bytes. Hosts write ASCII or Latin-1."""
    if not data:
        return ""
    detected = chardet.detect(data) or {}
    encoding = (detected.get("encoding") or "").lower()
    if encoding in ("ascii", "utf-8", "utf-8-sig"):
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            pass
    return data.decode("latin-1")


def _read_lines(path: Path) -> list[str]:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DropFileError(f"Cannot read drop file {path}: {e}", path=str(path)) from e
    return _decode(data).splitlines()


def _find_ci(directory: Path, name: str) -> Optional[Path]:
    """Case-insensitive lookup of ``name`` inside ``directory``."""
    try:
        entries = os.listdir(directory)
    except OSError:
        return None
    for entry in sorted(entries):
        if entry.lower() == name.lower():
            return directory / entry
    return None


def find_drop_file(directory: Union[str, Path], node: Optional[int] = None) -> Optional[Path]:
    """Search a directory (and its ``node<N>`` subdirectory) for a drop file.

    DOOR32.SYS is preferred over DOOR.SYS. Returns None when nothing is found.
    """
    directory = Path(directory)
    search = [directory]
    if node is not None:
        node_dir = _find_ci(directory, f"node{node}")
        if node_dir is not None and node_dir.is_dir():
            search.append(node_dir)

    for folder in search:
        for name in (DOOR32_NAME, DOORSYS_NAME):
            found = _find_ci(folder, name)
            if found is not None and found.is_file():
                return found
    return None


def _coerce_hint(format_hint: Union[None, str, DropFileType]) -> Optional[DropFileType]:
    if format_hint is None or isinstance(format_hint, DropFileType):
        return format_hint
    hint = format_hint.strip().lower()
    if hint in ("door32", DOOR32_NAME):
        return DropFileType.DOOR32
    if hint in ("doorsys", DOORSYS_NAME, "door"):
        return DropFileType.DOORSYS
    raise DropFileError(f"Unknown drop file format: {format_hint}")


def detect_format(path: Path, lines: Sequence[str]) -> Optional[DropFileType]:
    """Guess the layout from the file name, then from the content."""
    name = path.name.lower()
    if name == DOOR32_NAME:
        return DropFileType.DOOR32
    if name == DOORSYS_NAME:
        return DropFileType.DOORSYS

    if DOOR32_LINES <= len(lines) <= 15 and lines[0].strip() in ("0", "1", "2"):
        return DropFileType.DOOR32
    if len(lines) >= DOORSYS_REQUIRED[-1] and lines[0].strip().upper().startswith("COM"):
        return DropFileType.DOORSYS
    return None


class DropFileParser:
    """Turns a drop file into a SessionInfo."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def parse(
        self,
        path: Union[str, Path],
        format_hint: Union[None, str, DropFileType] = None,
        node: Optional[int] = None,
    ) -> SessionInfo:
        path = Path(path)
        hint = _coerce_hint(format_hint)

        if path.is_dir():
            found = find_drop_file(path, node)
            if found is None:
                raise DropFileError(
                    f"No {DOOR32_NAME.upper()} or {DOORSYS_NAME.upper()} found in {path}",
                    path=str(path),
                )
            path = found
        elif not path.exists():
            # Hosts disagree on the case of the canonical names
            found = _find_ci(path.parent, path.name)
            if found is None:
                raise DropFileError(f"Drop file not found: {path}", path=str(path))
            path = found

        lines = _read_lines(path)
        if self.verbose:
            self._dump_lines(path, lines)

        file_type = hint or detect_format(path, lines)
        if file_type == DropFileType.DOOR32:
            info = self._parse_door32(path, lines)
        elif file_type == DropFileType.DOORSYS:
            info = self._parse_doorsys(path, lines)
        else:
            raise DropFileError(f"Unrecognised drop file format: {path}", path=str(path))

        if self.verbose:
            self._dump_fields(info)
        logger.info(f"Loaded {info.source_type.name} from {path}")
        return info

    def _parse_door32(self, path: Path, lines: Sequence[str]) -> SessionInfo:
        if len(lines) < DOOR32_LINES:
            missing = len(lines) + 1
            raise DropFileError(
                f"DOOR32.SYS has {len(lines)} lines, expected {DOOR32_LINES} "
                f"(line {missing} missing)",
                path=str(path),
                missing_line=missing,
            )

        raw_comm = lines[0].strip()
        try:
            comm_type = CommType(int(raw_comm))
        except ValueError:
            raise DropFileError(
                f"DOOR32.SYS line 1: invalid comm type {raw_comm!r}", path=str(path)
            )

        handle = _to_int(lines[1])
        emulation_code = _to_int(lines[9])
        # 4 is "max graphics", an ANSI superset
        if emulation_code == 4:
            emulation = Emulation.ANSI
        elif 0 <= emulation_code <= 3:
            emulation = Emulation(emulation_code)
        else:
            emulation = Emulation.ASCII

        return SessionInfo(
            comm_type=comm_type,
            socket_handle=handle if comm_type == CommType.TELNET else None,
            baud_rate=_to_int(lines[2]),
            bbs_name=lines[3].strip(),
            user_record_number=_to_int(lines[4]),
            real_name=lines[5].strip(),
            alias=lines[6].strip(),
            security_level=_to_int(lines[7]),
            time_remaining_minutes=_to_int(lines[8]),
            emulation=emulation,
            node_number=_to_int(lines[10]),
            source_type=DropFileType.DOOR32,
            source_path=path,
            raw_lines=tuple(lines),
        )

    def _parse_doorsys(self, path: Path, lines: Sequence[str]) -> SessionInfo:
        for position in DOORSYS_REQUIRED:
            if position > len(lines):
                raise DropFileError(
                    f"DOOR.SYS has {len(lines)} lines, required line {position} missing",
                    path=str(path),
                    missing_line=position,
                )

        comm_type, com_port = self._parse_port(path, lines[0])

        def line(n: int) -> str:
            return lines[n - 1].strip()

        graphics = line(21).upper()
        graphics_enabled = graphics == "GR" or "GRAPH" in graphics
        page_length = _to_int(line(22)) if len(lines) >= 22 else 0

        real_name = line(10)
        alias = real_name
        sysop_name = ""
        if len(lines) >= DOORSYS_EXTENDED_LINES:
            sysop_name = line(36)
            alias = line(37) or real_name

        return SessionInfo(
            comm_type=comm_type,
            com_port=com_port,
            baud_rate=_to_int(line(2)),
            node_number=_to_int(line(4)),
            real_name=real_name,
            alias=alias,
            location=line(11),
            security_level=_to_int(line(16)),
            time_remaining_minutes=_to_int(line(20)),
            emulation=Emulation.ANSI if graphics_enabled else Emulation.ASCII,
            screen_height=page_length if page_length > 0 else 24,
            user_record_number=_to_int(line(26)),
            sysop_name=sysop_name,
            source_type=DropFileType.DOORSYS,
            source_path=path,
            raw_lines=tuple(lines),
        )

    @staticmethod
    def _parse_port(path: Path, raw: str) -> Tuple[CommType, Optional[str]]:
        """DOOR.SYS line 1: ``COM0:`` is local, ``COMn:`` a serial port."""
        value = raw.strip().upper().rstrip(":")
        digits = value[3:] if value.startswith("COM") else value
        if not digits.isdigit():
            raise DropFileError(f"DOOR.SYS line 1: invalid port {raw.strip()!r}", path=str(path))
        port = int(digits)
        if port == 0:
            return CommType.LOCAL, None
        return CommType.SERIAL, f"COM{port}"

    def _dump_lines(self, path: Path, lines: Sequence[str]) -> None:
        logger.info(f"=== RAW DROP FILE CONTENTS: {path} ===")
        for number, text in enumerate(lines, start=1):
            logger.info(f"Line {number}: {text}")
        logger.info("=== END DROP FILE ===")

    def _dump_fields(self, info: SessionInfo) -> None:
        for name, value in asdict(info).items():
            if name == "raw_lines":
                continue
            if isinstance(value, Enum):
                value = value.name
            logger.info(f"  {name}: {value}")

    @staticmethod
    def create_local_session(player_name: str = "Player") -> SessionInfo:
        """Session for ``--local`` play without a host."""
        return SessionInfo(
            comm_type=CommType.LOCAL,
            bbs_name="Local",
            real_name=player_name,
            alias=player_name,
            security_level=0,
            time_remaining_minutes=24 * 60,
            emulation=Emulation.ANSI,
            source_type=DropFileType.NONE,
        )


def parse_drop_file(
    path: Union[str, Path],
    format_hint: Union[None, str, DropFileType] = None,
    verbose: bool = False,
    node: Optional[int] = None,
) -> SessionInfo:
    return DropFileParser(verbose=verbose).parse(path, format_hint, node)
