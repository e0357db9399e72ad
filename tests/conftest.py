"""
Shared fixtures for the door tests.
"""

from pathlib import Path
from typing import List, Optional

import pytest

from bbsdoor.app.exceptions import ConnectionClosedError
from bbsdoor.app.transport.base import Transport, TransportCapabilities, TransportKind
from bbsdoor.app.utils import config as config_module
from bbsdoor.app.utils.config import Config


def door32_lines(
    comm_type: str = "2",
    handle: str = "1234",
    bbs_name: str = "Synchronet BBS",
    alias: str = "DarkKnight",
    security: str = "110",
    emulation: str = "1",
    node: str = "3",
) -> List[str]:
    return [
        comm_type,
        handle,
        "38400",
        bbs_name,
        "42",
        "John Smith",
        alias,
        security,
        "60",
        emulation,
        node,
    ]


def doorsys_lines(port: str = "COM0:", count: int = 52) -> List[str]:
    lines = [f"filler{i}" for i in range(1, count + 1)]
    values = {
        1: port,
        2: "19200",
        4: "2",
        10: "Jane Doe",
        11: "Springfield, IL",
        16: "50",
        20: "45",
        21: "GR",
        22: "25",
        26: "17",
        36: "The Sysop",
        37: "JaneAlias",
    }
    for position, value in values.items():
        if position <= count:
            lines[position - 1] = value
    return lines


def write_lines(path: Path, lines: List[str]) -> Path:
    text = "\r\n".join(lines) + "\r\n" if lines else ""
    path.write_bytes(text.encode("latin-1"))
    return path


class FakeTransport(Transport):
    """In-memory transport: scripted input, captured output."""

    kind = TransportKind.LOCAL

    def __init__(
        self,
        incoming: bytes = b"",
        capabilities: Optional[TransportCapabilities] = None,
        fail_writes: int = 0,
        available: Optional[bool] = None,
    ):
        super().__init__(capabilities or TransportCapabilities())
        self.incoming = bytearray(incoming)
        self.output = bytearray()
        self.fail_writes = fail_writes
        self.write_attempts = 0
        self.available = available

    async def read(self, n: int = 1) -> bytes:
        if not self.incoming:
            raise ConnectionClosedError("end of scripted input")
        data = bytes(self.incoming[:n])
        del self.incoming[:n]
        return data

    async def write(self, data: bytes) -> None:
        self.write_attempts += 1
        if self.fail_writes:
            self.fail_writes -= 1
            raise BrokenPipeError("scripted write failure")
        self.output += data

    def data_available(self) -> Optional[bool]:
        return self.available

    async def close(self) -> None:
        self._closed = True

    @property
    def text(self) -> str:
        return self.output.decode("latin-1")


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test starts without a cached configuration."""
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture
def config(tmp_path) -> Config:
    cfg = Config()
    cfg.paths.save_root = str(tmp_path / "saves")
    cfg.paths.config_dir = str(tmp_path / "config")
    return cfg
