"""
Transport selection and fallback.

``plan`` is a pure function of the session info and the command line
flags: it returns the ordered, duplicate-free list of transports worth
trying. ``open_transport`` walks that list with explicit attempt results,
so a failed kind is never retried and the next one is always the one
below it. Only the local console failing is fatal.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from ..dropfile import CommType, SessionInfo
from ..exceptions import TransportExhaustedError, TransportInitError
from ..utils.config import Config, get_config
from ..utils.logger import get_logger
from .base import Transport, TransportKind

logger = get_logger("transport.factory")


@dataclass(frozen=True)
class TransportFlags:
    """Command line transport overrides."""

    force: Optional[TransportKind] = None
    serial_port: Optional[str] = None

    @classmethod
    def parse_force(cls, value: Optional[str]) -> "TransportFlags":
        """Parse ``socket``, ``stdio``, ``local`` or ``serial:<port>``."""
        if not value:
            return cls()
        kind, _, port = value.partition(":")
        kind = kind.strip().lower()
        if kind in ("serial", "fossil", "com"):
            return cls(force=TransportKind.SERIAL, serial_port=port.strip().upper() or None)
        try:
            return cls(force=TransportKind(kind))
        except ValueError:
            raise ValueError(f"Unknown transport: {value}") from None


@dataclass
class AttemptResult:
    kind: TransportKind
    transport: Optional[Transport] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.transport is not None


def is_stdio_host(bbs_name: str, stdio_hosts: Iterable[str]) -> bool:
    name = (bbs_name or "").lower()
    return any(host.strip() and host.strip().lower() in name for host in stdio_hosts)


def plan(
    info: SessionInfo,
    flags: Optional[TransportFlags] = None,
    stdio_hosts: Optional[Iterable[str]] = None,
) -> List[TransportKind]:
    """Ordered transports to try for this session, local console last."""
    flags = flags or TransportFlags()
    if stdio_hosts is None:
        stdio_hosts = get_config().transport.stdio_hosts

    kinds: List[TransportKind] = []
    if flags.force is not None:
        kinds.append(flags.force)
    if info.comm_type != CommType.LOCAL and is_stdio_host(info.bbs_name, stdio_hosts):
        kinds.append(TransportKind.STDIO)
    if info.comm_type == CommType.TELNET and info.socket_handle:
        kinds.append(TransportKind.SOCKET)
    if info.comm_type == CommType.SERIAL and info.com_port:
        kinds.append(TransportKind.SERIAL)
    kinds.append(TransportKind.LOCAL)

    ordered: List[TransportKind] = []
    for kind in kinds:
        if kind not in ordered:
            ordered.append(kind)
    return ordered


def select(
    info: SessionInfo,
    flags: Optional[TransportFlags] = None,
    stdio_hosts: Optional[Iterable[str]] = None,
) -> TransportKind:
    return plan(info, flags, stdio_hosts)[0]


Builder = Callable[[SessionInfo, TransportFlags, Config], Awaitable[Transport]]


async def _build_stdio(info: SessionInfo, flags: TransportFlags, config: Config) -> Transport:
    from .stdio_transport import StdioTransport
    return await StdioTransport.open()


async def _build_socket(info: SessionInfo, flags: TransportFlags, config: Config) -> Transport:
    from .socket_transport import SocketTransport
    return await SocketTransport.open(info.socket_handle)


async def _build_serial(info: SessionInfo, flags: TransportFlags, config: Config) -> Transport:
    from .serial_transport import SerialTransport
    return await SerialTransport.open(
        flags.serial_port or info.com_port,
        info.baud_rate or config.serial.default_baud,
        aliases=config.serial.port_aliases,
        read_timeout=config.serial.read_timeout,
    )


async def _build_local(info: SessionInfo, flags: TransportFlags, config: Config) -> Transport:
    from .local_transport import LocalConsoleTransport
    return await LocalConsoleTransport.open()


DEFAULT_BUILDERS: Dict[TransportKind, Builder] = {
    TransportKind.STDIO: _build_stdio,
    TransportKind.SOCKET: _build_socket,
    TransportKind.SERIAL: _build_serial,
    TransportKind.LOCAL: _build_local,
}


async def attempt(
    kind: TransportKind,
    info: SessionInfo,
    flags: TransportFlags,
    config: Config,
    builders: Dict[TransportKind, Builder],
) -> AttemptResult:
    try:
        transport = await builders[kind](info, flags, config)
    except (TransportInitError, OSError) as e:
        return AttemptResult(kind=kind, error=e)
    return AttemptResult(kind=kind, transport=transport)


async def open_transport(
    info: SessionInfo,
    flags: Optional[TransportFlags] = None,
    config: Optional[Config] = None,
    builders: Optional[Dict[TransportKind, Builder]] = None,
) -> Tuple[Transport, List[AttemptResult]]:
    """Bring up the first transport in the plan that initialises."""
    flags = flags or TransportFlags()
    config = config or get_config()
    builders = {**DEFAULT_BUILDERS, **(builders or {})}

    kinds = plan(info, flags, config.transport.stdio_hosts)
    logger.info(f"Transport plan: {' -> '.join(k.value for k in kinds)}")

    attempts: List[AttemptResult] = []
    for index, kind in enumerate(kinds):
        result = await attempt(kind, info, flags, config, builders)
        attempts.append(result)
        if result.ok:
            logger.info(f"Using {result.transport.describe()} transport")
            return result.transport, attempts

        if index + 1 < len(kinds):
            logger.warning(
                f"{kind.value} transport failed ({result.error}); "
                f"falling back to {kinds[index + 1].value}"
            )
        else:
            logger.error(f"{kind.value} transport failed ({result.error})")

    raise TransportExhaustedError(
        "No transport could be initialised: "
        + "; ".join(f"{a.kind.value}: {a.error}" for a in attempts)
    )
