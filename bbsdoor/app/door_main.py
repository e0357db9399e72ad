#!/usr/bin/env python3
"""
Door entry point.

The BBS launches one process per caller, for example in a Synchronet or
Mystic door configuration:
    bbsdoor --door32 %f
    bbsdoor --doorsys /bbs/node%n/DOOR.SYS --fossil COM1
    bbsdoor --node-dir /sbbs/node1

Exit codes follow sysexits(3) so host logs say what went wrong:
    0   normal exit
    64  usage error (no drop file given)
    69  no transport could be brought up
    70  the game failed; an emergency save was attempted
    74  caller hung up
    78  configuration or drop file error
"""

import argparse
import asyncio
import dataclasses
import signal
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from .dropfile import DropFileParser, DropFileType, SessionInfo, find_drop_file
from .encoding import encoder_for
from .exceptions import (
    ConfigurationError,
    ConnectionClosedError,
    DropFileError,
    TransportExhaustedError,
)
from .session import SessionManager, TerminalAdapter
from .transport import TransportFlags, open_transport
from .ui.door_lobby import DoorLobby, resolve_entry_point
from .utils.config import Config, load_config
from .utils.logger import get_logger, setup_logging

EXIT_OK = 0
EXIT_USAGE = 64
EXIT_UNAVAILABLE = 69
EXIT_SOFTWARE = 70
EXIT_IOERR = 74
EXIT_CONFIG = 78

logger = get_logger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bbsdoor",
        description="Run the game as a BBS door.",
    )

    drop = parser.add_argument_group("drop file")
    drop.add_argument("--door", "-d", metavar="PATH", help="drop file or directory (auto-detect)")
    drop.add_argument("--door32", metavar="PATH", help="load DOOR32.SYS explicitly")
    drop.add_argument("--doorsys", metavar="PATH", help="load DOOR.SYS explicitly")
    drop.add_argument("--node-dir", "-n", metavar="DIR", help="search a node directory for drop files")
    drop.add_argument("--node", type=int, metavar="N", help="node number for per-node lookup")
    drop.add_argument("--local", "-l", action="store_true", help="local play, no BBS connection")

    transport = parser.add_argument_group("transport")
    transport.add_argument("--force", metavar="KIND", help="socket | stdio | local | serial:<port>")
    transport.add_argument("--stdio", action="store_true", help="same as --force stdio")
    transport.add_argument("--fossil", "--com", metavar="PORT", help="same as --force serial:PORT")

    parser.add_argument("--sysop-level", type=int, metavar="N", help="set and persist the SysOp security threshold")
    parser.add_argument("--bbs-name", metavar="NAME", help="override the BBS name from the drop file")
    parser.add_argument("--config", metavar="PATH", help="TOML configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="echo drop file and transport diagnostics")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> Tuple[argparse.Namespace, List[str]]:
    """Parse known flags; anything else is returned for a warning."""
    return build_parser().parse_known_args(argv)


def has_drop_source(args: argparse.Namespace) -> bool:
    return bool(args.local or args.door or args.door32 or args.doorsys or args.node_dir)


def transport_flags(args: argparse.Namespace) -> TransportFlags:
    if args.force:
        return TransportFlags.parse_force(args.force)
    if args.fossil:
        return TransportFlags.parse_force(f"serial:{args.fossil}")
    if args.stdio:
        return TransportFlags.parse_force("stdio")
    if args.local:
        return TransportFlags.parse_force("local")
    return TransportFlags()


def load_session_info(args: argparse.Namespace) -> SessionInfo:
    """SessionInfo from whichever drop file flag was given."""
    parser = DropFileParser(verbose=args.verbose)

    if args.door32:
        info = parser.parse(args.door32, DropFileType.DOOR32, args.node)
    elif args.doorsys:
        info = parser.parse(args.doorsys, DropFileType.DOORSYS, args.node)
    elif args.door:
        info = parser.parse(args.door, node=args.node)
    elif args.node_dir:
        found = find_drop_file(args.node_dir, args.node)
        if found is None:
            raise DropFileError(f"No drop file found in {args.node_dir}", path=args.node_dir)
        info = parser.parse(found, node=args.node)
    else:
        info = parser.create_local_session()

    if args.bbs_name:
        info = dataclasses.replace(info, bbs_name=args.bbs_name)
    return info


async def run_door(args: argparse.Namespace, info: SessionInfo, flags: TransportFlags, config: Config) -> int:
    """Bring up the transport and run the lobby. Returns the exit code."""
    entry = resolve_entry_point(config.game.entry_point)

    try:
        transport, _ = await open_transport(info, flags, config)
    except TransportExhaustedError as e:
        logger.error(str(e))
        return EXIT_UNAVAILABLE

    encoder = encoder_for(
        transport.capabilities,
        legacy_encoding=config.charset.legacy_encoding,
        force_utf8=config.charset.force_utf8,
        color_allowed=info.color_enabled,
    )
    terminal = TerminalAdapter(
        transport,
        encoder,
        write_retries=config.transport.write_retries,
        rows=info.screen_height,
    )
    manager = SessionManager(config)

    try:
        session = manager.build_session(info, transport, terminal, args.sysop_level)
    except (ConfigurationError, OSError) as e:
        logger.error(f"Cannot set up session: {e}")
        await transport.close()
        return EXIT_CONFIG

    session.activate()
    hangup = asyncio.Event()

    def on_hangup(sig: signal.Signals) -> None:
        logger.warning(f"Received {sig.name}, treating as connection loss")
        session.mark_connection_lost()
        hangup.set()

    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGHUP, signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, on_hangup, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            pass

    lobby_task = asyncio.create_task(DoorLobby(session, manager, entry).run())
    hangup_task = asyncio.create_task(hangup.wait())

    code = EXIT_OK
    try:
        done, pending = await asyncio.wait(
            [lobby_task, hangup_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except ConnectionClosedError:
                session.mark_connection_lost()

        if lobby_task in done:
            try:
                lobby_task.result()
            except ConnectionClosedError as e:
                logger.warning(f"Connection lost: {e}")
                session.mark_connection_lost()
            except Exception as e:
                logger.error(f"Game ended with an error: {e}", exc_info=True)
                await session.run_emergency_save()
                code = EXIT_SOFTWARE

        if hangup.is_set() or not session.is_active:
            await session.run_emergency_save()
            code = EXIT_IOERR
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await session.close()

    return code


def main(argv: Optional[List[str]] = None) -> None:
    """Console script entry point."""
    args, unknown = parse_args(argv)

    if args.config and not Path(args.config).exists():
        print(f"Configuration error: {args.config} not found", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    try:
        config = load_config(args.config)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    setup_logging(verbose=args.verbose)

    for flag in unknown:
        logger.warning(f"Ignoring unknown argument: {flag}")

    if not has_drop_source(args):
        build_parser().print_usage(sys.stderr)
        print("bbsdoor: give a drop file (--door, --door32, --doorsys, --node-dir) or --local",
              file=sys.stderr)
        sys.exit(EXIT_USAGE)

    try:
        flags = transport_flags(args)
    except ValueError as e:
        print(f"bbsdoor: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    try:
        info = load_session_info(args)
    except DropFileError as e:
        logger.error(str(e))
        sys.exit(EXIT_CONFIG)

    try:
        code = asyncio.run(run_door(args, info, flags, config))
    except ConfigurationError as e:
        logger.error(str(e))
        code = EXIT_CONFIG
    except KeyboardInterrupt:
        code = EXIT_IOERR
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
