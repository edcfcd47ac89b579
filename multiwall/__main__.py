# multiwall/__main__.py

"""
Command line entry point.

    python -m multiwall relay
    python -m multiwall screen --instance shop --position 1 --snapshot data/snapshot.json
    python -m multiwall controller start --instance shop --group main --interval 8
"""

import argparse
import asyncio
import sys
from pathlib import Path

import uvicorn

from multiwall.bases.models import LayoutMode, ScreenIdentity
from multiwall.config import get_config
from multiwall.constants import WALL_SCREEN_MAX_POSITION
from multiwall.controller import WallController
from multiwall.db import JsonFileStore, StorageError, load_snapshot
from multiwall.logger import configure_logging, get_logger
from multiwall.screen import WallScreen, resolve_group
from multiwall.transport import create_transport

log = get_logger(__name__)


def run_relay(host: str, port: int, dev_mode: bool = False) -> None:
    if host.startswith("http"):
        raise ValueError("Host must specify only address without protocol.")
    if ":" in host:
        raise ValueError("Host must not contain a port")

    uvicorn.run(
        "multiwall.server.server:relay_server",
        host=host,
        port=port,
        log_level="info" if dev_mode else "warning",
        workers=1,
        log_config=None,
    )


async def run_screen(args: argparse.Namespace) -> int:
    config = get_config()
    try:
        snapshot = await load_snapshot(args.snapshot)
    except StorageError as e:
        log.error(str(e))
        return 1

    group = resolve_group(snapshot, args.position, args.group)
    if group is None:
        log.error("Snapshot has no content groups")
        return 1

    identity = ScreenIdentity(
        instance_id=args.instance, group_id=group.id, position=args.position
    )
    transport = create_transport(config.transport)
    screen = WallScreen(identity, group, transport, settings=config)
    await screen.start()
    try:
        # runs until interrupted
        await asyncio.Event().wait()
    finally:
        await screen.close()
        await transport.close()
    return 0


async def run_controller(args: argparse.Namespace) -> int:
    config = get_config()
    if config.transport.mode == "local":
        log.warning(
            "Local transport only reaches screens in this process; "
            "set WALL_TRANSPORT_MODE=relay to drive other processes"
        )

    transport = create_transport(config.transport)
    controller = WallController(
        args.instance,
        args.group,
        transport,
        store=JsonFileStore(config.data.dir),
        settings=config,
    )
    await controller.load()

    edits: dict = {}
    if args.interval is not None:
        edits["interval_seconds"] = args.interval
    if args.products_file is not None:
        edits["products"] = Path(args.products_file).read_text(encoding="utf-8")
    if args.layout is not None:
        edits["layout_mode"] = LayoutMode(args.layout)
    if args.production:
        edits["production_mode"] = True

    try:
        ok = True
        if edits:
            ok = await controller.update(**edits)
        action = getattr(controller, args.action)
        ok = await action() and ok
    finally:
        await transport.close()

    log.info(f"Controller {args.action}: {controller.status}")
    return 0 if ok else 1


def _position(value: str) -> int:
    position = int(value)
    if not 0 <= position <= WALL_SCREEN_MAX_POSITION:
        raise argparse.ArgumentTypeError(
            f"position must be between 0 and {WALL_SCREEN_MAX_POSITION}"
        )
    return position


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="multiwall")
    parser.add_argument("--dev", action="store_true", help="debug logging")
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    relay = sub.add_parser("relay", help="run the relay server")
    relay.add_argument("--host", default=None)
    relay.add_argument("--port", type=int, default=None)

    screen = sub.add_parser("screen", help="run a headless screen")
    screen.add_argument("--instance", required=True)
    screen.add_argument("--position", type=_position, default=0)
    screen.add_argument("--group", default=None)
    screen.add_argument("--snapshot", required=True, help="JSON file or http(s) URL")

    controller = sub.add_parser("controller", help="publish one controller action")
    controller.add_argument("action", choices=("start", "stop", "reset"))
    controller.add_argument("--instance", required=True)
    controller.add_argument("--group", required=True)
    controller.add_argument("--interval", type=int, default=None, help="seconds")
    controller.add_argument("--products-file", default=None)
    controller.add_argument("--layout", choices=[m.value for m in LayoutMode], default=None)
    controller.add_argument("--production", action="store_true")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging(
        level="DEBUG" if args.dev or config.dev_mode else config.log_level,
        file_path=args.log_file,
    )

    if args.command == "relay":
        run_relay(
            args.host or config.server.host,
            args.port or config.server.port,
            dev_mode=args.dev or config.dev_mode,
        )
        return 0

    runner = run_screen if args.command == "screen" else run_controller
    try:
        return asyncio.run(runner(args))
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
