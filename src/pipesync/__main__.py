"""
pipesync command line.

Usage:
    python -m pipesync init
    python -m pipesync add <name> --config '<json>' | --config-file <path>
    python -m pipesync update <name> --config '<json>' | --config-file <path>
    python -m pipesync list
    python -m pipesync show <name>
    python -m pipesync pull [name] [--full] [-o stdout|db] [-v]
    python -m pipesync status
    python -m pipesync watch [--interval 30m] [-o stdout|db]
    python -m pipesync remove <name>
    python -m pipesync serve [--host 127.0.0.1] [--port 8000]

Synced records go to stdout (NDJSON) with `-o stdout`; everything meant for
humans goes to stderr so the two can be piped separately.
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

logger = logging.getLogger(__name__)

STATUS_LABELS = {"completed": "OK", "error": "ERR", "running": "RUN"}


def _say(message: str = "") -> None:
    print(message, file=sys.stderr)


def _fail(message: str) -> None:
    _say(message)
    sys.exit(1)


def _read_mapping(name: str, args: argparse.Namespace):
    from pipesync.models.mapping import SyncMapping

    if not args.config_file and not args.config:
        _fail("Provide --config or --config-file")

    try:
        raw = Path(args.config_file).read_text() if args.config_file else args.config
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")
        payload["name"] = name
        return SyncMapping.model_validate(payload)
    except OSError as exc:
        _fail(f"Cannot read config file: {exc}")
    except (ValueError, ValidationError) as exc:
        _fail(f"Invalid mapping config: {exc}")


# ─── Commands ─────────────────────────────────────────────────────────────────

def _cmd_init(args: argparse.Namespace) -> None:
    from pipesync.config import get_settings
    from pipesync.db.engine import get_engine

    settings = get_settings()
    get_engine()
    _say(f"Initialized {settings.database_url}")
    if settings.pica_secret_key:
        _say("Pica key: configured")
    else:
        _say("Note: set PICA_SECRET_KEY in the environment or .env")
    _say("\nNext: python -m pipesync add <name> --config '<json>'")


def _cmd_add(args: argparse.Namespace) -> None:
    from pipesync.db.engine import get_engine
    from pipesync.db.store import save_mapping

    mapping = _read_mapping(args.name, args)
    save_mapping(get_engine(), mapping)
    _say(f"Added sync mapping: {mapping.name}")
    _say(f"  Platform: {mapping.platform}")
    _say(f"  Record type: {mapping.record.type}")
    _say(f"  Pagination: {mapping.pagination.type.value}")
    _say(f"\nRun: python -m pipesync pull {mapping.name}")


def _cmd_update(args: argparse.Namespace) -> None:
    from pipesync.db.engine import get_engine
    from pipesync.db.store import MappingNotFoundError, get_mapping, save_mapping

    engine = get_engine()
    try:
        get_mapping(engine, args.name)
    except MappingNotFoundError as exc:
        _fail(str(exc))
    save_mapping(engine, _read_mapping(args.name, args))
    _say(f"Updated sync mapping: {args.name}")


def _cmd_list(args: argparse.Namespace) -> None:
    from pipesync.db.engine import get_engine
    from pipesync.db.store import list_mappings, load_mapping, load_state

    engine = get_engine()
    names = list_mappings(engine)
    if not names:
        _say("No sync mappings configured.")
        _say("Run: python -m pipesync add <name> --config '<json>'")
        return

    _say("Sync Mappings:\n")
    for name in names:
        mapping = load_mapping(engine, name)
        state = load_state(engine, name)
        label = STATUS_LABELS.get(state.status, "--")
        _say(f"  {label:<3} {name} ({mapping.platform}) -> {mapping.record.type}")
        if state.last_sync_at:
            _say(f"      Last sync: {state.last_sync_at} | Total: {state.total_synced} records")
    _say(f"\n{len(names)} mappings")


def _print_state(state, indent: str = "  ") -> None:
    _say(f"{indent}Status:    {state.status}")
    _say(f"{indent}Last sync: {state.last_sync_at or 'never'}")
    _say(f"{indent}Total:     {state.total_synced} records")
    _say(f"{indent}Last run:  {state.last_run_records} records")
    if state.last_error:
        _say(f"{indent}Error:     {state.last_error}")


def _cmd_show(args: argparse.Namespace) -> None:
    from pipesync.db.engine import get_engine
    from pipesync.db.store import MappingNotFoundError, get_mapping, load_state

    engine = get_engine()
    try:
        mapping = get_mapping(engine, args.name)
    except MappingNotFoundError as exc:
        _fail(str(exc))
    state = load_state(engine, args.name)

    _say(f"{mapping.name}\n")
    _say(f"Platform:    {mapping.platform}")
    _say(f"Connection:  {mapping.connection_key}")
    _say(f"Action:      {mapping.action_id}")
    _say(f"Record type: {mapping.record.type}")
    _say(f"Pagination:  {mapping.pagination.type.value}")
    _say(f"External:    {mapping.external_ref.system}")
    if mapping.incremental:
        _say(f"Incremental: {mapping.incremental.type.value}")

    _say("\nState:")
    _print_state(state)

    _say("\nMapping:")
    for target, source in mapping.record.mapping.items():
        _say(f"  {target} <- {source}")


def _cmd_status(args: argparse.Namespace) -> None:
    from pipesync.db.engine import get_engine
    from pipesync.db.store import list_mappings, load_state

    engine = get_engine()
    names = list_mappings(engine)
    if not names:
        _say("No sync mappings configured.")
        return

    _say("Sync Status:\n")
    for name in names:
        _say(name)
        _print_state(load_state(engine, name))
        _say()


def _cmd_remove(args: argparse.Namespace) -> None:
    from pipesync.db.engine import get_engine
    from pipesync.db.store import remove_mapping

    if not remove_mapping(get_engine(), args.name):
        _fail(f"Mapping not found: {args.name}")
    _say(f"Removed: {args.name}")


async def _pull(names: Optional[List[str]], full: bool, output_name: str) -> int:
    from pipesync.db.engine import get_engine
    from pipesync.outputs.factory import create_output
    from pipesync.sync.runner import pull_mappings

    engine = get_engine()
    output = create_output(output_name, engine)
    results = await pull_mappings(engine, output, names=names, full=full)
    if not results:
        _say("No sync mappings to pull.")
        return 0

    failed = 0
    for result in results:
        summary = f"{result.new} new, {result.updated} updated, {result.errors} errors ({result.duration})"
        if result.status == "completed":
            _say(f"{result.name}: Done: {summary}")
        else:
            failed += 1
            _say(f"{result.name}: Error: {result.error}")
            _say(f"  Partial: {summary}")
    return 1 if failed else 0


def _cmd_pull(args: argparse.Namespace) -> None:
    from pipesync.pica.client import MissingSecretKeyError

    names = [args.name] if args.name else None
    try:
        code = asyncio.run(_pull(names, args.full, args.output))
    except (MissingSecretKeyError, ValueError) as exc:
        _fail(str(exc))
    sys.exit(code)


async def _watch(interval: str, output_name: str) -> None:
    from pipesync.db.engine import get_engine
    from pipesync.outputs.factory import create_output
    from pipesync.scheduler.jobs import build_scheduler

    engine = get_engine()
    scheduler = build_scheduler(engine, create_output(output_name, engine), interval)
    scheduler.start()
    logger.info("Watching - syncing every %s. Press Ctrl+C to stop.", interval)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()


def _cmd_watch(args: argparse.Namespace) -> None:
    from pipesync.config import get_settings

    interval = args.interval or get_settings().watch_interval
    try:
        asyncio.run(_watch(interval, args.output))
    except ValueError as exc:
        _fail(str(exc))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    from pipesync.api.main import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)


# ─── Parser ───────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    from pipesync.config import get_settings
    from pipesync.outputs.factory import OUTPUT_NAMES

    default_output = get_settings().default_output

    parser = argparse.ArgumentParser(
        prog="pipesync",
        description="Config-driven data sync through the Pica passthrough API",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the local database").set_defaults(func=_cmd_init)

    for command, func, help_text in (
        ("add", _cmd_add, "Add a sync mapping"),
        ("update", _cmd_update, "Replace a sync mapping"),
    ):
        p = sub.add_parser(command, help=help_text)
        p.add_argument("name")
        p.add_argument("-c", "--config", help="Mapping config as a JSON string")
        p.add_argument("-f", "--config-file", help="Mapping config from a file")
        p.set_defaults(func=func)

    sub.add_parser("list", help="List sync mappings").set_defaults(func=_cmd_list)
    sub.add_parser("status", help="Show sync state for all mappings").set_defaults(func=_cmd_status)

    p = sub.add_parser("show", help="Show one sync mapping")
    p.add_argument("name")
    p.set_defaults(func=_cmd_show)

    p = sub.add_parser("remove", help="Remove a sync mapping and its state")
    p.add_argument("name")
    p.set_defaults(func=_cmd_remove)

    p = sub.add_parser("pull", help="Run a sync")
    p.add_argument("name", nargs="?", help="Mapping name (default: all)")
    p.add_argument("--full", action="store_true", help="Ignore incremental state")
    p.add_argument("-o", "--output", choices=OUTPUT_NAMES, default=default_output)
    p.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS)
    p.set_defaults(func=_cmd_pull)

    p = sub.add_parser("watch", help="Sync all mappings on an interval")
    p.add_argument("--interval", help="e.g. 5m, 30m, 1h (default: WATCH_INTERVAL)")
    p.add_argument("-o", "--output", choices=OUTPUT_NAMES, default=default_output)
    p.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS)
    p.set_defaults(func=_cmd_watch)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    args.func(args)


if __name__ == "__main__":
    main()
