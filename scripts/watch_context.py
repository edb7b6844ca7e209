#!/usr/bin/env python3
"""Run one pygsds context and print record changes and notices.

Start two instances against the same ``--storage`` file (or the same MQTT
broker) to watch edits and period notices propagate between them:

    python scripts/watch_context.py --storage /tmp/gsds.json --set tryout_id=T-2025
    python scripts/watch_context.py --storage /tmp/gsds.json
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pygsds import AppContext, GsdsConfig, format_banner  # noqa: E402
from pygsds.exceptions import GsdsError  # noqa: E402

_LOG = logging.getLogger("watch_context")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Watch the shared tryout/game context of one origin.",
    )
    parser.add_argument(
        "--storage",
        type=Path,
        default=None,
        help="JSON file shared by every context of the origin (default: GSDS_STORAGE_PATH or memory).",
    )
    parser.add_argument(
        "--api-base",
        default=None,
        help="Remote authority endpoint (default: GSDS_API_BASE / API_BASE).",
    )
    parser.add_argument(
        "--server",
        action="store_true",
        help="Enable polling and pushing against the authority.",
    )
    parser.add_argument(
        "--poll-ms",
        type=int,
        default=None,
        help="Poll interval in milliseconds (minimum 300).",
    )
    parser.add_argument(
        "--mqtt-host",
        default=None,
        help="MQTT broker for cross-process fan-out.",
    )
    parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="FIELD=VALUE",
        help="Merge a field into the record after startup (repeatable).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _parse_assignments(items: list[str]) -> dict[str, str]:
    partial: dict[str, str] = {}
    for item in items:
        field, sep, value = item.partition("=")
        if not sep or not field.strip():
            raise SystemExit(f"--set expects FIELD=VALUE, got {item!r}")
        partial[field.strip()] = value.strip()
    return partial


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.storage is not None:
        overrides["storage_path"] = args.storage
    if args.api_base is not None:
        overrides["api_base"] = args.api_base.strip()
    if args.server:
        overrides["server_sync"] = True
    if args.poll_ms is not None:
        overrides["poll_ms"] = args.poll_ms
    if args.mqtt_host is not None:
        overrides["mqtt_host"] = args.mqtt_host

    try:
        config = GsdsConfig.from_env(**overrides)
    except GsdsError as exc:
        print(f"[watch] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    async with AppContext(config) as ctx:
        print(f"[watch] context {ctx.context_id} tz={config.time_zone} remote={config.remote_enabled}")

        def on_record(record: dict[str, Any]) -> None:
            stamp = time.strftime("%H:%M:%S")
            print(f"[watch] {stamp} {format_banner(record)} (updated_at={record.get('updated_at', 0)})")

        def on_notice(text: str, visible: bool) -> None:
            if visible:
                print(f"[notice] {text}")

        ctx.store.subscribe(on_record)
        ctx.notices.bar.add_renderer(on_notice)

        partial = _parse_assignments(args.set)
        if partial:
            ctx.store.merge(partial)

        timeout = args.duration if args.duration > 0 else None
        try:
            await asyncio.wait_for(stop.wait(), timeout=timeout)
        except TimeoutError:
            _LOG.debug("Duration elapsed")

        periods = ctx.scheduler.periods
        print(f"[watch] periods known: {len(periods)}; armed timers: {len(ctx.scheduler.armed)}")
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(_main())
