#!/usr/bin/env python3
"""Print live snapshots of one realtime-database collection.

Reads ``FLEET_DATABASE_URL`` / ``FLEET_AUTH_TOKEN`` from the environment
and prints the collection every time any client changes it. Useful to
check which writes reach the database and how duplicates look remotely.

Usage
-----
::

    export FLEET_DATABASE_URL="https://my-fleet-default-rtdb.firebaseio.com"
    python scripts/watch_collection.py vehicles --duration 120
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetsync import EntityListSynchronizer, FleetConfig, FleetDashboard  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Watch a realtime-database collection and print every snapshot.",
    )
    parser.add_argument("collection", help="Collection path, e.g. vehicles or maintenanceSchedule.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print every snapshot as pretty JSON instead of a summary line.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_snapshot(sync: EntityListSynchronizer[Any], *, as_json: bool) -> None:
    stamp = time.strftime("%H:%M:%S")
    if sync.error is not None:
        print(f"[{stamp}] {sync.key}: error: {sync.error} ({len(sync)} items kept)")
        return
    if as_json:
        print(json.dumps(sync.items, indent=2, ensure_ascii=False, default=str))
        return
    ids = [str(item.get("id")) for item in sync.items]
    preview = ", ".join(ids[:8]) + (" ..." if len(ids) > 8 else "")
    print(f"[{stamp}] {sync.key}: {len(ids)} items [{preview}]")


async def _watch(args: argparse.Namespace) -> None:
    config = FleetConfig.from_env()
    async with FleetDashboard(config, collections=(args.collection,)) as dashboard:
        sync = dashboard.synchronizer(args.collection)
        sync.add_listener(lambda s: _print_snapshot(s, as_json=args.json))
        if args.duration > 0:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_watch(args))
    except KeyboardInterrupt:
        print("[watch] stopped")
    except Exception as exc:  # pragma: no cover - network/system interaction
        print(f"[watch] failed: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
