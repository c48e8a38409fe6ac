#!/usr/bin/env python3
"""Watch live bus snapshots from the telemetry server.

Starts the bus tracking service from ``BUSTRACK_*`` environment
variables and prints every snapshot the distribution layer delivers.
Falls back to the demo fleet when the server is unreachable.

Usage
-----
::

    export BUSTRACK_URL="http://localhost:8082"
    export BUSTRACK_USERNAME="ops@example.com"
    export BUSTRACK_PASSWORD="secret"
    python scripts/watch_fleet.py --route 138

Options::

    --route NUMBER      Only watch this route (default: all buses)
    --aggregates        Also print per-route aggregates
    --routes-file FILE  JSON list of {routeNo, start, destination, distance?}
    --duration SECONDS  Stop after this many seconds (default: run until Ctrl+C)
    --json              Print snapshots as JSON lines
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pybustrack import (  # noqa: E402
    BusLocation,
    BusTrackingService,
    InMemoryRouteCatalog,
    RouteAggregate,
    SyncMode,
    TrackerConfig,
)


def _format_bus(bus: BusLocation) -> str:
    live = "live" if bus.is_live_data else "demo"
    return (
        f"  {bus.route_number:>6} {bus.bus_number:<10} {bus.status:<11} "
        f"{bus.latitude:9.5f},{bus.longitude:9.5f} {bus.speed:5.1f} km/h  [{live}]"
    )


def _format_aggregate(aggregate: RouteAggregate) -> str:
    return (
        f"  {aggregate.route_number:>6} {aggregate.route_name:<30} "
        f"{aggregate.active_buses}/{aggregate.total_buses} active  avg {aggregate.average_speed:.1f} km/h"
    )


def _printer(title: str, json_mode: bool, fmt: Any) -> Any:
    def _print(snapshot: list[Any]) -> None:
        if json_mode:
            print(json.dumps({"snapshot": title, "items": [item.to_document() for item in snapshot]}))
            return
        print(f"\n── {title} ({len(snapshot)}) ──")
        for item in snapshot:
            print(fmt(item))

    return _print


async def main() -> None:
    parser = argparse.ArgumentParser(description="Print live bus snapshots from the telemetry server.")
    parser.add_argument("--route", help="Only watch this route (default: all buses)")
    parser.add_argument("--aggregates", action="store_true", help="Also print per-route aggregates")
    parser.add_argument("--routes-file", type=Path, help="JSON route catalog records")
    parser.add_argument("--duration", type=float, help="Stop after this many seconds")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output JSON lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    catalog = None
    if args.routes_file:
        records = json.loads(args.routes_file.read_text(encoding="utf-8"))
        catalog = InMemoryRouteCatalog.from_records(records)

    def _on_mode(mode: SyncMode) -> None:
        print(f"*** sync mode: {mode}", file=sys.stderr)

    service = BusTrackingService(TrackerConfig.from_env(), catalog=catalog, on_mode_change=_on_mode)
    async with service:
        probe = await service.test_connection()
        print(f"*** server: {probe.status} {probe.message}", file=sys.stderr)

        if args.route:
            service.subscribe_to_route(args.route, _printer(f"route {args.route}", args.json_mode, _format_bus))
        else:
            service.subscribe_to_all_buses(_printer("all buses", args.json_mode, _format_bus))
        if args.aggregates:
            service.subscribe_to_route_aggregates(_printer("routes", args.json_mode, _format_aggregate))

        with contextlib.suppress(asyncio.CancelledError):
            if args.duration is not None:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
