#!/usr/bin/env python3
"""Print a snapshot of the fleet and inquiry lists, optionally following live changes.

Credentials:
- SUPABASE_URL, SUPABASE_ANON_KEY (plus optional FLEETDESK_* settings)
- FLEETDESK_ADMIN_EMAIL / FLEETDESK_ADMIN_PASSWORD, or --email/--password

Examples::

    python scripts/fleet_snapshot.py --status available --sort price-high
    python scripts/fleet_snapshot.py --watch 120 -v
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetdesk import (  # noqa: E402
    FilterSpec,
    FleetDeskClient,
    FleetDeskConfig,
    FleetDeskError,
    SortSpec,
)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fleet dashboard snapshot")
    parser.add_argument("--email", default=os.environ.get("FLEETDESK_ADMIN_EMAIL", ""))
    parser.add_argument("--password", default=os.environ.get("FLEETDESK_ADMIN_PASSWORD", ""))
    parser.add_argument("--search", default="", help="Free-text search over brand, model and VIN")
    parser.add_argument("--brand", default=None)
    parser.add_argument("--status", default=None, choices=["available", "sold", "reserved"])
    parser.add_argument("--price-min", type=float, default=None)
    parser.add_argument("--price-max", type=float, default=None)
    parser.add_argument("--sort", default="newest", help="newest, oldest, price-low, price-high or brand")
    parser.add_argument("--watch", type=float, default=0.0, help="Follow live changes for N seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _print_trucks(client: FleetDeskClient, filter_spec: FilterSpec, sort_spec: SortSpec) -> None:
    rows = client.truck_store().view(filter_spec, sort_spec)
    print(f"Trucks ({len(rows)} shown of {len(client.truck_store().records)}):")
    for truck in rows:
        print(
            f"  {truck.id:>6}  {truck.title:<30} {truck.year:>4}  {truck.price:>12,.0f}  "
            f"{truck.status.value:<9} images={len(truck.populated_slots)}"
        )


def _print_summary(client: FleetDeskClient) -> None:
    stats = client.dashboard_stats()
    counts = client.inquiry_counts()
    print(
        f"Fleet: {stats.total_trucks} trucks, {stats.available_trucks} available, "
        f"{stats.sold_trucks} sold, revenue {stats.total_revenue:,.0f}"
    )
    print(
        f"Inquiries: {counts.total} total, {counts.pending} pending, "
        f"{counts.replied} replied, {counts.resolved} resolved"
    )


async def _run(args: argparse.Namespace) -> int:
    config = FleetDeskConfig.from_env()
    try:
        sort_spec = SortSpec.parse(args.sort)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    filter_spec = FilterSpec(
        search=args.search,
        brand=args.brand,
        status=args.status,
        price_min=args.price_min,
        price_max=args.price_max,
    )

    async with FleetDeskClient(config) as client:
        if args.email:
            result = await client.login(args.email, args.password)
            if not result.success:
                print(f"Login failed: {result.error}", file=sys.stderr)
                return 1
            print(f"Signed in as {client.admin.email if client.admin else args.email}")

        trucks = client.truck_store()
        inquiries = client.inquiry_store()
        try:
            await trucks.initialize()
            await inquiries.initialize()
        except FleetDeskError as exc:
            print(f"Load failed: {exc.user_message} ({exc})", file=sys.stderr)
            return 1

        _print_summary(client)
        _print_trucks(client, filter_spec, sort_spec)

        if args.watch > 0:
            await trucks.subscribe()
            await inquiries.subscribe()
            remove_echo = trucks.add_listener(lambda records: print(f"  trucks now {len(records)}"))
            print(f"Watching for {args.watch:.0f}s ...")
            try:
                await asyncio.sleep(args.watch)
            finally:
                remove_echo()
                await trucks.teardown()
                await inquiries.teardown()
            _print_summary(client)
            _print_trucks(client, filter_spec, sort_spec)

    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except FleetDeskError as exc:
        print(f"error: {exc.user_message} ({exc})", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
