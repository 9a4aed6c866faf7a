"""
Supermarket Monitor — Watchlist Admin Script

Adds a product page to the watchlist, or updates it when the URL is
already there.

Usage:
    python scripts/watchlist.py --url https://www.sklavenitis.gr/product/123 --name "Feta 400g" --target 4.50
    python scripts/watchlist.py --url https://www.sklavenitis.gr/product/123 --inactive
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from decimal import Decimal, InvalidOperation

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.db import create_db_engine
from src.models.repository import WatchlistRepository, init_schema


def _price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a price: {value!r}")
    if not price.is_finite():
        raise argparse.ArgumentTypeError(f"not a price: {value!r}")
    if price <= 0:
        raise argparse.ArgumentTypeError("target price must be greater than zero")
    return price


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Upsert one Supermarket Monitor watch item.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/watchlist.py --url https://www.sklavenitis.gr/product/123 --target 4.50
  python scripts/watchlist.py --url https://www.sklavenitis.gr/product/123 --inactive
""",
    )
    parser.add_argument("--url", required=True, help="Product page URL (unique key).")
    parser.add_argument("--name", default=None, help="Optional label for the product.")
    parser.add_argument(
        "--target",
        type=_price,
        default=None,
        help="Alert when the price is at or below this amount.",
    )
    parser.add_argument(
        "--inactive",
        action="store_true",
        help="Keep the item but skip it in the daily job.",
    )
    return parser.parse_args(argv)


async def upsert(args: argparse.Namespace, database_url: str | None = None) -> int:
    """Write the watch item and return its id."""
    engine, session_factory = await create_db_engine(database_url)
    try:
        await init_schema(engine)
        async with session_factory() as session:
            item = await WatchlistRepository(session).upsert_watch_item(
                args.url,
                product_name=args.name,
                target_price=args.target,
                active=not args.inactive,
            )
            return item.id
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()
    try:
        item_id = await upsert(args)
    except ValueError as e:
        print(f"Invalid watch item: {e}", file=sys.stderr)
        sys.exit(2)

    print("Upserted watch item:")
    print(f"  id      = {item_id}")
    print(f"  url     = {args.url}")
    print(f"  name    = {args.name}")
    print(f"  target  = {args.target}")
    print(f"  active  = {not args.inactive}")


if __name__ == "__main__":
    asyncio.run(main())
