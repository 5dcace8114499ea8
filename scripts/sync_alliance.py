"""
One-off alliance roster sync, outside the running service.

Usage:
  python scripts/sync_alliance.py --database-url postgresql://... --bot-name Mybot
  python scripts/sync_alliance.py --database-url postgresql://... --bot-name Mybot --org 725003
"""

import argparse
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import asyncpg

from allybot.app import build_alliance
from allybot.config import Settings


async def _main():
    parser = argparse.ArgumentParser(description="Download and reconcile alliance org rosters")
    parser.add_argument("--database-url", required=True, help="asyncpg DSN (postgresql://...)")
    parser.add_argument("--bot-name", required=True, help="Character name of the bot itself")
    parser.add_argument("--dimension", type=int, default=5)
    parser.add_argument("--org", type=int, action="append", help="Only sync this org id (repeatable)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    settings = Settings(
        database_url=args.database_url,
        bot_name=args.bot_name,
        dimension=args.dimension,
    )
    pool = await asyncpg.create_pool(args.database_url)
    service, client, _ = build_alliance(pool, settings)
    try:
        await client.initialize()
        await service.startup()
        if args.org:
            summary = await service.coordinator.sync_all(args.org)
        else:
            summary = await service.update_rosters(print)
        print(f"Done: {summary.as_stats()}")
    finally:
        await client.close()
        await pool.close()


if __name__ == "__main__":
    asyncio.run(_main())
