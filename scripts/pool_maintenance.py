#!/usr/bin/env python3
"""
Run one pool housekeeping pass.

Promotes long-waiting pool entries to wider search tiers, expires
intentions past their valid_until, and puts active intentions that have
fallen out of the pool (declined matches, dissolved pairs) back in at tier 0.
Meant to run from cron just before each batch matching run.

Usage:
    python scripts/pool_maintenance.py
    python scripts/pool_maintenance.py --dry-run
"""

import asyncio
import sys
import argparse
import logging
from pathlib import Path

# Add apps/ to the path so we can import cove modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "apps"))

from cove.database.db import AsyncSessionLocal  # noqa: E402
from cove.services import pool_service  # noqa: E402

logger = logging.getLogger(__name__)


async def run_pool_maintenance(dry_run: bool = False) -> dict:
    """Run the maintenance pass in one transaction; roll back instead of committing on a dry run."""
    async with AsyncSessionLocal() as session:
        try:
            counts = await pool_service.run_maintenance(session)
            if dry_run:
                await session.rollback()
                print("🔎 Dry run, no changes committed")
            else:
                await session.commit()
            print(f"✅ Promoted to tier 1: {counts['promoted_tier_1']}")
            print(f"✅ Promoted to tier 2: {counts['promoted_tier_2']}")
            print(f"✅ Expired intentions: {counts['expired']}")
            print(f"✅ Re-pooled intentions: {counts['released']}")
            return counts
        except Exception as e:
            await session.rollback()
            print(f"❌ Error running pool maintenance: {e}")
            raise


async def main():
    parser = argparse.ArgumentParser(description="Run pool tier promotion, expiry and re-pooling")
    parser.add_argument(
        "--dry-run", action="store_true", help="Report counts without committing changes"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    await run_pool_maintenance(dry_run=args.dry_run)


if __name__ == "__main__":
    asyncio.run(main())
