#!/usr/bin/env python3
"""
Seed Default Feature Limits

Writes the default (plan_type, feature_key) limit table to the configured
database. Safe to run repeatedly.

Usage:
    # Insert missing rows, keep admin edits
    python3 scripts/seed_feature_limits.py

    # Reset every row to its default
    python3 scripts/seed_feature_limits.py --overwrite

    # Print the defaults without touching the database
    python3 scripts/seed_feature_limits.py --dry-run
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from readmeter.db.session import close_engines, get_write_session
from readmeter.services.limit_catalog import DEFAULT_FEATURE_LIMITS, LimitCatalog

logger = structlog.get_logger()


def print_defaults() -> None:
    """Print the default limit table."""
    print(f"{'plan_type':<10} {'feature_key':<22} {'daily':>8} {'monthly':>8} unlimited")
    for limit in DEFAULT_FEATURE_LIMITS:
        print(
            f"{limit.tier.value:<10} {limit.feature_key.value:<22} "
            f"{limit.daily_limit:>8} {limit.monthly_limit:>8} {limit.is_unlimited}"
        )


async def seed(overwrite: bool) -> int:
    """Run the seed routine against the configured database."""
    try:
        async with get_write_session() as session:
            return await LimitCatalog(session).seed_defaults(overwrite=overwrite)
    finally:
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Seed default feature limits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--overwrite", action="store_true", help="Reset existing rows to their defaults"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Print the defaults, don't write anything"
    )
    args = parser.parse_args()

    if args.dry_run:
        print_defaults()
        return

    seeded = asyncio.run(seed(overwrite=args.overwrite))
    logger.info("seed_script_completed", count=seeded, overwrite=args.overwrite)


if __name__ == "__main__":
    main()
