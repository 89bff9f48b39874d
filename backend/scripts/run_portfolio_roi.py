#!/usr/bin/env python3
"""
Run the portfolio ROI job once from the command line.

Usage:
    python scripts/run_portfolio_roi.py [--portfolio-key t1_majors_conservative]
        [--include-clean] [--start 2026-01-01] [--end 2026-03-31]
"""

import asyncio
import json
import logging
import os
import sys
from argparse import ArgumentParser

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from compass.core.dates import parse_date_key
from compass.core.logging import setup_logging
from compass.services.portfolio_roi_service import run_portfolio_roi_job

setup_logging()
logger = logging.getLogger(__name__)


def main():
    parser = ArgumentParser(description="Recompute model portfolio NAV and ROI metrics")
    parser.add_argument("--portfolio-key", help="Only recompute this portfolio")
    parser.add_argument(
        "--include-clean",
        action="store_true",
        help="Also recompute portfolios that are not flagged dirty",
    )
    parser.add_argument("--start", type=parse_date_key, help="Rewrite NAV rows from this date (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_date_key, help="Window end (YYYY-MM-DD, default: today UTC)")
    args = parser.parse_args()

    try:
        summary = asyncio.run(run_portfolio_roi_job(
            portfolio_key=args.portfolio_key,
            trigger="cli",
            include_clean=args.include_clean,
            start_date=args.start,
            end_date=args.end,
        ))
    except Exception as e:
        logger.error(f"Portfolio ROI run failed: {e}", exc_info=True)
        sys.exit(1)

    print(json.dumps(summary, indent=2))

    if summary.get("skipped"):
        logger.warning(f"Run skipped: lock held by {summary.get('heldBy')}")
        sys.exit(2)
    sys.exit(1 if summary.get("failed") else 0)


if __name__ == "__main__":
    main()
