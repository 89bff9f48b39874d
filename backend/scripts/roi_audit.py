#!/usr/bin/env python3
"""
Print a JSON audit of the ROI pipeline state.

Summarises allocation snapshots and NAV rows per portfolio, stored prices
per symbol and the recompute state of every portfolio snapshot.

Usage:
    python scripts/roi_audit.py
"""

import asyncio
import json
import logging
import os
import sys

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import func, select

from compass.core.database import AsyncSessionLocal, close_db
from compass.core.dates import to_date_key
from compass.core.logging import setup_logging
from compass.models import (
    AllocationSnapshot,
    AssetPriceDaily,
    PerformanceSeries,
    RoiDashboardSnapshot,
)
from compass.models.base import utcnow
from compass.models.performance_series import NAV_SERIES_TYPE
from compass.models.roi_dashboard_snapshot import PORTFOLIO_SCOPE

setup_logging()
logger = logging.getLogger(__name__)


def _key(value):
    return to_date_key(value) if value else None


async def build_audit() -> dict:
    async with AsyncSessionLocal() as session:
        allocations = (await session.execute(
            select(
                AllocationSnapshot.portfolio_key,
                func.count(AllocationSnapshot.id),
                func.max(AllocationSnapshot.as_of_date),
            ).group_by(AllocationSnapshot.portfolio_key).order_by(AllocationSnapshot.portfolio_key)
        )).all()

        navs = (await session.execute(
            select(
                PerformanceSeries.portfolio_key,
                func.count(PerformanceSeries.id),
                func.max(PerformanceSeries.date),
            ).where(
                PerformanceSeries.series_type == NAV_SERIES_TYPE
            ).group_by(PerformanceSeries.portfolio_key).order_by(PerformanceSeries.portfolio_key)
        )).all()

        prices = (await session.execute(
            select(
                AssetPriceDaily.symbol,
                func.count(AssetPriceDaily.id),
                func.max(AssetPriceDaily.date),
            ).group_by(AssetPriceDaily.symbol).order_by(AssetPriceDaily.symbol)
        )).all()

        snapshots = (await session.execute(
            select(RoiDashboardSnapshot).where(
                RoiDashboardSnapshot.scope == PORTFOLIO_SCOPE,
                RoiDashboardSnapshot.portfolio_key.is_not(None),
            ).order_by(RoiDashboardSnapshot.portfolio_key)
        )).scalars().all()

    return {
        "generatedAt": utcnow().isoformat(),
        "allocationSummary": [
            {"key": key, "count": count, "latestAsOfDate": _key(latest)}
            for key, count, latest in allocations
        ],
        "navSummary": [
            {"key": key, "count": count, "latestDate": _key(latest)}
            for key, count, latest in navs
        ],
        "priceSummary": [
            {"key": symbol, "count": count, "latestDate": _key(latest)}
            for symbol, count, latest in prices
        ],
        "snapshotSummary": [
            {
                "key": row.portfolio_key,
                "needsRecompute": row.needs_recompute,
                "recomputeFromDate": _key(row.recompute_from_date),
                "lastComputedAt": row.last_computed_at.isoformat() if row.last_computed_at else None,
                "asOfDate": _key(row.as_of_date),
                "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
                "lastError": row.payload_dict().get("lastError"),
            }
            for row in snapshots
        ],
    }


async def run() -> dict:
    try:
        return await build_audit()
    finally:
        await close_db()


def main():
    try:
        audit = asyncio.run(run())
    except Exception as e:
        logger.error(f"ROI audit failed: {e}", exc_info=True)
        sys.exit(1)
    print(json.dumps(audit, indent=2))


if __name__ == "__main__":
    main()
