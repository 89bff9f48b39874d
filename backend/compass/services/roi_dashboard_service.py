"""
Read model for ROI dashboards and admin diagnostics.
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from compass.core.config import settings
from compass.core.dates import to_date_key, utc_today
from compass.models.allocation_snapshot import AllocationSnapshot
from compass.models.asset_price_daily import AssetPriceDaily
from compass.models.performance_series import NAV_SERIES_TYPE, PerformanceSeries
from compass.models.roi_dashboard_snapshot import PORTFOLIO_SCOPE, RoiDashboardSnapshot
from compass.services.prices import CASH_SYMBOL
from compass.services.roi.allocations import normalize_items

logger = logging.getLogger(__name__)

RANGE_DAYS: Dict[str, Optional[int]] = {
    "1m": 30,
    "3m": 90,
    "6m": 180,
    "1y": 365,
    "all": None,
}


def _num(value) -> Optional[float]:
    return float(value) if value is not None else None


def derive_status(
    needs_recompute: bool,
    has_nav: bool,
    last_error: Optional[str],
    has_allocation: bool,
    as_of_date: Optional[date],
    latest_allocation_date: Optional[date],
    last_price_dates: Dict[str, Optional[date]],
    today: date,
) -> str:
    """
    Dashboard freshness status: ok, updating, stale or error.

    Dirty portfolios are "updating". Without NAV rows a portfolio is
    "updating" while allocations await data, otherwise "error". Computed
    data behind the latest allocation or fed by stale prices is "stale".
    """
    if needs_recompute:
        return "updating"
    if not has_nav:
        if last_error or not has_allocation:
            return "error"
        return "updating"

    stale_cutoff = today - timedelta(days=settings.ROI_PRICE_STALE_DAYS)
    allocation_ahead = bool(
        latest_allocation_date and as_of_date and as_of_date < latest_allocation_date
    )
    prices_stale = any(d is None or d < stale_cutoff for d in last_price_dates.values())
    if allocation_ahead or prices_stale:
        return "stale"
    return "ok"


async def _latest_allocation(session: AsyncSession, portfolio_key: str) -> Optional[AllocationSnapshot]:
    stmt = select(AllocationSnapshot).where(
        AllocationSnapshot.portfolio_key == portfolio_key
    ).order_by(AllocationSnapshot.as_of_date.desc()).limit(1)
    return (await session.execute(stmt)).scalar_one_or_none()


async def _snapshot(session: AsyncSession, portfolio_key: str) -> Optional[RoiDashboardSnapshot]:
    stmt = select(RoiDashboardSnapshot).where(
        RoiDashboardSnapshot.scope == PORTFOLIO_SCOPE,
        RoiDashboardSnapshot.portfolio_key == portfolio_key,
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def _last_price_dates(session: AsyncSession, symbols: List[str]) -> Dict[str, Optional[date]]:
    if not symbols:
        return {}
    stmt = select(AssetPriceDaily.symbol, func.max(AssetPriceDaily.date)).where(
        AssetPriceDaily.symbol.in_(symbols)
    ).group_by(AssetPriceDaily.symbol)
    found = {symbol: last for symbol, last in (await session.execute(stmt)).all()}
    return {symbol: found.get(symbol) for symbol in symbols}


async def get_portfolio_roi(
    session: AsyncSession,
    portfolio_key: str,
    range_key: str = "1y",
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """NAV series, cached KPIs and freshness status for one portfolio."""
    portfolio_key = portfolio_key.strip().lower()
    today = today or utc_today()
    range_key = (range_key or "").strip().lower()
    if range_key not in RANGE_DAYS:
        range_key = "1y"
    range_days = RANGE_DAYS[range_key]

    snapshot = await _snapshot(session, portfolio_key)
    allocation = await _latest_allocation(session, portfolio_key)

    latest_stmt = select(func.max(PerformanceSeries.date)).where(
        PerformanceSeries.series_type == NAV_SERIES_TYPE,
        PerformanceSeries.portfolio_key == portfolio_key,
    )
    latest_nav_date = (await session.execute(latest_stmt)).scalar_one_or_none()

    stmt = select(PerformanceSeries.date, PerformanceSeries.value).where(
        PerformanceSeries.series_type == NAV_SERIES_TYPE,
        PerformanceSeries.portfolio_key == portfolio_key,
    )
    if range_days is not None and latest_nav_date is not None:
        stmt = stmt.where(PerformanceSeries.date >= latest_nav_date - timedelta(days=range_days))
    stmt = stmt.order_by(PerformanceSeries.date.asc())
    nav_rows = (await session.execute(stmt)).all()

    allocation_items = normalize_items(allocation.items) if allocation else []
    symbols = [item.asset for item in allocation_items if item.asset != CASH_SYMBOL]
    last_prices = await _last_price_dates(session, symbols)

    payload = snapshot.payload_dict() if snapshot else {}
    last_error = payload.get("lastError") if isinstance(payload.get("lastError"), str) else None
    as_of_date = snapshot.as_of_date if snapshot else None

    status = derive_status(
        needs_recompute=bool(snapshot and snapshot.needs_recompute),
        has_nav=bool(nav_rows),
        last_error=last_error,
        has_allocation=allocation is not None,
        as_of_date=as_of_date or latest_nav_date,
        latest_allocation_date=allocation.as_of_date if allocation else None,
        last_price_dates=last_prices,
        today=today,
    )

    return {
        "portfolioKey": portfolio_key,
        "range": range_key,
        "status": status,
        "needsRecompute": bool(snapshot and snapshot.needs_recompute),
        "asOfDate": to_date_key(as_of_date) if as_of_date else None,
        "lastComputedAt": (
            snapshot.last_computed_at.isoformat() if snapshot and snapshot.last_computed_at else None
        ),
        "lastError": last_error,
        "kpis": {
            "roiInception": _num(snapshot.roi_inception) if snapshot else None,
            "roi30d": _num(snapshot.roi_30d) if snapshot else None,
            "maxDrawdown": _num(snapshot.max_drawdown) if snapshot else None,
            "volatility": _num(snapshot.volatility) if snapshot else None,
        },
        "navSeries": [{"date": to_date_key(d), "nav": float(v)} for d, v in nav_rows],
        "lastRebalance": {
            "effectiveDate": to_date_key(allocation.as_of_date),
            "allocations": [item.to_dict() for item in allocation_items],
            "cashWeight": _num(allocation.cash_weight),
        } if allocation else None,
        "lastPriceDates": {
            symbol: to_date_key(d) if d else None for symbol, d in last_prices.items()
        },
    }


async def get_diagnostics(session: AsyncSession, portfolio_key: str) -> Dict[str, Any]:
    """Admin view of the raw pipeline state for one portfolio."""
    portfolio_key = portfolio_key.strip().lower()
    allocation = await _latest_allocation(session, portfolio_key)
    snapshot = await _snapshot(session, portfolio_key)

    stmt = select(PerformanceSeries).where(
        PerformanceSeries.series_type == NAV_SERIES_TYPE,
        PerformanceSeries.portfolio_key == portfolio_key,
    ).order_by(PerformanceSeries.date.desc()).limit(1)
    latest_nav = (await session.execute(stmt)).scalar_one_or_none()

    items = normalize_items(allocation.items) if allocation else []
    last_prices = await _last_price_dates(session, [item.asset for item in items])

    return {
        "portfolioKey": portfolio_key,
        "latestAllocation": {
            "asOfDate": to_date_key(allocation.as_of_date),
            "allocations": [item.to_dict() for item in items],
        } if allocation else None,
        "latestNav": {
            "date": to_date_key(latest_nav.date),
            "nav": float(latest_nav.value),
        } if latest_nav else None,
        "latestPriceDates": [
            {"symbol": symbol, "date": to_date_key(d) if d else None}
            for symbol, d in last_prices.items()
        ],
        "snapshot": {
            "needsRecompute": snapshot.needs_recompute,
            "recomputeFromDate": (
                to_date_key(snapshot.recompute_from_date) if snapshot.recompute_from_date else None
            ),
            "lastComputedAt": (
                snapshot.last_computed_at.isoformat() if snapshot.last_computed_at else None
            ),
            "asOfDate": to_date_key(snapshot.as_of_date) if snapshot.as_of_date else None,
            "updatedAt": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
            "payload": snapshot.payload_dict(),
        } if snapshot else None,
    }
