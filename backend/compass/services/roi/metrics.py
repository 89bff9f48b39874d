"""
Performance metrics over a NAV series. All outputs are percentages.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from compass.core.dates import parse_date_key, to_date_key
from compass.services.roi.nav import NavPoint

HUNDRED = Decimal("100")
DAYS_PER_YEAR = Decimal("365")  # crypto trades every calendar day
ROI_LOOKBACK_DAYS = 30


@dataclass
class RoiMetrics:
    roi_inception: Decimal = Decimal("0")
    roi_30d: Decimal = Decimal("0")
    max_drawdown: Decimal = Decimal("0")
    volatility: Decimal = Decimal("0")
    as_of_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "roiInception": float(self.roi_inception),
            "roi30d": float(self.roi_30d),
            "maxDrawdown": float(self.max_drawdown),
            "volatility": float(self.volatility),
            "asOfDate": to_date_key(self.as_of_date) if self.as_of_date else None,
        }


def compute_metrics(nav_series: Sequence[NavPoint]) -> RoiMetrics:
    """
    Derive inception ROI, trailing 30-day ROI, max drawdown and annualized
    volatility from a NAV series. An empty series yields zero metrics with
    no as-of date.
    """
    if not nav_series:
        return RoiMetrics()

    first = nav_series[0]
    last = nav_series[-1]

    return RoiMetrics(
        roi_inception=(last.nav / first.nav - 1) * HUNDRED,
        roi_30d=calculate_roi_30d(nav_series),
        max_drawdown=calculate_max_drawdown(nav_series),
        volatility=calculate_volatility(nav_series),
        as_of_date=parse_date_key(last.date_key),
    )


def calculate_roi_30d(nav_series: Sequence[NavPoint]) -> Decimal:
    """Return from the earliest point within 30 days of the last point."""
    last = nav_series[-1]
    lookback_key = to_date_key(parse_date_key(last.date_key) - timedelta(days=ROI_LOOKBACK_DAYS))
    lookback_point = next(
        (point for point in nav_series if point.date_key >= lookback_key),
        nav_series[0],
    )
    return (last.nav / lookback_point.nav - 1) * HUNDRED


def calculate_max_drawdown(nav_series: Sequence[NavPoint]) -> Decimal:
    """Most negative peak-to-point decline; 0 if NAV never fell below a peak."""
    peak = nav_series[0].nav
    max_drawdown = Decimal("0")
    for point in nav_series:
        if point.nav > peak:
            peak = point.nav
        drawdown = (point.nav / peak - 1) * HUNDRED
        if drawdown < max_drawdown:
            max_drawdown = drawdown
    return max_drawdown


def calculate_volatility(nav_series: Sequence[NavPoint]) -> Decimal:
    """Population std dev of daily returns, annualized with sqrt(365)."""
    returns = [point.daily_return for point in nav_series]
    count = Decimal(len(returns))
    mean = sum(returns, Decimal("0")) / count
    variance = sum(((value - mean) ** 2 for value in returns), Decimal("0")) / count
    return variance.sqrt() * DAYS_PER_YEAR.sqrt() * HUNDRED
