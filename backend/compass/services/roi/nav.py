"""
NAV compounding engine.

Walks calendar days, applies the active allocation's weighted price
returns and compounds a synthetic NAV index starting at 100.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Sequence

from compass.core.dates import to_date_key
from compass.core.metrics import metrics
from compass.services.roi.allocations import AllocationItem

logger = logging.getLogger(__name__)

NAV_BASE = Decimal("100")
ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True)
class NavPoint:
    date_key: str
    nav: Decimal
    daily_return: Decimal
    forward_filled: bool = False


def compute_nav_series(
    dates: Sequence[date],
    allocations_by_date: Dict[str, List[AllocationItem]],
    prices_by_symbol: Dict[str, Dict[str, Decimal]],
    portfolio_key: str = None,
) -> List[NavPoint]:
    """
    Compound the NAV index over ascending dates.

    - Days without an active allocation are skipped.
    - The first day with an allocation, a previous calendar day and a price
      for every constituent is the inception point: NAV 100, return 0.
    - Later days return sum(weight * (price/prev_price - 1)). If any
      constituent lacks a price on the day or the day before, NAV carries
      over unchanged with a zero return.

    Pure function of its inputs.
    """
    nav_series: List[NavPoint] = []
    nav = NAV_BASE
    initialized = False

    for index, current in enumerate(dates):
        if index == 0:
            continue

        date_key = to_date_key(current)
        prev_key = to_date_key(dates[index - 1])
        allocations = allocations_by_date.get(date_key)
        if not allocations:
            continue

        if not initialized:
            missing = _missing_symbols(allocations, prices_by_symbol, [date_key])
            if missing:
                continue
            initialized = True
            nav = NAV_BASE
            nav_series.append(NavPoint(date_key=date_key, nav=nav, daily_return=ZERO))
            continue

        missing = _missing_symbols(allocations, prices_by_symbol, [date_key, prev_key])
        if missing:
            logger.warning(
                f"Missing price data for NAV calculation day {date_key} "
                f"(portfolio={portfolio_key}, symbols={missing}); carrying NAV forward"
            )
            metrics.nav_day_forward_filled(date_key, missing, portfolio_key=portfolio_key)
            nav_series.append(
                NavPoint(date_key=date_key, nav=nav, daily_return=ZERO, forward_filled=True)
            )
            continue

        daily_return = ZERO
        for allocation in allocations:
            symbol_prices = prices_by_symbol[allocation.asset]
            price_ratio = symbol_prices[date_key] / symbol_prices[prev_key] - ONE
            daily_return += allocation.weight * price_ratio

        nav = nav * (ONE + daily_return)
        nav_series.append(NavPoint(date_key=date_key, nav=nav, daily_return=daily_return))

    return nav_series


def _missing_symbols(
    allocations: List[AllocationItem],
    prices_by_symbol: Dict[str, Dict[str, Decimal]],
    date_keys: List[str],
) -> List[str]:
    missing = []
    for allocation in allocations:
        symbol_prices = prices_by_symbol.get(allocation.asset, {})
        for date_key in date_keys:
            price = symbol_prices.get(date_key)
            if price is None or price == 0:
                missing.append(allocation.asset)
                break
    return missing
