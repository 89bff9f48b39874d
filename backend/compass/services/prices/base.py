from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List

from compass.core.dates import list_dates

CASH_SYMBOL = "CASH"


class PriceProviderError(Exception):
    """Raised when a provider cannot return prices after retrying."""


@dataclass(frozen=True)
class DailyClose:
    date: date
    close: Decimal


def cash_closes(start_date: date, end_date: date) -> List[DailyClose]:
    """Synthetic zero-volatility series: CASH closes at 1 every day."""
    return [DailyClose(date=d, close=Decimal("1")) for d in list_dates(start_date, end_date)]


class PriceProvider(ABC):
    """Abstract base class for daily close providers."""

    name: str = "unknown"

    @abstractmethod
    async def get_daily_closes(
        self,
        symbols: List[str],
        start_date: date,
        end_date: date,
    ) -> Dict[str, List[DailyClose]]:
        """
        Fetch daily closes for symbols over [start_date, end_date].
        Symbols may be missing from the result or carry fewer days than requested.
        """
        raise NotImplementedError
