import asyncio
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List

import pandas as pd
import yfinance as yf

from compass.services.prices.base import CASH_SYMBOL, DailyClose, PriceProvider, cash_closes

logger = logging.getLogger(__name__)


class YFinanceProvider(PriceProvider):
    """yfinance provider using <SYMBOL>-USD crypto tickers."""

    name = "yfinance"

    async def get_daily_closes(
        self,
        symbols: List[str],
        start_date: date,
        end_date: date,
    ) -> Dict[str, List[DailyClose]]:
        results: Dict[str, List[DailyClose]] = {}
        for raw_symbol in symbols:
            symbol = raw_symbol.strip().upper()
            if symbol == CASH_SYMBOL:
                results[symbol] = cash_closes(start_date, end_date)
                continue
            # yf.download blocks; keep it off the event loop
            data = await asyncio.to_thread(self._download, symbol, start_date, end_date)
            results[symbol] = self._to_closes(symbol, data)
        return results

    def _download(self, symbol: str, start_date: date, end_date: date) -> pd.DataFrame:
        # yfinance treats `end` as exclusive
        return yf.download(
            tickers=f"{symbol}-USD",
            start=start_date.isoformat(),
            end=(end_date + timedelta(days=1)).isoformat(),
            interval="1d",
            auto_adjust=False,
            progress=False,
        )

    def _to_closes(self, symbol: str, data: pd.DataFrame) -> List[DailyClose]:
        if data is None or data.empty or "Close" not in data:
            logger.warning(f"No data for {symbol} in yfinance response")
            return []

        closes = data["Close"]
        if isinstance(closes, pd.DataFrame):
            # newer yfinance returns (Price, Ticker) columns even for one ticker
            closes = closes.iloc[:, 0]

        return [
            DailyClose(date=index.date(), close=Decimal(str(float(value))))
            for index, value in closes.dropna().items()
        ]
