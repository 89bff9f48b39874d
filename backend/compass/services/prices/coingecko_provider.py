import asyncio
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pandas as pd

from compass.core.config import settings
from compass.core.dates import list_dates
from compass.services.prices.base import (
    CASH_SYMBOL,
    DailyClose,
    PriceProvider,
    PriceProviderError,
    cash_closes,
)

logger = logging.getLogger(__name__)

# Symbol -> CoinGecko coin id. None means known but not priced by CoinGecko.
COINGECKO_IDS: Dict[str, Optional[str]] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "SUI": "sui",
    "BNB": "binancecoin",
    "TRX": "tron",
    "LINK": "chainlink",
    "XAUTUSD": "tether-gold",
    "HYPEH": None,
    "CASH": None,
}


class CoinGeckoProvider(PriceProvider):
    """Daily USD closes from the CoinGecko market_chart/range endpoint."""

    name = "coingecko"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        max_retries: int | None = None,
        backoff_sec: float | None = None,
        timeout_sec: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.COINGECKO_BASE_URL).rstrip("/")
        self.api_key = settings.COINGECKO_API_KEY if api_key is None else api_key
        self.max_retries = settings.PRICE_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_sec = (
            settings.PRICE_RETRY_BACKOFF_SEC if backoff_sec is None else backoff_sec
        )
        self.timeout_sec = (
            settings.PRICE_REQUEST_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        )
        self._transport = transport

    async def get_daily_closes(
        self,
        symbols: List[str],
        start_date: date,
        end_date: date,
    ) -> Dict[str, List[DailyClose]]:
        results: Dict[str, List[DailyClose]] = {}
        expected_dates = list_dates(start_date, end_date)
        if not symbols:
            return results

        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        async with httpx.AsyncClient(
            timeout=self.timeout_sec, headers=headers, transport=self._transport
        ) as client:
            for raw_symbol in symbols:
                symbol = raw_symbol.strip().upper()
                if symbol == CASH_SYMBOL:
                    results[symbol] = cash_closes(start_date, end_date)
                    continue

                coin_id = COINGECKO_IDS.get(symbol)
                if not coin_id:
                    logger.warning(f"No CoinGecko mapping for symbol {symbol}")
                    results[symbol] = []
                    continue

                params = {
                    "vs_currency": "usd",
                    "from": str(_unix_seconds(start_date)),
                    "to": str(_unix_seconds(end_date, end_of_day=True)),
                }
                url = f"{self.base_url}/coins/{coin_id}/market_chart/range"
                payload = await self._fetch_with_retry(client, url, params, symbol)
                prices = payload.get("prices") if isinstance(payload, dict) else None
                close_map = build_daily_close_map(prices or [])
                _log_missing_days(symbol, expected_dates, close_map)

                results[symbol] = [
                    DailyClose(date=d, close=close_map[d])
                    for d in expected_dates
                    if d in close_map
                ]

        return results

    async def _fetch_with_retry(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Dict[str, str],
        symbol: str,
    ) -> Any:
        for attempt in range(1, self.max_retries + 1):
            resp = await client.get(url, params=params)

            if resp.status_code == 429:
                retry_after = resp.headers.get("retry-after")
                delay = float(retry_after) if retry_after else self.backoff_sec * attempt
                logger.warning(
                    f"CoinGecko rate limited for {symbol} (attempt {attempt}), retrying in {delay}s"
                )
                await asyncio.sleep(delay)
                continue

            if resp.is_error:
                if attempt >= self.max_retries:
                    raise PriceProviderError(
                        f"Price provider error {resp.status_code} for {symbol}: {resp.reason_phrase}"
                    )
                await asyncio.sleep(self.backoff_sec * attempt)
                continue

            return resp.json()

        raise PriceProviderError(f"Price provider failed after retries for {symbol}")


def build_daily_close_map(prices: List[List[float]]) -> Dict[date, Decimal]:
    """
    Bucket [timestamp_ms, price] points into UTC days; the last point of a
    day is that day's close.
    """
    if not prices:
        return {}

    df = pd.DataFrame(prices, columns=["timestamp", "price"]).dropna()
    if df.empty:
        return {}

    df["date"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True).dt.date
    daily = df.sort_values("timestamp").groupby("date")["price"].last()
    return {d: Decimal(str(price)) for d, price in daily.items()}


def _unix_seconds(value: date, end_of_day: bool = False) -> int:
    moment = time(23, 59, 59) if end_of_day else time(0, 0, 0)
    return int(datetime.combine(value, moment, tzinfo=timezone.utc).timestamp())


def _log_missing_days(symbol: str, expected_dates: List[date], close_map: Dict[date, Decimal]) -> None:
    missing = [d for d in expected_dates if d not in close_map]
    if missing:
        logger.warning(
            f"Missing daily closes from provider for {symbol}: "
            f"{[d.isoformat() for d in missing[:5]]} ({len(missing)} total)"
        )
