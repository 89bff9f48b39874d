"""
Price ingestion.

Fetches daily closes per symbol from the configured provider and upserts
them into asset_prices_daily. Each symbol is fetched and stored
independently so one provider failure never blocks the rest of the batch.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select

from compass.core.database import AsyncSessionLocal, upsert_insert
from compass.core.metrics import metrics
from compass.models.asset_price_daily import AssetPriceDaily
from compass.models.base import utcnow
from compass.services.prices import CASH_SYMBOL, DailyClose, PriceProvider, get_price_provider

logger = logging.getLogger(__name__)

BATCH_SIZE = 150


@dataclass
class IngestSummary:
    requested: int = 0
    inserted: int = 0
    updated: int = 0
    source: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


class PriceIngestionService:
    """Fetch-and-upsert cycle for daily asset closes."""

    def __init__(
        self,
        provider: Optional[PriceProvider] = None,
        session_factory=None,
    ):
        self.provider = provider or get_price_provider()
        self.session_factory = session_factory or AsyncSessionLocal

    def source_for(self, symbol: str) -> str:
        return "cash" if symbol == CASH_SYMBOL else self.provider.name

    async def ingest_prices(
        self,
        symbols: List[str],
        start_date: date,
        end_date: date,
    ) -> Dict[str, IngestSummary]:
        """
        Ingest closes for each symbol over [start_date, end_date].

        Returns:
            {symbol: IngestSummary}. Symbols whose fetch failed or returned
            nothing are reported with zero counts.
        """
        summaries: Dict[str, IngestSummary] = {}
        if not symbols:
            return summaries

        logger.info(
            f"Ingesting prices for {len(symbols)} symbols from {start_date} to {end_date}"
        )

        for symbol in symbols:
            source = self.source_for(symbol)
            try:
                closes_by_symbol = await self.provider.get_daily_closes([symbol], start_date, end_date)
            except Exception as e:
                logger.error(f"Price fetch failed for {symbol}: {e}", exc_info=True)
                metrics.price_fetch_failed(symbol, str(e))
                summaries[symbol] = IngestSummary(source=source)
                continue

            closes = closes_by_symbol.get(symbol) or []
            if not closes:
                logger.warning(f"No closes returned for {symbol} between {start_date} and {end_date}")
                summaries[symbol] = IngestSummary(source=source)
                continue

            summary = await self._store_closes(symbol, closes, source)
            summaries[symbol] = summary
            metrics.prices_ingested(
                symbol, summary.requested, summary.inserted, summary.updated, source
            )

        return summaries

    async def _store_closes(
        self,
        symbol: str,
        closes: List[DailyClose],
        source: str,
    ) -> IngestSummary:
        # Provider may repeat a day; keep the last value seen
        by_date = {close.date: close.close for close in closes}
        dates = sorted(by_date)

        async with self.session_factory() as session:
            stmt = select(AssetPriceDaily.date).where(
                AssetPriceDaily.symbol == symbol,
                AssetPriceDaily.date >= dates[0],
                AssetPriceDaily.date <= dates[-1],
            )
            result = await session.execute(stmt)
            existing = set(result.scalars().all())

            now = utcnow()
            records = [
                {
                    "symbol": symbol,
                    "date": d,
                    "close": by_date[d],
                    "source": source,
                    "created_at": now,
                    "updated_at": now,
                }
                for d in dates
            ]

            # Batch to stay under driver parameter limits
            for i in range(0, len(records), BATCH_SIZE):
                batch = records[i:i + BATCH_SIZE]
                stmt = upsert_insert(session, AssetPriceDaily).values(batch)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["symbol", "date"],
                    set_={
                        "close": stmt.excluded.close,
                        "source": stmt.excluded.source,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await session.execute(stmt)
            await session.commit()

        updated = sum(1 for d in dates if d in existing)
        summary = IngestSummary(
            requested=len(dates),
            inserted=len(dates) - updated,
            updated=updated,
            source=source,
        )
        logger.info(
            f"Upserted {len(dates)} closes for {symbol} "
            f"(inserted={summary.inserted}, updated={summary.updated}, source={source})"
        )
        return summary
