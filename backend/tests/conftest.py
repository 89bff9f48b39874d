"""
Shared fixtures: a file-backed SQLite database with the real models and an
in-memory price provider.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import compass.models  # noqa: F401  (registers tables on Base.metadata)
from compass.core.database import Base
from compass.core.metrics import metrics
from compass.services.prices import (
    CASH_SYMBOL,
    DailyClose,
    PriceProvider,
    PriceProviderError,
    cash_closes,
)


class FakePriceProvider(PriceProvider):
    """Serves closes from a dict; symbols in `failing` raise like an outage."""

    name = "fake"

    def __init__(self, closes: Dict[str, Dict[date, Decimal]] = None, failing: Iterable[str] = ()):
        self.closes = closes or {}
        self.failing = set(failing)
        self.calls: List[tuple] = []

    async def get_daily_closes(self, symbols, start_date, end_date):
        result = {}
        for symbol in symbols:
            self.calls.append((symbol, start_date, end_date))
            if symbol in self.failing:
                raise PriceProviderError(f"outage for {symbol}")
            if symbol == CASH_SYMBOL:
                result[symbol] = cash_closes(start_date, end_date)
                continue
            result[symbol] = [
                DailyClose(date=d, close=close)
                for d, close in sorted(self.closes.get(symbol, {}).items())
                if start_date <= d <= end_date
            ]
        return result


@pytest.fixture(autouse=True)
def clear_metrics():
    metrics.clear_buffer()
    yield
    metrics.clear_buffer()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'compass.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def fake_provider():
    return FakePriceProvider()
