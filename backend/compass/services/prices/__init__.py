from typing import Dict, Type
from compass.services.prices.base import (
    CASH_SYMBOL,
    DailyClose,
    PriceProvider,
    PriceProviderError,
    cash_closes,
)
from compass.services.prices.coingecko_provider import CoinGeckoProvider
from compass.services.prices.yfinance_provider import YFinanceProvider
from compass.core.config import settings

PROVIDERS: Dict[str, Type[PriceProvider]] = {
    "coingecko": CoinGeckoProvider,
    "yfinance": YFinanceProvider,
}


def get_price_provider(name: str = None) -> PriceProvider:
    """Factory to get provider instance."""
    name = name or settings.PRICE_PROVIDER
    provider_class = PROVIDERS.get(name)
    if not provider_class:
        raise ValueError(f"Unknown price provider: {name}")
    return provider_class()


__all__ = [
    "CASH_SYMBOL",
    "DailyClose",
    "PriceProvider",
    "PriceProviderError",
    "cash_closes",
    "CoinGeckoProvider",
    "YFinanceProvider",
    "PROVIDERS",
    "get_price_provider",
]
