from sqlalchemy import Column, String, Date, Numeric, UniqueConstraint
from compass.core.database import Base
from compass.models.base import IdMixin, TimestampMixin

class AssetPriceDaily(Base, IdMixin, TimestampMixin):
    """
    Daily closing price per asset symbol.
    Upserted by price ingestion; provider revisions overwrite the close.
    """
    __tablename__ = "asset_prices_daily"
    __table_args__ = (
        UniqueConstraint("symbol", "date", name="uq_asset_prices_daily_symbol_date"),
    )

    symbol = Column(String(20), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    close = Column(Numeric(30, 12), nullable=False)
    source = Column(String(50), nullable=False, default="coingecko")
