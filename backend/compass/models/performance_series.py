from sqlalchemy import Column, String, Date, Numeric, UniqueConstraint, Index
from compass.core.database import Base
from compass.models.base import IdMixin, TimestampMixin

NAV_SERIES_TYPE = "MODEL_NAV"


class PerformanceSeries(Base, IdMixin, TimestampMixin):
    """
    Computed performance series values, one row per day.
    For series_type MODEL_NAV the value is the synthetic NAV index (base 100).
    """
    __tablename__ = "performance_series"

    series_type = Column(String(50), nullable=False)
    portfolio_key = Column(String(100), nullable=False)
    date = Column(Date, nullable=False)
    value = Column(Numeric(30, 12), nullable=False)

    __table_args__ = (
        UniqueConstraint("series_type", "portfolio_key", "date", name="uq_performance_series_type_key_date"),
        Index("ix_performance_series_key_date", "portfolio_key", "date"),
    )
