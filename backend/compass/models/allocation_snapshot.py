from sqlalchemy import Column, String, Date, Numeric, JSON, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import JSONB
from compass.core.database import Base
from compass.models.base import IdMixin, TimestampMixin


class AllocationSnapshot(Base, IdMixin, TimestampMixin):
    """
    Target portfolio composition effective from as_of_date until the next
    later snapshot for the same portfolio_key.

    items: [{"asset": "BTC", "weight": 0.8}, ...]
    """
    __tablename__ = "allocation_snapshots"

    portfolio_key = Column(String(100), nullable=False)
    as_of_date = Column(Date, nullable=False)
    items = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    cash_weight = Column(Numeric(20, 10), nullable=False, default=0)
    updated_by = Column(String(100))

    __table_args__ = (
        UniqueConstraint("portfolio_key", "as_of_date", name="uq_allocation_snapshots_key_date"),
        Index("ix_allocation_snapshots_key_date", "portfolio_key", "as_of_date"),
    )
