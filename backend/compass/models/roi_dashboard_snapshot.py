import json
from typing import Any, Dict

from sqlalchemy import Column, String, Date, DateTime, Numeric, Boolean, Text, UniqueConstraint
from compass.core.database import Base
from compass.models.base import IdMixin, TimestampMixin

PORTFOLIO_SCOPE = "PORTFOLIO"
PORTFOLIO_JOB_LOCK_SCOPE = "PORTFOLIO_JOB_LOCK"
JOB_LOCK_KEY = "GLOBAL"


class RoiDashboardSnapshot(Base, IdMixin, TimestampMixin):
    """
    Per-portfolio recompute state and cached metrics.

    Rows under PORTFOLIO_JOB_LOCK_SCOPE / GLOBAL act as the job lock record;
    their payload holds the lock holder identity.
    """
    __tablename__ = "roi_dashboard_snapshots"
    __table_args__ = (
        UniqueConstraint("scope", "portfolio_key", name="uq_roi_dashboard_snapshots_scope_key"),
    )

    scope = Column(String(50), nullable=False, index=True)
    portfolio_key = Column(String(100), nullable=True, index=True)
    payload = Column(Text, nullable=False, default="{}")

    needs_recompute = Column(Boolean, nullable=False, default=False, index=True)
    recompute_from_date = Column(Date)
    as_of_date = Column(Date)

    roi_inception = Column(Numeric(30, 12))
    roi_30d = Column(Numeric(30, 12))
    max_drawdown = Column(Numeric(30, 12))
    volatility = Column(Numeric(30, 12))
    last_computed_at = Column(DateTime)

    def payload_dict(self) -> Dict[str, Any]:
        if not self.payload:
            return {}
        try:
            data = json.loads(self.payload)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def __repr__(self) -> str:
        return (
            f"<RoiDashboardSnapshot(scope={self.scope}, portfolio_key={self.portfolio_key}, "
            f"needs_recompute={self.needs_recompute})>"
        )
