# Base
from compass.models.base import TimestampMixin, IdMixin

# Prices
from compass.models.asset_price_daily import AssetPriceDaily

# Portfolio ROI
from compass.models.allocation_snapshot import AllocationSnapshot
from compass.models.performance_series import PerformanceSeries, NAV_SERIES_TYPE
from compass.models.roi_dashboard_snapshot import (
    RoiDashboardSnapshot,
    PORTFOLIO_SCOPE,
    PORTFOLIO_JOB_LOCK_SCOPE,
    JOB_LOCK_KEY,
)

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "AssetPriceDaily",
    "AllocationSnapshot",
    "PerformanceSeries",
    "NAV_SERIES_TYPE",
    "RoiDashboardSnapshot",
    "PORTFOLIO_SCOPE",
    "PORTFOLIO_JOB_LOCK_SCOPE",
    "JOB_LOCK_KEY",
]
