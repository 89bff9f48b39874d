from compass.services.roi.allocations import (
    AllocationError,
    AllocationItem,
    allocation_symbols,
    build_allocations_by_date,
    derive_allocations,
    normalize_items,
    validate_weights,
)
from compass.services.roi.metrics import RoiMetrics, compute_metrics
from compass.services.roi.nav import NavPoint, compute_nav_series
from compass.services.roi.resolver import fill_prices_for_dates

__all__ = [
    "AllocationError",
    "AllocationItem",
    "allocation_symbols",
    "build_allocations_by_date",
    "derive_allocations",
    "normalize_items",
    "validate_weights",
    "RoiMetrics",
    "compute_metrics",
    "NavPoint",
    "compute_nav_series",
    "fill_prices_for_dates",
]
