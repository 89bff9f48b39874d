"""
Tests for allocation resolution, validation and risk-profile derivation.
"""
from datetime import date
from decimal import Decimal

import pytest

from compass.core.dates import list_dates
from compass.services.roi import (
    AllocationError,
    AllocationItem,
    allocation_symbols,
    build_allocations_by_date,
    derive_allocations,
    normalize_items,
    validate_weights,
)


def _items(**weights):
    return [AllocationItem(asset=asset, weight=Decimal(w)) for asset, w in weights.items()]


# =============================================================================
# Active allocation per day
# =============================================================================

def test_latest_snapshot_on_or_before_each_date_is_active():
    first = _items(BTC="1")
    second = _items(BTC="0.5", ETH="0.5")
    snapshots = [(date(2026, 3, 4), second), (date(2026, 3, 2), first)]
    dates = list_dates(date(2026, 3, 1), date(2026, 3, 5))

    allocation_map = build_allocations_by_date(snapshots, dates)

    assert "2026-03-01" not in allocation_map
    assert allocation_map["2026-03-02"] == first
    assert allocation_map["2026-03-03"] == first
    assert allocation_map["2026-03-04"] == second
    assert allocation_map["2026-03-05"] == second


def test_later_same_day_snapshot_wins():
    original = _items(BTC="1")
    replacement = _items(ETH="1")
    snapshots = [(date(2026, 3, 1), original), (date(2026, 3, 1), replacement)]

    allocation_map = build_allocations_by_date(snapshots, [date(2026, 3, 1)])

    assert allocation_map["2026-03-01"] == replacement


def test_no_snapshots_gives_empty_map():
    assert build_allocations_by_date([], list_dates(date(2026, 3, 1), date(2026, 3, 3))) == {}


def test_allocation_symbols_are_distinct_in_first_seen_order():
    snapshots = [
        (date(2026, 3, 1), _items(BTC="0.8", ETH="0.2")),
        (date(2026, 3, 5), _items(ETH="0.5", SOL="0.5")),
    ]
    assert allocation_symbols(snapshots) == ["BTC", "ETH", "SOL"]


def test_normalize_items_uppercases_and_drops_blank_assets():
    items = normalize_items([
        {"asset": " btc ", "weight": 0.6},
        {"asset": "", "weight": 0.4},
        "garbage",
    ])
    assert items == [AllocationItem(asset="BTC", weight=Decimal("0.6"))]
    assert normalize_items(None) == []


# =============================================================================
# Validation and derivation
# =============================================================================

def test_validate_weights_accepts_cash_remainder():
    validate_weights(_items(BTC="0.7"), Decimal("0.3"))


@pytest.mark.parametrize("items, cash", [
    (_items(BTC="0.7"), Decimal("0")),
    (_items(BTC="1.2", ETH="-0.2"), Decimal("0")),
    ([], Decimal("0")),
])
def test_validate_weights_rejects_bad_allocations(items, cash):
    with pytest.raises(AllocationError):
        validate_weights(items, cash)


def test_derive_allocations_per_profile():
    assert derive_allocations("aggressive", "btc") == _items(BTC="1.0")
    assert derive_allocations("SEMI", "BTC", "ETH") == _items(BTC="0.8", ETH="0.2")
    assert derive_allocations("CONSERVATIVE", "BTC", "ETH", "SOL") == _items(
        BTC="0.6", ETH="0.3", SOL="0.1"
    )


def test_derive_allocations_requires_all_assets_for_profile():
    with pytest.raises(AllocationError, match="Secondary"):
        derive_allocations("SEMI", "BTC")
    with pytest.raises(AllocationError, match="Unsupported"):
        derive_allocations("YOLO", "BTC")
