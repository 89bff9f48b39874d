"""
Allocation snapshot helpers.

Resolves which allocation is active on each day and derives model
allocations from a risk profile.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from compass.core.dates import to_date_key

WEIGHT_TOLERANCE = Decimal("0.000001")

RISK_PROFILE_WEIGHTS: Dict[str, Tuple[Decimal, ...]] = {
    "AGGRESSIVE": (Decimal("1.0"),),
    "SEMI": (Decimal("0.8"), Decimal("0.2")),
    "CONSERVATIVE": (Decimal("0.6"), Decimal("0.3"), Decimal("0.1")),
}


class AllocationError(ValueError):
    """Raised for allocation input that cannot form a valid snapshot."""


@dataclass(frozen=True)
class AllocationItem:
    asset: str
    weight: Decimal

    def to_dict(self) -> dict:
        return {"asset": self.asset, "weight": float(self.weight)}


def normalize_symbol(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def normalize_items(raw_items: Any) -> List[AllocationItem]:
    """Parse stored JSON items, dropping entries without an asset."""
    if not isinstance(raw_items, list):
        return []

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        asset = normalize_symbol(str(raw.get("asset") or ""))
        if not asset:
            continue
        try:
            weight = Decimal(str(raw.get("weight", 0)))
        except InvalidOperation:
            raise AllocationError(f"Invalid weight for {asset}: {raw.get('weight')!r}")
        items.append(AllocationItem(asset=asset, weight=weight))
    return items


def allocation_symbols(snapshots: Iterable[Tuple[date, List[AllocationItem]]]) -> List[str]:
    """Distinct symbols across snapshots, in first-seen order."""
    seen: Dict[str, None] = {}
    for _, items in snapshots:
        for item in items:
            seen.setdefault(item.asset, None)
    return list(seen)


def build_allocations_by_date(
    snapshots: Sequence[Tuple[date, List[AllocationItem]]],
    dates: Sequence[date],
) -> Dict[str, List[AllocationItem]]:
    """
    Map each target date to its active allocation.

    The active allocation is the latest snapshot with as_of_date <= date.
    Snapshots and dates are merged with two pointers; dates must be ascending.
    A later entry for the same as_of_date replaces an earlier one.
    """
    allocation_map: Dict[str, List[AllocationItem]] = {}
    if not snapshots:
        return allocation_map

    ordered = sorted(snapshots, key=lambda snapshot: snapshot[0])
    pointer = 0
    active: Optional[List[AllocationItem]] = None

    for target in dates:
        while pointer < len(ordered) and ordered[pointer][0] <= target:
            active = ordered[pointer][1]
            pointer += 1
        if active is not None:
            allocation_map[to_date_key(target)] = active

    return allocation_map


def validate_weights(items: Sequence[AllocationItem], cash_weight: Decimal = Decimal("0")) -> None:
    """Weights must be non-negative and, with cash, sum to 1."""
    if not items and cash_weight == 0:
        raise AllocationError("Allocation must contain at least one asset")

    for item in items:
        if item.weight < 0:
            raise AllocationError(f"Weight for {item.asset} must be non-negative")
    if cash_weight < 0:
        raise AllocationError("Cash weight must be non-negative")

    total = sum((item.weight for item in items), Decimal("0")) + cash_weight
    if abs(total - Decimal("1")) > WEIGHT_TOLERANCE:
        raise AllocationError(f"Allocation weights must sum to 1.0 (got {total})")


def derive_allocations(
    risk_profile: str,
    primary: Optional[str] = None,
    secondary: Optional[str] = None,
    tertiary: Optional[str] = None,
) -> List[AllocationItem]:
    """
    Build a model allocation for a risk profile.

    AGGRESSIVE holds only the primary asset, SEMI splits 80/20 between
    primary and secondary, CONSERVATIVE splits 60/30/10 across all three.
    """
    profile = (risk_profile or "").strip().upper()
    weights = RISK_PROFILE_WEIGHTS.get(profile)
    if weights is None:
        raise AllocationError(f"Unsupported risk profile: {risk_profile}")

    assets = [normalize_symbol(primary), normalize_symbol(secondary), normalize_symbol(tertiary)]
    labels = ["Primary", "Secondary", "Tertiary"]

    items = []
    for asset, label, weight in zip(assets, labels, weights):
        if not asset:
            raise AllocationError(
                f"{label} asset is required for {profile.lower()} allocations"
            )
        items.append(AllocationItem(asset=asset, weight=weight))

    validate_weights(items)
    return items
