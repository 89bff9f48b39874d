"""
Tests for allocation publishing and dirty marking.
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from compass.models import PORTFOLIO_SCOPE, AllocationSnapshot, RoiDashboardSnapshot
from compass.services.allocation_service import AllocationService
from compass.services.roi import AllocationError, AllocationItem


@pytest.fixture
def enqueued():
    return []


@pytest.fixture
def service(session_factory, enqueued):
    return AllocationService(session_factory=session_factory, enqueue=enqueued.append)


async def _snapshot(session_factory, key):
    async with session_factory() as session:
        result = await session.execute(
            select(RoiDashboardSnapshot).where(
                RoiDashboardSnapshot.scope == PORTFOLIO_SCOPE,
                RoiDashboardSnapshot.portfolio_key == key,
            )
        )
        return result.scalar_one()


async def test_publish_stores_allocation_and_marks_dirty(service, session_factory, enqueued):
    result = await service.publish(
        "T1_Majors_Conservative",
        risk_profile="CONSERVATIVE",
        primary="BTC",
        secondary="ETH",
        tertiary="SOL",
        as_of_date=date(2026, 3, 10),
        updated_by="admin@example.com",
    )

    assert result["portfolioKey"] == "t1_majors_conservative"
    assert result["asOfDate"] == "2026-03-10"
    assert result["recomputeQueued"] is True
    assert enqueued == ["t1_majors_conservative"]

    snapshot = await _snapshot(session_factory, "t1_majors_conservative")
    assert snapshot.needs_recompute is True
    assert snapshot.recompute_from_date == date(2026, 3, 8)

    async with session_factory() as session:
        allocation = (await session.execute(select(AllocationSnapshot))).scalar_one()
    assert [item["asset"] for item in allocation.items] == ["BTC", "ETH", "SOL"]
    assert allocation.updated_by == "admin@example.com"


async def test_same_day_republish_replaces_allocation(service, session_factory):
    await service.publish("alpha", items=[AllocationItem("BTC", Decimal("1"))], as_of_date=date(2026, 3, 10))
    await service.publish("alpha", items=[AllocationItem("ETH", Decimal("1"))], as_of_date=date(2026, 3, 10))

    async with session_factory() as session:
        rows = (await session.execute(select(AllocationSnapshot))).scalars().all()
    assert len(rows) == 1
    assert rows[0].items == [{"asset": "ETH", "weight": 1.0}]


async def test_recompute_from_keeps_earliest_date(service, session_factory):
    items = [AllocationItem("BTC", Decimal("1"))]

    await service.publish("alpha", items=items, as_of_date=date(2026, 3, 10))
    await service.publish("alpha", items=items, as_of_date=date(2026, 3, 5))
    await service.publish("alpha", items=items, as_of_date=date(2026, 3, 20))

    snapshot = await _snapshot(session_factory, "alpha")
    assert snapshot.recompute_from_date == date(2026, 3, 3)


async def test_republish_after_clean_run_sets_new_window(service, session_factory):
    items = [AllocationItem("BTC", Decimal("1"))]
    await service.publish("alpha", items=items, as_of_date=date(2026, 3, 10))

    async with session_factory() as session:
        snapshot = (await session.execute(select(RoiDashboardSnapshot))).scalar_one()
        snapshot.needs_recompute = False
        snapshot.recompute_from_date = None
        await session.commit()

    await service.publish("alpha", items=items, as_of_date=date(2026, 4, 1))

    snapshot = await _snapshot(session_factory, "alpha")
    assert snapshot.needs_recompute is True
    assert snapshot.recompute_from_date == date(2026, 3, 30)


async def test_enqueue_failure_does_not_fail_publish(session_factory):
    def broken_enqueue(key):
        raise ConnectionError("broker down")

    service = AllocationService(session_factory=session_factory, enqueue=broken_enqueue)
    result = await service.publish(
        "alpha", items=[AllocationItem("BTC", Decimal("1"))], as_of_date=date(2026, 3, 10)
    )

    assert result["recomputeQueued"] is False
    assert (await _snapshot(session_factory, "alpha")).needs_recompute is True


async def test_invalid_weights_are_rejected(service, session_factory, enqueued):
    with pytest.raises(AllocationError):
        await service.publish("alpha", items=[AllocationItem("BTC", Decimal("0.5"))])

    with pytest.raises(AllocationError):
        await service.publish("alpha")

    assert enqueued == []
