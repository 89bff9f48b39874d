"""
Allocation publishing.

Stores a dated allocation snapshot for a portfolio, marks the portfolio's
ROI state dirty and enqueues a recompute.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from sqlalchemy import case

from compass.core.config import settings
from compass.core.database import AsyncSessionLocal, upsert_insert
from compass.core.dates import to_date_key, utc_today
from compass.models.allocation_snapshot import AllocationSnapshot
from compass.models.base import utcnow
from compass.models.roi_dashboard_snapshot import PORTFOLIO_SCOPE, RoiDashboardSnapshot
from compass.services.roi.allocations import (
    AllocationError,
    AllocationItem,
    derive_allocations,
    validate_weights,
)

logger = logging.getLogger(__name__)


def enqueue_recompute(portfolio_key: str) -> None:
    """Fire-and-forget the Celery recompute task."""
    from compass.tasks.portfolio_roi import recompute_portfolio_roi

    recompute_portfolio_roi.delay(portfolio_key=portfolio_key, trigger="allocation-publish")


class AllocationService:
    """Publishes allocation snapshots and flags portfolios for recompute."""

    def __init__(
        self,
        session_factory=None,
        enqueue: Optional[Callable[[str], None]] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.enqueue = enqueue or enqueue_recompute

    async def publish(
        self,
        portfolio_key: str,
        items: Optional[Sequence[AllocationItem]] = None,
        cash_weight: Decimal = Decimal("0"),
        risk_profile: Optional[str] = None,
        primary: Optional[str] = None,
        secondary: Optional[str] = None,
        tertiary: Optional[str] = None,
        as_of_date: Optional[date] = None,
        updated_by: Optional[str] = None,
    ) -> dict:
        """
        Upsert the allocation for (portfolio_key, as_of_date) and mark the
        portfolio dirty.

        Either explicit items or a risk profile with its assets must be given.
        Publishing twice on the same day replaces that day's snapshot.
        """
        key = (portfolio_key or "").strip().lower()
        if not key:
            raise AllocationError("portfolio_key is required")

        if items is None:
            if not risk_profile:
                raise AllocationError("Either items or a risk profile is required")
            allocation_items: List[AllocationItem] = derive_allocations(
                risk_profile, primary, secondary, tertiary
            )
        else:
            allocation_items = list(items)

        cash_weight = Decimal(str(cash_weight or 0))
        validate_weights(allocation_items, cash_weight)

        as_of = as_of_date or utc_today()
        recompute_from = as_of - timedelta(days=settings.ROI_PUBLISH_RECOMPUTE_LOOKBACK_DAYS)
        now = utcnow()

        async with self.session_factory() as session:
            stmt = upsert_insert(session, AllocationSnapshot).values(
                portfolio_key=key,
                as_of_date=as_of,
                items=[item.to_dict() for item in allocation_items],
                cash_weight=cash_weight,
                updated_by=updated_by,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["portfolio_key", "as_of_date"],
                set_={
                    "items": stmt.excluded["items"],
                    "cash_weight": stmt.excluded.cash_weight,
                    "updated_by": stmt.excluded.updated_by,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)

            stmt = upsert_insert(session, RoiDashboardSnapshot).values(
                scope=PORTFOLIO_SCOPE,
                portfolio_key=key,
                payload="{}",
                needs_recompute=True,
                recompute_from_date=recompute_from,
                created_at=now,
                updated_at=now,
            )
            existing_from = RoiDashboardSnapshot.recompute_from_date
            stmt = stmt.on_conflict_do_update(
                index_elements=["scope", "portfolio_key"],
                set_={
                    "needs_recompute": True,
                    # low-water mark: keep the earliest invalidated date
                    "recompute_from_date": case(
                        (existing_from.is_(None), stmt.excluded.recompute_from_date),
                        (existing_from < stmt.excluded.recompute_from_date, existing_from),
                        else_=stmt.excluded.recompute_from_date,
                    ),
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)
            await session.commit()

        logger.info(
            f"Published allocation for {key} as of {as_of}: "
            f"{[(item.asset, float(item.weight)) for item in allocation_items]} "
            f"cash={float(cash_weight)}"
        )

        enqueued = True
        try:
            self.enqueue(key)
        except Exception as e:
            enqueued = False
            logger.error(f"Failed to enqueue ROI recompute for {key}: {e}", exc_info=True)

        return {
            "portfolioKey": key,
            "asOfDate": to_date_key(as_of),
            "items": [item.to_dict() for item in allocation_items],
            "cashWeight": float(cash_weight),
            "recomputeQueued": enqueued,
        }
