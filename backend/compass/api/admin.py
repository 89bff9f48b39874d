"""
Admin API Router.

Allocation publishing and ROI pipeline diagnostics.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from compass.core.database import get_db
from compass.core.metrics import metrics
from compass.services.allocation_service import AllocationService
from compass.services.roi.allocations import AllocationError, AllocationItem, normalize_symbol
from compass.services.roi_dashboard_service import get_diagnostics

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- Pydantic Schemas ----------

class AllocationItemIn(BaseModel):
    asset: str = Field(..., min_length=1)
    weight: Decimal = Field(..., ge=0, le=1)


class AllocationPublish(BaseModel):
    """Either explicit items or a risk profile with its ranked assets."""
    portfolio_key: str = Field(..., min_length=1)
    as_of_date: Optional[date] = None
    items: Optional[List[AllocationItemIn]] = None
    cash_weight: Decimal = Field(Decimal("0"), ge=0, le=1)
    risk_profile: Optional[str] = None
    primary_asset: Optional[str] = None
    secondary_asset: Optional[str] = None
    tertiary_asset: Optional[str] = None
    updated_by: Optional[str] = None


class AllocationPublished(BaseModel):
    portfolioKey: str
    asOfDate: str
    items: List[dict]
    cashWeight: float
    recomputeQueued: bool


# ---------- Endpoints ----------

@router.post("/allocations", response_model=AllocationPublished)
async def publish_allocation(body: AllocationPublish):
    """Publish a dated allocation and queue the portfolio for recompute."""
    items = None
    if body.items is not None:
        items = [
            AllocationItem(asset=normalize_symbol(item.asset), weight=item.weight)
            for item in body.items
        ]

    try:
        return await AllocationService().publish(
            portfolio_key=body.portfolio_key,
            items=items,
            cash_weight=body.cash_weight,
            risk_profile=body.risk_profile,
            primary=body.primary_asset,
            secondary=body.secondary_asset,
            tertiary=body.tertiary_asset,
            as_of_date=body.as_of_date,
            updated_by=body.updated_by,
        )
    except AllocationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/diagnostics")
async def diagnostics(
    portfolio_key: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """Latest allocation, NAV, price dates and snapshot state for a portfolio."""
    return await get_diagnostics(db, portfolio_key)


@router.get("/metrics")
async def metrics_summary(hours: int = Query(24, ge=1, le=168)):
    """Aggregated job metrics from this process's buffer."""
    return metrics.get_summary(hours)
