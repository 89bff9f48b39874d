"""
ROI API endpoints.

Provides:
- Cron trigger for the portfolio ROI job
- Dashboard read model per portfolio
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from compass.core.config import settings
from compass.core.database import get_db
from compass.services.portfolio_roi_service import run_portfolio_roi_job
from compass.services.roi_dashboard_service import RANGE_DAYS, get_portfolio_roi

logger = logging.getLogger(__name__)

cron_router = APIRouter()
router = APIRouter()


# ============================================================================
# Pydantic Response Schemas
# ============================================================================

class NavPointResponse(BaseModel):
    date: str
    nav: float


class KpiResponse(BaseModel):
    roiInception: Optional[float] = None
    roi30d: Optional[float] = None
    maxDrawdown: Optional[float] = None
    volatility: Optional[float] = None


class RebalanceResponse(BaseModel):
    effectiveDate: str
    allocations: List[Dict[str, Any]]
    cashWeight: Optional[float] = None


class PortfolioRoiResponse(BaseModel):
    """Dashboard payload for one portfolio."""
    portfolioKey: str
    range: str
    status: str
    needsRecompute: bool
    asOfDate: Optional[str] = None
    lastComputedAt: Optional[str] = None
    lastError: Optional[str] = None
    kpis: KpiResponse
    navSeries: List[NavPointResponse]
    lastRebalance: Optional[RebalanceResponse] = None
    lastPriceDates: Dict[str, Optional[str]]


# ============================================================================
# Cron trigger
# ============================================================================

def is_cron_authorized(provided_secret: Optional[str], cron_secret: str, is_production: bool) -> bool:
    """A matching secret always passes; no secret configured passes outside production."""
    if cron_secret:
        return provided_secret == cron_secret
    return not is_production


@cron_router.api_route("/portfolio-roi", methods=["GET", "POST"])
async def trigger_portfolio_roi(
    request: Request,
    portfolio_key: Optional[str] = Query(None),
    secret: Optional[str] = Query(None),
):
    """Run the portfolio ROI job synchronously."""
    provided = request.headers.get("x-cron-secret") or secret
    authorized = is_cron_authorized(provided, settings.CRON_SECRET, settings.is_production)
    key = portfolio_key.strip().lower() if portfolio_key else None

    logger.info(
        f"Portfolio ROI cron invoked (authorized={authorized}, "
        f"secret_configured={bool(settings.CRON_SECRET)}, portfolio_key={key})"
    )

    if not authorized:
        if settings.is_production and not settings.CRON_SECRET:
            logger.error("Portfolio ROI cron secret missing in production")
            return JSONResponse(status_code=500, content={"error": "Cron secret missing in production"})
        logger.warning("Portfolio ROI cron unauthorized")
        return JSONResponse(status_code=401, content={"error": "Unauthorized: Invalid cron secret"})

    try:
        results = await run_portfolio_roi_job(portfolio_key=key, trigger="manual-cron")
    except Exception as e:
        logger.error(f"Error in portfolio ROI job: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Failed to recompute portfolio ROI",
                "details": str(e),
            },
        )

    return {"success": True, "results": results}


# ============================================================================
# Dashboard
# ============================================================================

@router.get("/{portfolio_key}", response_model=PortfolioRoiResponse)
async def portfolio_roi(
    portfolio_key: str,
    range: str = Query("1y", description=f"One of {', '.join(RANGE_DAYS)}"),
    db: AsyncSession = Depends(get_db),
):
    """NAV series, KPIs and freshness status for a model portfolio."""
    return await get_portfolio_roi(db, portfolio_key, range)
