"""
Portfolio ROI job orchestrator.

Per run:
1. Acquire the global job lock (skip the run if another run holds it)
2. Select dirty portfolios, oldest-updated first
3. For each: ingest prices -> resolve gap-free series -> compound NAV ->
   persist series + metrics and mark clean
4. Release the lock

Portfolios are processed sequentially and in isolation: a failure is
recorded on that portfolio's snapshot, which stays dirty for the next run.
"""
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update

from compass.core.config import settings
from compass.core.database import AsyncSessionLocal, upsert_insert
from compass.core.dates import list_dates, parse_date_key, to_date_key, utc_today
from compass.core.metrics import metrics
from compass.models.allocation_snapshot import AllocationSnapshot
from compass.models.asset_price_daily import AssetPriceDaily
from compass.models.base import utcnow
from compass.models.performance_series import NAV_SERIES_TYPE, PerformanceSeries
from compass.models.roi_dashboard_snapshot import PORTFOLIO_SCOPE, RoiDashboardSnapshot
from compass.services.job_lock import JobLock
from compass.services.price_ingestion_service import PriceIngestionService
from compass.services.roi import (
    AllocationItem,
    allocation_symbols,
    build_allocations_by_date,
    compute_metrics,
    compute_nav_series,
    fill_prices_for_dates,
    normalize_items,
)

logger = logging.getLogger(__name__)

SERIES_BATCH_SIZE = 150


class PortfolioRecomputeError(Exception):
    """Raised when a portfolio's NAV cannot be recomputed from current data."""


@dataclass
class PortfolioResult:
    portfolio_key: str
    status: str  # "ok", "no_allocations", "failed"
    points: int = 0
    as_of_date: Optional[date] = None
    error: Optional[str] = None
    ingestion: Dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "portfolioKey": self.portfolio_key,
            "status": self.status,
            "points": self.points,
            "asOfDate": to_date_key(self.as_of_date) if self.as_of_date else None,
            "error": self.error,
            "ingestion": self.ingestion,
        }


@dataclass
class _PortfolioPlan:
    snapshot_id: int
    snapshot_updated_at: datetime
    payload: Dict[str, Any]
    allocations: List[Tuple[date, List[AllocationItem]]]
    symbols: List[str]
    start_date: date
    end_date: date
    price_start_date: date
    persist_from: date


class PortfolioRoiService:
    """Drives the NAV recompute pipeline for dirty portfolios."""

    def __init__(
        self,
        session_factory=None,
        ingestion_service: Optional[PriceIngestionService] = None,
        job_lock: Optional[JobLock] = None,
        warmup_days: Optional[int] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.ingestion_service = ingestion_service or PriceIngestionService(
            session_factory=self.session_factory
        )
        self.job_lock = job_lock or JobLock(session_factory=self.session_factory)
        self.warmup_days = settings.ROI_PRICE_WARMUP_DAYS if warmup_days is None else warmup_days

    async def run(
        self,
        portfolio_key: Optional[str] = None,
        trigger: str = "manual",
        include_clean: bool = False,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Run one job pass.

        Args:
            portfolio_key: Restrict the run to one portfolio (dirty or not)
            trigger: Who started the run, recorded in the lock payload
            include_clean: Recompute clean portfolios too
            start_date: Rewrite stored NAV rows from this date on; NAV still
                compounds from the first allocation
            end_date: Override the recompute window end (default: today UTC)

        Returns:
            Run summary, or {"skipped": "locked"} when another run holds the lock.
        """
        run_id = str(uuid.uuid4())
        if portfolio_key:
            portfolio_key = portfolio_key.strip().lower()

        lock = await self.job_lock.acquire(run_id, trigger)
        if not lock.acquired:
            return {
                "runId": run_id,
                "trigger": trigger,
                "skipped": "locked",
                "heldBy": lock.current_run_id,
            }

        started = time.monotonic()
        results: List[PortfolioResult] = []
        abandoned = False

        try:
            targets = await self._select_portfolios(portfolio_key, include_clean)
            logger.info(
                f"Portfolio ROI run {run_id} ({trigger}): {len(targets)} portfolios to process"
            )

            for snapshot_id, key in targets:
                if not await self.job_lock.still_held(run_id):
                    logger.warning(
                        f"Portfolio ROI run {run_id} lost its lock; stopping before {key}"
                    )
                    abandoned = True
                    break

                try:
                    result = await self._process_portfolio(snapshot_id, key, start_date, end_date)
                except Exception as e:
                    logger.error(
                        f"Failed to recompute portfolio {key} (run_id={run_id}): {e}",
                        exc_info=True,
                    )
                    metrics.portfolio_failed(key, str(e))
                    await self._record_failure(snapshot_id, key, e)
                    result = PortfolioResult(portfolio_key=key, status="failed", error=str(e))

                results.append(result)
        finally:
            if abandoned:
                logger.warning(f"Portfolio ROI run {run_id} leaves the lock to its new holder")
            elif not await self.job_lock.release(run_id):
                logger.warning(f"Portfolio ROI run {run_id} lost its lock before finishing")
                abandoned = True

        duration_ms = (time.monotonic() - started) * 1000
        succeeded = sum(1 for r in results if r.status != "failed")
        failed = len(results) - succeeded
        metrics.batch_processed(len(results), succeeded, failed, duration_ms)

        return {
            "runId": run_id,
            "trigger": trigger,
            "lockStolen": lock.stolen,
            "processed": len(results),
            "succeeded": succeeded,
            "failed": failed,
            "abandoned": abandoned,
            "durationMs": round(duration_ms, 2),
            "results": [r.to_dict() for r in results],
        }

    async def _select_portfolios(
        self,
        portfolio_key: Optional[str],
        include_clean: bool,
    ) -> List[Tuple[int, str]]:
        stmt = select(RoiDashboardSnapshot.id, RoiDashboardSnapshot.portfolio_key).where(
            RoiDashboardSnapshot.scope == PORTFOLIO_SCOPE,
            RoiDashboardSnapshot.portfolio_key.is_not(None),
        )
        if portfolio_key:
            stmt = stmt.where(RoiDashboardSnapshot.portfolio_key == portfolio_key)
        elif not include_clean:
            stmt = stmt.where(RoiDashboardSnapshot.needs_recompute.is_(True))
        stmt = stmt.order_by(RoiDashboardSnapshot.updated_at.asc(), RoiDashboardSnapshot.id.asc())

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = [(row.id, row.portfolio_key) for row in result.all()]

        if portfolio_key and not rows:
            logger.warning(f"No ROI snapshot found for portfolio key {portfolio_key}")
        return rows

    async def _process_portfolio(
        self,
        snapshot_id: int,
        portfolio_key: str,
        start_override: Optional[date],
        end_override: Optional[date],
    ) -> PortfolioResult:
        plan = await self._plan(snapshot_id, portfolio_key, start_override, end_override)
        if plan is None:
            return PortfolioResult(portfolio_key=portfolio_key, status="no_allocations")

        summaries = await self.ingestion_service.ingest_prices(
            plan.symbols, plan.price_start_date, plan.end_date
        )

        async with self.session_factory() as session:
            stmt = select(
                AssetPriceDaily.symbol, AssetPriceDaily.date, AssetPriceDaily.close
            ).where(
                AssetPriceDaily.symbol.in_(plan.symbols),
                AssetPriceDaily.date >= plan.price_start_date,
                AssetPriceDaily.date <= plan.end_date,
            ).order_by(AssetPriceDaily.date.asc())
            price_rows = (await session.execute(stmt)).all()

            dates = list_dates(plan.price_start_date, plan.end_date)
            prices_by_symbol = fill_prices_for_dates(
                plan.symbols,
                [(row.symbol, row.date, row.close) for row in price_rows],
                dates,
            )
            allocations_by_date = build_allocations_by_date(plan.allocations, dates)
            nav_series = compute_nav_series(
                dates, allocations_by_date, prices_by_symbol, portfolio_key=portfolio_key
            )

            if not nav_series:
                raise PortfolioRecomputeError(
                    f"No NAV series computed for {portfolio_key} between "
                    f"{plan.start_date} and {plan.end_date}"
                )

            now = utcnow()
            records = [
                {
                    "series_type": NAV_SERIES_TYPE,
                    "portfolio_key": portfolio_key,
                    "date": parse_date_key(point.date_key),
                    "value": point.nav,
                    "created_at": now,
                    "updated_at": now,
                }
                for point in nav_series
                if parse_date_key(point.date_key) >= plan.persist_from
            ]
            for i in range(0, len(records), SERIES_BATCH_SIZE):
                stmt = upsert_insert(session, PerformanceSeries).values(
                    records[i:i + SERIES_BATCH_SIZE]
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["series_type", "portfolio_key", "date"],
                    set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
                )
                await session.execute(stmt)

            roi = compute_metrics(nav_series)
            payload = {k: v for k, v in plan.payload.items() if k not in ("lastError", "lastErrorAt")}

            # An allocation published mid-run bumps updated_at; keep it dirty then
            current_updated_at = (await session.execute(
                select(RoiDashboardSnapshot.updated_at).where(RoiDashboardSnapshot.id == snapshot_id)
            )).scalar_one()
            still_dirty = current_updated_at != plan.snapshot_updated_at
            if still_dirty:
                logger.info(
                    f"Portfolio {portfolio_key} changed during recompute; leaving it dirty"
                )

            values = {
                "as_of_date": roi.as_of_date,
                "roi_inception": roi.roi_inception,
                "roi_30d": roi.roi_30d,
                "max_drawdown": roi.max_drawdown,
                "volatility": roi.volatility,
                "last_computed_at": now,
                "payload": json.dumps(payload),
                "updated_at": now,
            }
            if not still_dirty:
                values["needs_recompute"] = False
                values["recompute_from_date"] = None

            await session.execute(
                update(RoiDashboardSnapshot)
                .where(RoiDashboardSnapshot.id == snapshot_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            # Series and metrics become visible together
            await session.commit()

        forward_filled = sum(1 for point in nav_series if point.forward_filled)
        logger.info(
            f"Recomputed {portfolio_key}: {len(nav_series)} NAV points "
            f"({forward_filled} forward-filled), ROI since inception {float(roi.roi_inception):.2f}%"
        )
        metrics.portfolio_recomputed(portfolio_key, len(nav_series), float(roi.roi_inception))

        return PortfolioResult(
            portfolio_key=portfolio_key,
            status="ok",
            points=len(nav_series),
            as_of_date=roi.as_of_date,
            ingestion={symbol: summary.to_dict() for symbol, summary in summaries.items()},
        )

    async def _plan(
        self,
        snapshot_id: int,
        portfolio_key: str,
        start_override: Optional[date],
        end_override: Optional[date],
    ) -> Optional[_PortfolioPlan]:
        """Load allocation history and work out the recompute window."""
        async with self.session_factory() as session:
            snapshot = await session.get(RoiDashboardSnapshot, snapshot_id)
            if snapshot is None:
                raise PortfolioRecomputeError(f"ROI snapshot {snapshot_id} disappeared")

            stmt = select(AllocationSnapshot).where(
                AllocationSnapshot.portfolio_key == portfolio_key
            ).order_by(AllocationSnapshot.as_of_date.asc())
            rows = (await session.execute(stmt)).scalars().all()

            if not rows:
                logger.warning(f"No allocation snapshots for portfolio key {portfolio_key}")
                snapshot.needs_recompute = False
                snapshot.recompute_from_date = None
                snapshot.last_computed_at = utcnow()
                await session.commit()
                return None

            allocations = [(row.as_of_date, normalize_items(row.items)) for row in rows]
            symbols = allocation_symbols(allocations)
            if not symbols:
                raise PortfolioRecomputeError(f"No allocation symbols for portfolio key {portfolio_key}")

            earliest = allocations[0][0]
            recompute_from = snapshot.recompute_from_date or earliest
            start = min(recompute_from, earliest)
            persist_from = start
            if start_override:
                # NAV is always compounded from inception; the override only
                # narrows which rows are rewritten
                start = min(start_override, start)
                persist_from = start_override
                if snapshot.recompute_from_date:
                    persist_from = min(persist_from, snapshot.recompute_from_date)
            end = end_override or utc_today()

            return _PortfolioPlan(
                snapshot_id=snapshot_id,
                snapshot_updated_at=snapshot.updated_at,
                payload=snapshot.payload_dict(),
                allocations=allocations,
                symbols=symbols,
                start_date=start,
                end_date=end,
                price_start_date=start - timedelta(days=self.warmup_days),
                persist_from=persist_from,
            )

    async def _record_failure(self, snapshot_id: int, portfolio_key: str, error: Exception) -> None:
        """Store the error on the snapshot; the portfolio stays dirty."""
        try:
            async with self.session_factory() as session:
                snapshot = await session.get(RoiDashboardSnapshot, snapshot_id)
                if snapshot is None:
                    return
                payload = snapshot.payload_dict()
                payload["lastError"] = str(error)
                payload["lastErrorAt"] = utcnow().isoformat()
                snapshot.payload = json.dumps(payload)
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to record error for portfolio {portfolio_key}: {e}", exc_info=True)


async def run_portfolio_roi_job(**kwargs) -> Dict[str, Any]:
    """Run the job with default collaborators."""
    return await PortfolioRoiService().run(**kwargs)
