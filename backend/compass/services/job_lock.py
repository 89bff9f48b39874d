"""
Database-backed job lock.

A row in roi_dashboard_snapshots under (PORTFOLIO_JOB_LOCK, GLOBAL) marks a
running job. Creation relies on the (scope, portfolio_key) unique
constraint, so the lock holds across processes and hosts. A lock whose row
has not been touched within the TTL is considered abandoned and may be
stolen by a new run.
"""
import json
import logging
import socket
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from compass.core.config import settings
from compass.core.database import AsyncSessionLocal
from compass.core.metrics import metrics
from compass.models.base import utcnow
from compass.models.roi_dashboard_snapshot import (
    JOB_LOCK_KEY,
    PORTFOLIO_JOB_LOCK_SCOPE,
    RoiDashboardSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass
class LockAcquisition:
    acquired: bool
    run_id: str
    stolen: bool = False
    current_run_id: Optional[str] = None  # holder when not acquired
    previous_run_id: Optional[str] = None  # holder we stole from


def default_holder() -> str:
    return settings.JOB_HOLDER or socket.gethostname() or "local"


class JobLock:
    """Optimistic create-or-steal mutual exclusion for the ROI job."""

    def __init__(
        self,
        session_factory=None,
        scope: str = PORTFOLIO_JOB_LOCK_SCOPE,
        key: str = JOB_LOCK_KEY,
        ttl: Optional[timedelta] = None,
        holder: Optional[str] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.scope = scope
        self.key = key
        self.ttl = ttl if ttl is not None else timedelta(minutes=settings.ROI_JOB_LOCK_TTL_MINUTES)
        self.holder = holder or default_holder()

    async def acquire(self, run_id: str, trigger: str) -> LockAcquisition:
        now = utcnow()
        payload = {
            "runId": run_id,
            "trigger": trigger,
            "holder": self.holder,
            "lockedAt": now.isoformat(),
        }

        async with self.session_factory() as session:
            session.add(RoiDashboardSnapshot(
                scope=self.scope,
                portfolio_key=self.key,
                payload=json.dumps(payload),
                needs_recompute=False,
                created_at=now,
                updated_at=now,
            ))
            try:
                await session.commit()
                logger.info(
                    f"Job lock acquired (run_id={run_id}, trigger={trigger}, holder={self.holder})"
                )
                return LockAcquisition(acquired=True, run_id=run_id)
            except IntegrityError:
                await session.rollback()

        async with self.session_factory() as session:
            existing = await self._get(session)
            existing_payload = existing.payload_dict() if existing else {}
            existing_run_id = existing_payload.get("runId", "unknown")

            stale_before = now - self.ttl
            if existing is not None and existing.updated_at < stale_before:
                stolen_payload = {**payload, "stolen": True, "previousRunId": existing_run_id}
                # Guard on updated_at so two concurrent stealers cannot both win
                stmt = (
                    update(RoiDashboardSnapshot)
                    .where(
                        RoiDashboardSnapshot.id == existing.id,
                        RoiDashboardSnapshot.updated_at == existing.updated_at,
                    )
                    .values(payload=json.dumps(stolen_payload), updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                await session.commit()

                if result.rowcount == 1:
                    logger.warning(
                        f"Job lock was stale and has been stolen (run_id={run_id}, "
                        f"previous_run_id={existing_run_id}, "
                        f"previous_holder={existing_payload.get('holder', 'unknown')}, "
                        f"previous_locked_at={existing_payload.get('lockedAt')})"
                    )
                    metrics.lock_stolen(run_id, existing_run_id)
                    return LockAcquisition(
                        acquired=True,
                        run_id=run_id,
                        stolen=True,
                        previous_run_id=existing_run_id,
                    )

        logger.warning(
            f"Job lock is currently held (run_id={run_id}, current_run_id={existing_run_id}, "
            f"current_holder={existing_payload.get('holder', 'unknown')}, "
            f"locked_at={existing_payload.get('lockedAt')})"
        )
        metrics.lock_contended(run_id, existing_run_id)
        return LockAcquisition(acquired=False, run_id=run_id, current_run_id=existing_run_id)

    async def still_held(self, run_id: str) -> bool:
        """True while the lock record still names run_id as its holder."""
        async with self.session_factory() as session:
            existing = await self._get(session)
            if existing is None:
                return False
            return existing.payload_dict().get("runId") == run_id

    async def current_payload(self) -> Optional[dict]:
        async with self.session_factory() as session:
            existing = await self._get(session)
            return existing.payload_dict() if existing else None

    async def release(self, run_id: Optional[str] = None) -> bool:
        """
        Delete the lock record.

        With run_id, the record is only deleted while it still names that
        run; a lock stolen by another run is left in place.
        """
        async with self.session_factory() as session:
            stmt = delete(RoiDashboardSnapshot).where(
                RoiDashboardSnapshot.scope == self.scope,
                RoiDashboardSnapshot.portfolio_key == self.key,
            )
            if run_id is not None:
                existing = await self._get(session)
                if existing is None or existing.payload_dict().get("runId") != run_id:
                    logger.warning(f"Job lock no longer held by run {run_id}; not releasing")
                    return False
                # A steal rewrites updated_at, so this delete loses to it
                stmt = stmt.where(
                    RoiDashboardSnapshot.id == existing.id,
                    RoiDashboardSnapshot.updated_at == existing.updated_at,
                )
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()

        if result.rowcount == 0:
            logger.warning(f"Job lock was not released (run_id={run_id})")
            return False
        logger.info("Job lock released")
        return True

    async def _get(self, session) -> Optional[RoiDashboardSnapshot]:
        stmt = select(RoiDashboardSnapshot).where(
            RoiDashboardSnapshot.scope == self.scope,
            RoiDashboardSnapshot.portfolio_key == self.key,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
