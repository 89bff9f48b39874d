"""
Tests for the database-backed job lock.
"""
from datetime import timedelta

from sqlalchemy import update

from compass.models import JOB_LOCK_KEY, PORTFOLIO_JOB_LOCK_SCOPE, RoiDashboardSnapshot
from compass.models.base import utcnow
from compass.services.job_lock import JobLock


async def _age_lock(session_factory, minutes):
    async with session_factory() as session:
        await session.execute(
            update(RoiDashboardSnapshot)
            .where(
                RoiDashboardSnapshot.scope == PORTFOLIO_JOB_LOCK_SCOPE,
                RoiDashboardSnapshot.portfolio_key == JOB_LOCK_KEY,
            )
            .values(updated_at=utcnow() - timedelta(minutes=minutes))
        )
        await session.commit()


async def test_first_run_acquires_lock(session_factory):
    lock = JobLock(session_factory=session_factory, holder="worker-a")

    result = await lock.acquire("run-a", "scheduled")

    assert result.acquired
    assert not result.stolen
    payload = await lock.current_payload()
    assert payload["runId"] == "run-a"
    assert payload["trigger"] == "scheduled"
    assert payload["holder"] == "worker-a"
    assert "lockedAt" in payload


async def test_second_run_is_rejected_while_lock_is_fresh(session_factory):
    first = JobLock(session_factory=session_factory, holder="worker-a")
    second = JobLock(session_factory=session_factory, holder="worker-b")

    await first.acquire("run-a", "scheduled")
    result = await second.acquire("run-b", "manual")

    assert not result.acquired
    assert result.current_run_id == "run-a"
    assert (await second.current_payload())["runId"] == "run-a"


async def test_stale_lock_is_stolen(session_factory):
    first = JobLock(session_factory=session_factory, ttl=timedelta(minutes=30))
    second = JobLock(session_factory=session_factory, ttl=timedelta(minutes=30))

    await first.acquire("run-a", "scheduled")
    await _age_lock(session_factory, minutes=31)
    result = await second.acquire("run-b", "manual")

    assert result.acquired
    assert result.stolen
    assert result.previous_run_id == "run-a"
    payload = await second.current_payload()
    assert payload["runId"] == "run-b"
    assert payload["stolen"] is True
    assert payload["previousRunId"] == "run-a"

    assert await second.still_held("run-b")
    assert not await first.still_held("run-a")


async def test_stolen_lock_is_fresh_again(session_factory):
    lock = JobLock(session_factory=session_factory, ttl=timedelta(minutes=30))

    await lock.acquire("run-a", "scheduled")
    await _age_lock(session_factory, minutes=45)
    await lock.acquire("run-b", "scheduled")
    third = await lock.acquire("run-c", "scheduled")

    assert not third.acquired
    assert third.current_run_id == "run-b"


async def test_release_allows_next_run(session_factory):
    lock = JobLock(session_factory=session_factory)

    await lock.acquire("run-a", "scheduled")
    await lock.release()

    assert await lock.current_payload() is None
    assert not await lock.still_held("run-a")
    assert (await lock.acquire("run-b", "scheduled")).acquired


async def test_release_by_owner(session_factory):
    lock = JobLock(session_factory=session_factory)

    await lock.acquire("run-a", "scheduled")

    assert await lock.release("run-a")
    assert await lock.current_payload() is None


async def test_release_leaves_stolen_lock_alone(session_factory):
    first = JobLock(session_factory=session_factory, ttl=timedelta(minutes=30))
    second = JobLock(session_factory=session_factory, ttl=timedelta(minutes=30))

    await first.acquire("run-a", "scheduled")
    await _age_lock(session_factory, minutes=31)
    await second.acquire("run-b", "manual")

    assert not await first.release("run-a")
    assert (await second.current_payload())["runId"] == "run-b"
    assert not (await first.acquire("run-c", "scheduled")).acquired
