"""
Portfolio ROI recompute task.

Runs nightly from beat and on demand after an allocation is published.
"""
import asyncio
import logging
from typing import Optional

from compass.core.redis import StreamNames, get_redis
from compass.scheduler.celery_app import app
from compass.services.portfolio_roi_service import run_portfolio_roi_job

logger = logging.getLogger(__name__)


def _publish_run_events(summary: dict) -> None:
    r = get_redis()
    r.xadd(StreamNames.PORTFOLIO_ROI, {
        "event_type": "batch_complete",
        "run_id": summary.get("runId", ""),
        "trigger": summary.get("trigger", ""),
        "processed": str(summary.get("processed", 0)),
        "succeeded": str(summary.get("succeeded", 0)),
        "failed": str(summary.get("failed", 0)),
    })

    if summary.get("failed"):
        failed_keys = [
            result["portfolioKey"] for result in summary.get("results", []) if result["status"] == "failed"
        ]
        r.xadd(StreamNames.ALERTS, {
            "level": "ERROR",
            "title": "Portfolio ROI Failures",
            "message": f"{len(failed_keys)} portfolios failed to recompute: {','.join(failed_keys)}",
        })


@app.task(name="compass.tasks.portfolio_roi.recompute_portfolio_roi")
def recompute_portfolio_roi(
    portfolio_key: Optional[str] = None,
    trigger: str = "scheduled",
    include_clean: bool = False,
):
    """
    Recompute NAV and ROI metrics for dirty portfolios.

    Args:
        portfolio_key: Only recompute this portfolio
        trigger: Run origin recorded in the job lock ("scheduled", "allocation-publish", ...)
        include_clean: Also recompute portfolios that are not flagged dirty

    Returns:
        Run summary dict
    """
    summary = asyncio.run(run_portfolio_roi_job(
        portfolio_key=portfolio_key,
        trigger=trigger,
        include_clean=include_clean,
    ))

    if summary.get("skipped"):
        logger.info(
            f"Portfolio ROI run skipped ({trigger}): lock held by {summary.get('heldBy')}"
        )
        return summary

    logger.info(
        f"Portfolio ROI run {summary['runId']} ({trigger}) finished: "
        f"{summary['succeeded']} ok, {summary['failed']} failed in {summary['durationMs']}ms"
    )

    try:
        _publish_run_events(summary)
    except Exception as e:
        logger.error(f"Failed to publish stream event: {e}")

    return summary
