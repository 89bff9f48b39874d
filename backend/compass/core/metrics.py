"""
Metrics emission system for observability.

Provides structured metrics for:
- Price ingestion per symbol
- Degraded NAV days (forward-filled because of missing prices)
- Job lock contention and stale-lock steals
- Per-portfolio recompute outcomes and batch totals

Metrics are emitted to:
1. Python logging (immediate visibility)
2. Redis stream (real-time consumers, dashboard)
3. In-memory buffer (API aggregation)
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from compass.core.redis import StreamNames

logger = logging.getLogger(__name__)


@dataclass
class MetricEvent:
    """Structured metric event."""
    timestamp: datetime
    category: str          # "prices", "nav", "lock", "job"
    event_type: str        # "ingested", "forward_filled", "contended", etc.
    symbol: Optional[str]
    portfolio_key: Optional[str]
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "event_type": self.event_type,
            "symbol": self.symbol,
            "portfolio_key": self.portfolio_key,
            "value": self.value,
            "metadata": self.metadata
        }


class MetricsEmitter:
    """
    Emit structured metrics to multiple destinations.
    """

    # Category constants
    CATEGORY_PRICES = "prices"
    CATEGORY_NAV = "nav"
    CATEGORY_LOCK = "lock"
    CATEGORY_JOB = "job"

    def __init__(self, redis_client=None, buffer_size: int = 1000):
        """
        Initialize metrics emitter.

        Args:
            redis_client: Optional sync Redis client for stream publishing
            buffer_size: Max events to keep in memory buffer
        """
        self.redis = redis_client
        self.buffer_size = buffer_size
        self._buffer: List[MetricEvent] = []

    def set_redis(self, redis_client) -> None:
        """Set Redis client (for lazy initialization)."""
        self.redis = redis_client

    def emit(
        self,
        category: str,
        event_type: str,
        value: float,
        symbol: str = None,
        portfolio_key: str = None,
        metadata: dict = None
    ) -> MetricEvent:
        """
        Emit a metric event.

        Args:
            category: Event category (prices, nav, lock, job)
            event_type: Specific event type within category
            value: Numeric value (1.0/0.0 for boolean, actual value for numeric)
            symbol: Optional asset symbol
            portfolio_key: Optional portfolio identity
            metadata: Additional context as key-value pairs

        Returns:
            The emitted MetricEvent
        """
        event = MetricEvent(
            timestamp=datetime.now(timezone.utc),
            category=category,
            event_type=event_type,
            symbol=symbol,
            portfolio_key=portfolio_key,
            value=value,
            metadata=metadata or {}
        )

        meta_str = f" {metadata}" if metadata else ""
        logger.info(
            f"METRIC [{category}/{event_type}] "
            f"portfolio={portfolio_key} symbol={symbol} value={value}{meta_str}"
        )

        self._buffer.append(event)
        if len(self._buffer) > self.buffer_size:
            self._buffer = self._buffer[-self.buffer_size:]

        if self.redis:
            try:
                self.redis.xadd(StreamNames.METRICS, {
                    "data": json.dumps(event.to_dict())
                })
            except Exception as e:
                logger.warning(f"Failed to publish metric to Redis: {e}")

        return event

    # =========================================================================
    # Convenience methods
    # =========================================================================

    def prices_ingested(self, symbol: str, requested: int, inserted: int,
                        updated: int, source: str) -> MetricEvent:
        return self.emit(
            self.CATEGORY_PRICES, "ingested", requested,
            symbol=symbol,
            metadata={"inserted": inserted, "updated": updated, "source": source}
        )

    def price_fetch_failed(self, symbol: str, error: str) -> MetricEvent:
        return self.emit(
            self.CATEGORY_PRICES, "fetch_failed", 1.0,
            symbol=symbol,
            metadata={"error": error}
        )

    def nav_day_forward_filled(self, date_key: str, missing_symbols: List[str],
                               portfolio_key: str = None) -> MetricEvent:
        return self.emit(
            self.CATEGORY_NAV, "forward_filled", len(missing_symbols),
            portfolio_key=portfolio_key,
            metadata={"date": date_key, "missing": missing_symbols}
        )

    def lock_contended(self, run_id: str, holder_run_id: str) -> MetricEvent:
        return self.emit(
            self.CATEGORY_LOCK, "contended", 1.0,
            metadata={"run_id": run_id, "holder_run_id": holder_run_id}
        )

    def lock_stolen(self, run_id: str, previous_run_id: str) -> MetricEvent:
        return self.emit(
            self.CATEGORY_LOCK, "stolen", 1.0,
            metadata={"run_id": run_id, "previous_run_id": previous_run_id}
        )

    def portfolio_recomputed(self, portfolio_key: str, points: int,
                             roi_inception: float) -> MetricEvent:
        return self.emit(
            self.CATEGORY_JOB, "portfolio_recomputed", points,
            portfolio_key=portfolio_key,
            metadata={"roi_inception": round(roi_inception, 4)}
        )

    def portfolio_failed(self, portfolio_key: str, error: str) -> MetricEvent:
        return self.emit(
            self.CATEGORY_JOB, "portfolio_failed", 1.0,
            portfolio_key=portfolio_key,
            metadata={"error": error}
        )

    def batch_processed(self, count: int, success: int, failed: int,
                        duration_ms: float) -> MetricEvent:
        return self.emit(
            self.CATEGORY_JOB, "batch_processed", count,
            metadata={
                "success": success,
                "failed": failed,
                "duration_ms": round(duration_ms, 2)
            }
        )

    # =========================================================================
    # Aggregation methods
    # =========================================================================

    def get_buffer(self) -> List[MetricEvent]:
        """Get buffered events (for API)."""
        return list(self._buffer)

    def get_summary(self, hours: int = 24) -> dict:
        """Get aggregated summary of recent metrics."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        recent = [e for e in self._buffer if e.timestamp >= cutoff]

        by_category: Dict[str, int] = {}
        by_event: Dict[str, int] = {}
        for event in recent:
            by_category[event.category] = by_category.get(event.category, 0) + 1
            key = f"{event.category}/{event.event_type}"
            by_event[key] = by_event.get(key, 0) + 1

        return {
            "period_hours": hours,
            "total_events": len(recent),
            "by_category": by_category,
            "by_event": by_event,
            "forward_filled_days": by_event.get("nav/forward_filled", 0),
            "locks_contended": by_event.get("lock/contended", 0),
            "locks_stolen": by_event.get("lock/stolen", 0),
            "portfolios_failed": by_event.get("job/portfolio_failed", 0),
        }

    def clear_buffer(self) -> int:
        """Clear buffer and return count of cleared events."""
        count = len(self._buffer)
        self._buffer = []
        return count


# Global singleton instance
metrics = MetricsEmitter()
