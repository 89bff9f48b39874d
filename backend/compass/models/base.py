from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_mixin


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@declarative_mixin
class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    # Bumped on every write; the job uses it for fairness ordering and lock staleness
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


@declarative_mixin
class IdMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
