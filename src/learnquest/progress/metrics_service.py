"""Read access to the progress-metric audit log."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import ProgressMetric


async def list_metrics(
    db: AsyncSession,
    user_id: str,
    metric_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[ProgressMetric]:
    """Newest-first metrics for a user, optionally filtered by type and date window."""
    query = select(ProgressMetric).where(ProgressMetric.user_id == user_id)
    if metric_type:
        query = query.where(ProgressMetric.metric_type == metric_type)
    if start is not None:
        query = query.where(ProgressMetric.date >= start)
    if end is not None:
        query = query.where(ProgressMetric.date <= end)

    result = await db.execute(query.order_by(ProgressMetric.date.desc()))
    return list(result.scalars())
