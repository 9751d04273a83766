"""Activity recording: the entry point that drives streaks and goals."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import Topic, UserActivity
from learnquest.errors import NotFoundError, ValidationError
from learnquest.gamification.streak_service import publish_streak_change, touch_streak
from learnquest.gamification.streaks import utc_today
from learnquest.gamification.xp_service import require_user
from learnquest.progress.goal_service import increment_goals_for_activity

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = ("lesson", "practice", "assessment", "quiz", "content", "other")


async def record_activity(
    db: AsyncSession,
    user_id: str,
    activity_type: str,
    topic_id: str | None = None,
    activity_data: dict[str, Any] | None = None,
    duration: int | None = None,
    now: datetime | None = None,
    redis: object = None,
) -> UserActivity:
    """Record an activity; side effects are the daily streak and goal progress.

    Validation and lookups happen before any write, so a missing user or
    topic leaves no partial state. Everything else commits together.
    """
    if not user_id:
        msg = "user_id is required"
        raise ValidationError(msg)
    if activity_type not in ACTIVITY_TYPES:
        msg = f"activity_type must be one of {', '.join(ACTIVITY_TYPES)}"
        raise ValidationError(msg)
    if duration is not None and duration < 0:
        msg = "duration must be non-negative"
        raise ValidationError(msg)

    await require_user(db, user_id)
    if topic_id is not None and await db.get(Topic, topic_id) is None:
        msg = f"Topic not found: {topic_id}"
        raise NotFoundError(msg)

    if now is None:
        now = datetime.now(timezone.utc)

    # Streak first: its lazy row creation may roll the session back on a race.
    streak = await touch_streak(db, user_id, today=utc_today(now))

    activity = UserActivity(
        user_id=user_id,
        activity_type=activity_type,
        topic_id=topic_id,
        activity_data=activity_data or {},
        duration=duration,
        created_at=now,
    )
    db.add(activity)
    await db.flush()

    await increment_goals_for_activity(db, user_id, now)
    await db.commit()
    await publish_streak_change(redis, user_id, streak)

    logger.info(
        "Recorded %s activity for user %s (streak %s, %d day(s))",
        activity_type, user_id, streak.action.value, streak.streak.current_streak,
    )
    return activity


async def list_activities(
    db: AsyncSession,
    user_id: str,
    limit: int = 10,
    offset: int = 0,
    activity_type: str | None = None,
) -> tuple[list[UserActivity], int]:
    """Newest-first page of activities plus the total matching count."""
    filters = [UserActivity.user_id == user_id]
    if activity_type:
        filters.append(UserActivity.activity_type == activity_type)

    result = await db.execute(
        select(UserActivity)
        .where(*filters)
        .order_by(UserActivity.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    total = await db.execute(select(func.count()).select_from(UserActivity).where(*filters))
    return list(result.scalars()), total.scalar_one()
