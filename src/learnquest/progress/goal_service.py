"""Learning goals and their activity-driven progress."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import Topic, UserGoal
from learnquest.errors import NotFoundError, ValidationError
from learnquest.gamification.xp_service import require_user

logger = logging.getLogger(__name__)

GOAL_TYPES = ("daily", "weekly", "monthly", "total")


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def goal_period_contains(goal_type: str, start_date: datetime, now: datetime) -> bool:
    """Whether ``now`` falls in the goal's counting period (UTC calendar)."""
    start = _as_utc(start_date)
    now = _as_utc(now)
    if goal_type == "daily":
        return start.date() == now.date()
    if goal_type == "weekly":
        return start.isocalendar()[:2] == now.isocalendar()[:2]
    if goal_type == "monthly":
        return (start.year, start.month) == (now.year, now.month)
    return goal_type == "total"


async def increment_goals_for_activity(db: AsyncSession, user_id: str, now: datetime | None = None) -> list[str]:
    """Count one activity towards every open goal whose period contains ``now``.

    The increment and completion flag are a single UPDATE so concurrent
    activities never lose a count. Returns the ids of incremented goals.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    result = await db.execute(
        select(UserGoal).where(
            UserGoal.user_id == user_id,
            UserGoal.completed.is_(False),
            or_(UserGoal.end_date.is_(None), UserGoal.end_date >= now),
        )
    )
    goal_ids = [
        goal.id for goal in result.scalars()
        if goal_period_contains(goal.goal_type, goal.start_date, now)
    ]
    if not goal_ids:
        return []

    await db.execute(
        update(UserGoal)
        .where(and_(UserGoal.id.in_(goal_ids), UserGoal.completed.is_(False)))
        .values(
            current_value=UserGoal.current_value + 1,
            completed=UserGoal.current_value + 1 >= UserGoal.target_value,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    logger.debug("Incremented %d goal(s) for user %s", len(goal_ids), user_id)
    return goal_ids


async def create_goal(
    db: AsyncSession,
    user_id: str,
    title: str,
    description: str,
    target_value: int,
    goal_type: str,
    topic_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> UserGoal:
    if goal_type not in GOAL_TYPES:
        msg = f"goal_type must be one of {', '.join(GOAL_TYPES)}"
        raise ValidationError(msg)
    if target_value < 1:
        msg = "target_value must be at least 1"
        raise ValidationError(msg)
    await require_user(db, user_id)
    if topic_id is not None and await db.get(Topic, topic_id) is None:
        msg = f"Topic not found: {topic_id}"
        raise NotFoundError(msg)

    now = datetime.now(timezone.utc)
    goal = UserGoal(
        user_id=user_id,
        title=title,
        description=description,
        target_value=target_value,
        current_value=0,
        goal_type=goal_type,
        topic_id=topic_id,
        start_date=start_date or now,
        end_date=end_date,
        completed=False,
        created_at=now,
        updated_at=now,
    )
    db.add(goal)
    await db.commit()
    return goal


async def list_goals(db: AsyncSession, user_id: str) -> list[UserGoal]:
    result = await db.execute(
        select(UserGoal)
        .where(UserGoal.user_id == user_id)
        .order_by(UserGoal.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars())


async def delete_goal(db: AsyncSession, goal_id: str) -> None:
    result = await db.execute(delete(UserGoal).where(UserGoal.id == goal_id))
    if result.rowcount == 0:
        await db.rollback()
        msg = f"Goal not found: {goal_id}"
        raise NotFoundError(msg)
    await db.commit()
