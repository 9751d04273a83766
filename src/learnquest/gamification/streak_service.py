"""Daily streak persistence: one conditional update per user per UTC day."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import UserStreak
from learnquest.errors import ConflictError
from learnquest.gamification.streaks import StreakAction, StreakUpdate, update_streak, utc_today

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class StreakResult:
    streak: UserStreak
    action: StreakAction

    @property
    def updated(self) -> bool:
        return self.action is not StreakAction.UNCHANGED


async def get_streak(db: AsyncSession, user_id: str) -> UserStreak | None:
    result = await db.execute(
        select(UserStreak)
        .where(UserStreak.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_streak(db: AsyncSession, user_id: str) -> UserStreak:
    """Get or lazily create an empty streak row (no activity recorded yet).

    Same caveat as xp_service.get_or_create_level: call it before adding
    anything else to the session.
    """
    streak = await get_streak(db, user_id)
    if streak is not None:
        return streak

    streak = UserStreak(user_id=user_id, current_streak=0, longest_streak=0, last_active=None, version=0)
    db.add(streak)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        streak = await get_streak(db, user_id)
        if streak is None:
            raise
    return streak


async def _compare_and_set(db: AsyncSession, streak: UserStreak, change: StreakUpdate, today: date) -> bool:
    result = await db.execute(
        update(UserStreak)
        .where(UserStreak.id == streak.id, UserStreak.version == streak.version)
        .values(
            current_streak=change.streak,
            longest_streak=max(streak.longest_streak, change.streak),
            last_active=today,
            version=UserStreak.version + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def touch_streak(
    db: AsyncSession,
    user_id: str,
    today: date | None = None,
) -> StreakResult:
    """Register activity on ``today`` (UTC) against the user's streak.

    Flushes but does not commit, so callers can fold the streak update into
    a larger unit of work. Caller is responsible for verifying the user, and
    for calling ``publish_streak_change`` once the work is committed.
    """
    if today is None:
        today = utc_today()

    for attempt in range(1, MAX_ATTEMPTS + 1):
        streak = await get_or_create_streak(db, user_id)
        change = update_streak(streak.last_active, today, streak.current_streak)
        if not change.changed:
            return StreakResult(streak=streak, action=change.action)
        if await _compare_and_set(db, streak, change, today):
            break
        logger.info("Lost streak update race for user %s (attempt %d)", user_id, attempt)
    else:
        msg = f"Concurrent streak update for user {user_id}; try again"
        raise ConflictError(msg)

    await db.refresh(streak)
    logger.info("User %s streak %s: %d day(s)", user_id, change.action.value, streak.current_streak)
    return StreakResult(streak=streak, action=change.action)


async def publish_streak_change(redis: object, user_id: str, result: StreakResult) -> None:
    """Announce a committed reset, or a continued run of two days or more."""
    if result.action is StreakAction.RESET:
        await _emit_streak_event(redis, user_id, "streak_reset", result.streak.current_streak)
    elif result.action is StreakAction.CONTINUED and result.streak.current_streak > 1:
        await _emit_streak_event(redis, user_id, "streak_continued", result.streak.current_streak)


async def _emit_streak_event(redis: object, user_id: str, event: str, streak_length: int) -> None:
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            "pubsub:streak_update",
            json.dumps({
                "user_id": user_id,
                "event": event,
                "streak_length": streak_length,
            }),
        )
    except Exception:
        logger.warning("Failed to publish %s notification", event, exc_info=True)
