"""Achievement catalog, stats collection and idempotent awarding."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import (
    Achievement,
    UserAchievement,
    UserActivity,
    UserAssessment,
    UserProgress,
    UserStreak,
)
from learnquest.errors import ConflictError, NotFoundError, ValidationError
from learnquest.gamification.achievements import CatalogEntry, evaluate
from learnquest.gamification.criteria import UserStats, parse_criteria
from learnquest.gamification.seed import TIER_XP_REWARD
from learnquest.gamification.streaks import is_streak_active, utc_today
from learnquest.gamification.xp_service import award_experience, require_user

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


async def list_catalog(db: AsyncSession) -> list[Achievement]:
    result = await db.execute(
        select(Achievement)
        .where(Achievement.is_active.is_(True))
        .order_by(Achievement.sort_order, Achievement.name)
    )
    return list(result.scalars())


async def load_catalog(db: AsyncSession) -> list[tuple[Achievement, CatalogEntry]]:
    """Active achievements with parsed criteria. Rows with broken criteria are skipped."""
    catalog = []
    for achievement in await list_catalog(db):
        try:
            criteria = parse_criteria(achievement.criteria)
        except ValidationError:
            logger.warning("Skipping achievement %s with invalid criteria", achievement.slug, exc_info=True)
            continue
        catalog.append((achievement, CatalogEntry(achievement_id=achievement.id, criteria=criteria)))
    return catalog


async def get_achievement(db: AsyncSession, achievement_id: str) -> Achievement:
    achievement = await db.get(Achievement, achievement_id)
    if achievement is None:
        msg = f"Achievement not found: {achievement_id}"
        raise NotFoundError(msg)
    return achievement


async def create_achievement(
    db: AsyncSession,
    slug: str,
    name: str,
    description: str,
    criteria: dict,
    icon: str | None = None,
    category: str = "achievement",
    tier: str = "bronze",
    xp_reward: int | None = None,
) -> Achievement:
    """Add a catalog entry. Criteria are validated here, never at evaluation time."""
    parsed = parse_criteria(criteria)
    if tier not in TIER_XP_REWARD:
        msg = f"Unknown tier: {tier}"
        raise ValidationError(msg)

    existing = await db.execute(select(Achievement.id).where(Achievement.slug == slug))
    if existing.scalar_one_or_none() is not None:
        msg = f"Achievement slug already exists: {slug}"
        raise ConflictError(msg)

    max_order = await db.execute(select(func.coalesce(func.max(Achievement.sort_order), 0)))
    achievement = Achievement(
        slug=slug,
        name=name,
        description=description,
        criteria=parsed.model_dump(),
        icon=icon,
        category=category,
        tier=tier,
        xp_reward=TIER_XP_REWARD[tier] if xp_reward is None else xp_reward,
        sort_order=max_order.scalar_one() + 1,
        is_active=True,
    )
    db.add(achievement)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        msg = f"Achievement slug already exists: {slug}"
        raise ConflictError(msg) from exc
    return achievement


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


async def _count_activities(db: AsyncSession, user_id: str, activity_type: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(UserActivity)
        .where(UserActivity.user_id == user_id, UserActivity.activity_type == activity_type)
    )
    return result.scalar_one()


async def collect_user_stats(db: AsyncSession, user_id: str, today: date | None = None) -> UserStats:
    """Aggregate the stats every criteria kind is measured against."""
    if today is None:
        today = utc_today()

    progress = await db.execute(
        select(
            func.count(),
            func.count().filter(UserProgress.completed.is_(True)),
        ).where(UserProgress.user_id == user_id)
    )
    topics_studied, topics_completed = progress.one()

    scores = await db.execute(
        select(UserAssessment.score)
        .where(UserAssessment.user_id == user_id)
        .order_by(UserAssessment.completed_at)
    )

    streak_row = await db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
    streak = streak_row.scalar_one_or_none()
    # A stored streak whose last day is older than yesterday is already broken.
    current_streak = (
        streak.current_streak if streak is not None and is_streak_active(streak.last_active, today) else 0
    )

    return UserStats(
        lessons_completed=await _count_activities(db, user_id, "lesson"),
        topics_completed=topics_completed,
        topics_studied=topics_studied,
        current_streak=current_streak,
        coding_exercises=await _count_activities(db, user_id, "practice"),
        assessment_scores=tuple(scores.scalars()),
    )


async def earned_achievement_ids(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    )
    return set(result.scalars())


# ---------------------------------------------------------------------------
# Awarding
# ---------------------------------------------------------------------------


async def check_achievements(
    db: AsyncSession,
    redis: object,
    user_id: str,
    today: date | None = None,
) -> list[Achievement]:
    """Award every achievement the user newly qualifies for, as one batch.

    A uniqueness violation means a concurrent check already awarded some of
    the batch; the batch is rolled back and re-evaluated once against the
    fresh earned set. Awarded achievements then grant their XP reward.
    """
    if not user_id:
        msg = "user_id is required"
        raise ValidationError(msg)
    await require_user(db, user_id)

    awarded: list[Achievement] = []
    for attempt in range(1, MAX_ATTEMPTS + 1):
        catalog = await load_catalog(db)
        by_id = {achievement.id: achievement for achievement, _ in catalog}
        stats = await collect_user_stats(db, user_id, today)
        earned = await earned_achievement_ids(db, user_id)
        new_ids = evaluate(stats, [entry for _, entry in catalog], earned)
        if not new_ids:
            return []

        now = datetime.now(timezone.utc)
        for achievement_id in new_ids:
            db.add(UserAchievement(user_id=user_id, achievement_id=achievement_id, earned_at=now))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info("Concurrent achievement award for user %s (attempt %d)", user_id, attempt)
            continue
        awarded = [by_id[achievement_id] for achievement_id in new_ids]
        break

    for achievement in awarded:
        logger.info("User %s earned achievement %s", user_id, achievement.slug)
        if achievement.xp_reward > 0:
            try:
                await award_experience(db, redis, user_id, achievement.xp_reward, source="achievement")
            except ConflictError:
                # award_experience rolled back, expiring every row the session holds
                for row in awarded:
                    await db.refresh(row)
                logger.warning("XP reward for %s not granted to user %s", achievement.slug, user_id)
        await _emit_achievement_earned(redis, user_id, achievement)

    return awarded


async def award_achievement(
    db: AsyncSession,
    user_id: str,
    achievement_id: str,
) -> tuple[UserAchievement, bool]:
    """Manually award one achievement. Returns (row, created); a duplicate is not an error."""
    await require_user(db, user_id)
    await get_achievement(db, achievement_id)

    existing = await _get_user_achievement(db, user_id, achievement_id)
    if existing is not None:
        return existing, False

    user_achievement = UserAchievement(
        user_id=user_id,
        achievement_id=achievement_id,
        earned_at=datetime.now(timezone.utc),
    )
    db.add(user_achievement)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _get_user_achievement(db, user_id, achievement_id)
        if existing is None:
            raise
        return existing, False

    await db.refresh(user_achievement, ["achievement"])
    return user_achievement, True


async def _get_user_achievement(db: AsyncSession, user_id: str, achievement_id: str) -> UserAchievement | None:
    result = await db.execute(
        select(UserAchievement).where(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement_id,
        )
    )
    return result.scalar_one_or_none()


async def list_user_achievements(db: AsyncSession, user_id: str) -> list[UserAchievement]:
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at.desc(), UserAchievement.id.desc())
    )
    return list(result.scalars())


async def _emit_achievement_earned(redis: object, user_id: str, achievement: Achievement) -> None:
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            "pubsub:achievement_earned",
            json.dumps({
                "user_id": user_id,
                "achievement_slug": achievement.slug,
                "achievement_name": achievement.name,
                "tier": achievement.tier,
                "xp_reward": achievement.xp_reward,
            }),
        )
    except Exception:
        logger.warning("Failed to publish achievement_earned notification", exc_info=True)
