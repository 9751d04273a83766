"""Experience awards with optimistic concurrency and level-up detection."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import ProgressMetric, User, UserLevel
from learnquest.errors import ConflictError, InvalidAmount, NotFoundError, TelemetryError, ValidationError
from learnquest.gamification.levels import (
    DEFAULT_EXPERIENCE,
    DEFAULT_LEVEL,
    DEFAULT_NEXT_LEVEL_EXP,
    MAX_EXPERIENCE_AWARD,
    LevelOutcome,
    apply_experience,
    level_title,
)

logger = logging.getLogger(__name__)

EXPERIENCE_METRIC = "experience_gain"
MAX_ATTEMPTS = 2  # first try + one retry after a lost race


@dataclass(frozen=True)
class AwardResult:
    level: UserLevel
    leveled_up: bool
    levels_gained: int
    experience_added: int


async def require_user(db: AsyncSession, user_id: str) -> User:
    """Fetch a user or raise NotFoundError."""
    user = await db.get(User, user_id)
    if user is None:
        msg = f"User not found: {user_id}"
        raise NotFoundError(msg)
    return user


async def get_level(db: AsyncSession, user_id: str) -> UserLevel | None:
    """Read the stored level row, bypassing any stale copy in the identity map."""
    result = await db.execute(
        select(UserLevel)
        .where(UserLevel.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_level(db: AsyncSession, user_id: str) -> UserLevel:
    """Get or lazily create the level row (level 1, 0 experience, threshold 100).

    Must run before anything else is pending in the session: losing the
    insert race rolls the session back before re-reading the winner's row.
    """
    level = await get_level(db, user_id)
    if level is not None:
        return level

    level = UserLevel(
        user_id=user_id,
        current_level=DEFAULT_LEVEL,
        experience=DEFAULT_EXPERIENCE,
        next_level_exp=DEFAULT_NEXT_LEVEL_EXP,
        version=0,
    )
    db.add(level)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        level = await get_level(db, user_id)
        if level is None:
            raise
    return level


async def _compare_and_set(db: AsyncSession, level: UserLevel, outcome: LevelOutcome) -> bool:
    """Write ``outcome`` only if nobody else has written since ``level`` was read."""
    result = await db.execute(
        update(UserLevel)
        .where(UserLevel.id == level.id, UserLevel.version == level.version)
        .values(
            current_level=outcome.level,
            experience=outcome.experience,
            next_level_exp=outcome.next_level_exp,
            version=UserLevel.version + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _validate_award(user_id: str | None, amount: object) -> None:
    if not user_id:
        msg = "user_id is required"
        raise ValidationError(msg)
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        msg = f"Experience amount must be a positive integer, got {amount!r}"
        raise InvalidAmount(msg)
    if amount > MAX_EXPERIENCE_AWARD:
        msg = f"Experience amount must not exceed {MAX_EXPERIENCE_AWARD}, got {amount}"
        raise InvalidAmount(msg)


async def award_experience(
    db: AsyncSession,
    redis: object,
    user_id: str,
    amount: int,
    source: str = "unknown",
) -> AwardResult:
    """Grant experience to a user and roll overflow into level-ups.

    1. Validate input and resolve the user
    2. Load or lazily create the level row
    3. Run the level calculator and write it back with a version check
       (one retry from a fresh read if a concurrent award won the race)
    4. Commit, then append the audit metric (best-effort)
    5. Broadcast level-ups
    """
    _validate_award(user_id, amount)
    await require_user(db, user_id)

    for attempt in range(1, MAX_ATTEMPTS + 1):
        level = await get_or_create_level(db, user_id)
        outcome = apply_experience(level.current_level, level.experience, level.next_level_exp, amount)
        if await _compare_and_set(db, level, outcome):
            break
        logger.info("Lost level update race for user %s (attempt %d)", user_id, attempt)
    else:
        await db.rollback()
        msg = f"Concurrent experience update for user {user_id}; try again"
        raise ConflictError(msg)

    await db.commit()
    logger.info(
        "User %s gained %d XP from %s: level %d, %d/%d",
        user_id, amount, source, outcome.level, outcome.experience, outcome.next_level_exp,
    )

    try:
        await record_experience_metric(db, user_id, amount, source, outcome)
    except TelemetryError:
        logger.warning("Experience audit metric dropped for user %s", user_id, exc_info=True)

    # The conditional UPDATE bypassed the identity map, and a failed audit
    # write rolls back (expiring the row), so reload it either way.
    await db.refresh(level)

    if outcome.leveled_up:
        await _emit_level_up(redis, user_id, outcome.level - outcome.levels_gained, outcome.level)

    return AwardResult(
        level=level,
        leveled_up=outcome.leveled_up,
        levels_gained=outcome.levels_gained,
        experience_added=amount,
    )


async def record_experience_metric(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    outcome: LevelOutcome,
) -> ProgressMetric:
    """Append one experience_gain row to the audit log in its own transaction."""
    metric = ProgressMetric(
        user_id=user_id,
        metric_type=EXPERIENCE_METRIC,
        metric_value=amount,
        metric_data={
            "source": source,
            "level_up": outcome.leveled_up,
            "new_level": outcome.level if outcome.leveled_up else None,
            "levels_gained": outcome.levels_gained,
        },
        date=datetime.now(timezone.utc),
    )
    db.add(metric)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        msg = f"Failed to append experience metric for user {user_id}"
        raise TelemetryError(msg) from exc
    return metric


async def _emit_level_up(redis: object, user_id: str, old_level: int, new_level: int) -> None:
    """Broadcast a level-up event for dashboards and notifications."""
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            "pubsub:level_up",
            json.dumps({
                "user_id": user_id,
                "old_level": old_level,
                "new_level": new_level,
                "title": level_title(new_level),
            }),
        )
    except Exception:
        logger.warning("Failed to publish level_up broadcast", exc_info=True)
