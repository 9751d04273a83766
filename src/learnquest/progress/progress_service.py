"""Per-topic progress and assessment results.

These rows feed the topic and assessment achievement criteria: the
achievement check counts progress rows (studied), completed rows and the
ordered assessment scores.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import (
    ProgressMetric,
    Topic,
    User,
    UserAchievement,
    UserActivity,
    UserAssessment,
    UserProgress,
)
from learnquest.errors import NotFoundError, ValidationError
from learnquest.gamification.streak_service import get_streak
from learnquest.gamification.streaks import is_streak_active, utc_today
from learnquest.gamification.xp_service import get_level, require_user
from learnquest.progress.metrics_service import list_metrics

logger = logging.getLogger(__name__)

COMPLETION_SCORE = 70.0
MAX_SCORE = 100.0
RECENT_ASSESSMENTS = 5
HIGHLIGHTED_TOPICS = 3


@dataclass(frozen=True)
class ProgressSummary:
    completed_topics: int
    total_topics: int
    progress_percentage: int
    average_proficiency: float
    recent_assessments: list[UserAssessment]
    recent_assessment_score: float | None
    achievement_count: int
    current_streak: int
    current_level: int
    strengths: list[UserProgress]
    weaknesses: list[UserProgress]


@dataclass(frozen=True)
class ProgressExport:
    user: User
    summary: ProgressSummary
    topic_progress: list[UserProgress]
    activities: list[UserActivity] | None
    assessments: list[UserAssessment] | None
    achievements: list[UserAchievement] | None
    metrics: list[ProgressMetric] | None
    exported_at: datetime


def _validate_score(name: str, value: float | None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= MAX_SCORE:
        msg = f"{name} must be a number between 0 and {MAX_SCORE:g}, got {value!r}"
        raise ValidationError(msg)


async def _require_topic(db: AsyncSession, topic_id: str) -> Topic:
    topic = await db.get(Topic, topic_id)
    if topic is None:
        msg = f"Topic not found: {topic_id}"
        raise NotFoundError(msg)
    return topic


async def get_topic_progress(db: AsyncSession, user_id: str, topic_id: str) -> UserProgress | None:
    result = await db.execute(
        select(UserProgress)
        .where(UserProgress.user_id == user_id, UserProgress.topic_id == topic_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()


def _apply(row: UserProgress, proficiency: float | None, completed: bool | None, now: datetime) -> None:
    if proficiency is not None:
        row.proficiency = float(proficiency)
    if completed is not None:
        row.completed = completed
    elif row.proficiency >= COMPLETION_SCORE:
        row.completed = True
    row.last_activity = now


async def _stage_progress(
    db: AsyncSession,
    user_id: str,
    topic_id: str,
    proficiency: float | None,
    completed: bool | None,
    now: datetime,
) -> tuple[UserProgress, bool]:
    """Insert or update the (user, topic) row without committing.

    Same caveat as the level and streak rows: nothing else may be pending,
    since losing the insert race rolls the session back.
    """
    row = await get_topic_progress(db, user_id, topic_id)
    created = row is None
    if row is None:
        row = UserProgress(user_id=user_id, topic_id=topic_id, proficiency=0.0, completed=False)
        _apply(row, proficiency, completed, now)
        db.add(row)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            row = await get_topic_progress(db, user_id, topic_id)
            if row is None:
                raise
            created = False
        else:
            return row, created

    _apply(row, proficiency, completed, now)
    await db.flush()
    return row, created


async def upsert_topic_progress(
    db: AsyncSession,
    user_id: str,
    topic_id: str,
    proficiency: float | None = None,
    completed: bool | None = None,
    now: datetime | None = None,
) -> tuple[UserProgress, bool]:
    """Create or update the user's progress on one topic. Returns (row, created).

    An explicit ``completed`` wins; otherwise reaching ``COMPLETION_SCORE``
    proficiency marks the topic completed, and it stays completed.
    """
    if not user_id or not topic_id:
        msg = "user_id and topic_id are required"
        raise ValidationError(msg)
    _validate_score("proficiency", proficiency)
    await require_user(db, user_id)
    await _require_topic(db, topic_id)

    if now is None:
        now = datetime.now(timezone.utc)

    row, created = await _stage_progress(db, user_id, topic_id, proficiency, completed, now)
    await db.commit()
    await db.refresh(row, ["topic"])
    logger.info(
        "%s progress for user %s on topic %s: %.1f%%%s",
        "Created" if created else "Updated", user_id, topic_id, row.proficiency,
        " (completed)" if row.completed else "",
    )
    return row, created


async def record_assessment_result(
    db: AsyncSession,
    user_id: str,
    assessment_id: str,
    score: float,
    topic_id: str | None = None,
    now: datetime | None = None,
) -> UserAssessment:
    """Store a finished attempt; with a topic, its score becomes the topic proficiency."""
    if not user_id or not assessment_id:
        msg = "user_id and assessment_id are required"
        raise ValidationError(msg)
    if score is None:
        msg = "score is required"
        raise ValidationError(msg)
    _validate_score("score", score)
    await require_user(db, user_id)
    if topic_id is not None:
        await _require_topic(db, topic_id)

    if now is None:
        now = datetime.now(timezone.utc)

    # Progress first: its lazy row creation may roll the session back on a race.
    if topic_id is not None:
        await _stage_progress(db, user_id, topic_id, score, None, now)

    attempt = UserAssessment(user_id=user_id, assessment_id=assessment_id, score=float(score), completed_at=now)
    db.add(attempt)
    await db.commit()
    logger.info("User %s scored %.1f on assessment %s", user_id, score, assessment_id)
    return attempt


def assessment_feedback(score: float) -> str:
    if score > 80:
        return "Excellent work!"
    if score > 60:
        return "Good job, but there's room for improvement."
    return "You should review the material and try again."


async def list_topic_progress(db: AsyncSession, user_id: str) -> list[UserProgress]:
    """Most recently touched topics first."""
    result = await db.execute(
        select(UserProgress)
        .where(UserProgress.user_id == user_id)
        .order_by(UserProgress.last_activity.desc().nulls_last(), UserProgress.topic_id)
    )
    return list(result.unique().scalars())


async def _list_assessments(
    db: AsyncSession,
    user_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[UserAssessment]:
    query = select(UserAssessment).where(UserAssessment.user_id == user_id)
    if start is not None:
        query = query.where(UserAssessment.completed_at >= start)
    if end is not None:
        query = query.where(UserAssessment.completed_at <= end)
    query = query.order_by(UserAssessment.completed_at.desc())
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars())


async def progress_summary(db: AsyncSession, user_id: str) -> ProgressSummary:
    await require_user(db, user_id)

    progress = await list_topic_progress(db, user_id)
    total = await db.execute(select(func.count()).select_from(Topic))
    total_topics = total.scalar_one()
    completed_topics = sum(1 for p in progress if p.completed)
    average = sum(p.proficiency for p in progress) / len(progress) if progress else 0.0

    recent = await _list_assessments(db, user_id, limit=RECENT_ASSESSMENTS)
    achievements = await db.execute(
        select(func.count()).select_from(UserAchievement).where(UserAchievement.user_id == user_id)
    )
    streak = await get_streak(db, user_id)
    level = await get_level(db, user_id)

    ranked = sorted(progress, key=lambda p: p.proficiency, reverse=True)
    return ProgressSummary(
        completed_topics=completed_topics,
        total_topics=total_topics,
        progress_percentage=round(completed_topics / total_topics * 100) if total_topics else 0,
        average_proficiency=round(average, 1),
        recent_assessments=recent,
        recent_assessment_score=recent[0].score if recent else None,
        achievement_count=achievements.scalar_one(),
        current_streak=(
            streak.current_streak if streak is not None and is_streak_active(streak.last_active, utc_today()) else 0
        ),
        current_level=level.current_level if level is not None else 1,
        strengths=ranked[:HIGHLIGHTED_TOPICS],
        weaknesses=list(reversed(ranked))[:HIGHLIGHTED_TOPICS],
    )


async def export_progress(
    db: AsyncSession,
    user_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    include_activities: bool = True,
    include_assessments: bool = True,
    include_achievements: bool = True,
    include_metrics: bool = True,
) -> ProgressExport:
    """Everything recorded for a user; dated sections honour the [start, end] window."""
    if start is not None and end is not None and start > end:
        msg = "start must not be after end"
        raise ValidationError(msg)
    user = await require_user(db, user_id)
    summary = await progress_summary(db, user_id)

    activities = None
    if include_activities:
        query = select(UserActivity).where(UserActivity.user_id == user_id)
        if start is not None:
            query = query.where(UserActivity.created_at >= start)
        if end is not None:
            query = query.where(UserActivity.created_at <= end)
        result = await db.execute(query.order_by(UserActivity.created_at.desc()))
        activities = list(result.scalars())

    achievements = None
    if include_achievements:
        query = select(UserAchievement).where(UserAchievement.user_id == user_id)
        if start is not None:
            query = query.where(UserAchievement.earned_at >= start)
        if end is not None:
            query = query.where(UserAchievement.earned_at <= end)
        result = await db.execute(query.order_by(UserAchievement.earned_at.desc()))
        achievements = list(result.scalars())

    return ProgressExport(
        user=user,
        summary=summary,
        topic_progress=await list_topic_progress(db, user_id),
        activities=activities,
        assessments=await _list_assessments(db, user_id, start, end) if include_assessments else None,
        achievements=achievements,
        metrics=await list_metrics(db, user_id, start=start, end=end) if include_metrics else None,
        exported_at=datetime.now(timezone.utc),
    )

