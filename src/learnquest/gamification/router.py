"""Gamification API endpoints: levels, streaks and achievements."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.database import get_session
from learnquest.db.models import Achievement, UserLevel, UserStreak
from learnquest.gamification import achievement_service
from learnquest.gamification.levels import (
    DEFAULT_EXPERIENCE,
    DEFAULT_LEVEL,
    DEFAULT_NEXT_LEVEL_EXP,
    level_table,
    level_title,
)
from learnquest.gamification.schemas import (
    AchievementCheckRequest,
    AchievementCheckResponse,
    AchievementCreateRequest,
    AchievementListResponse,
    AchievementResponse,
    ExperienceRequest,
    ExperienceResponse,
    LevelEntry,
    LevelResponse,
    LevelTableResponse,
    StreakCheckRequest,
    StreakCheckResponse,
    StreakResponse,
    UserAchievementRequest,
    UserAchievementResponse,
    UserAchievementsResponse,
)
from learnquest.gamification.streak_service import get_streak, publish_streak_change, touch_streak
from learnquest.gamification.streaks import is_streak_active, utc_today
from learnquest.gamification.xp_service import award_experience, get_level, require_user
from learnquest.redis_client import get_redis_or_none

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


def _level_response(user_id: str, level: UserLevel | None) -> LevelResponse:
    if level is None:
        current, experience, next_exp = DEFAULT_LEVEL, DEFAULT_EXPERIENCE, DEFAULT_NEXT_LEVEL_EXP
    else:
        current, experience, next_exp = level.current_level, level.experience, level.next_level_exp
    return LevelResponse(
        user_id=user_id,
        current_level=current,
        experience=experience,
        next_level_exp=next_exp,
        title=level_title(current),
        progress=round(experience / next_exp * 100, 1),
    )


def _streak_response(user_id: str, streak: UserStreak | None) -> StreakResponse:
    if streak is None:
        return StreakResponse(user_id=user_id, current_streak=0, longest_streak=0, last_active=None, is_active=False)
    return StreakResponse(
        user_id=user_id,
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        last_active=streak.last_active,
        is_active=is_streak_active(streak.last_active, utc_today()),
    )


# ── Levels ──


@router.post("/gamification/levels/experience", response_model=ExperienceResponse)
async def grant_experience(
    body: ExperienceRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_or_none),
):
    """Grant experience to a user; the response reports any level-ups."""
    result = await award_experience(db, redis, body.user_id, body.amount, source=body.source)
    return ExperienceResponse(
        level=_level_response(body.user_id, result.level),
        leveled_up=result.leveled_up,
        levels_gained=result.levels_gained,
        experience_added=result.experience_added,
    )


@router.get("/gamification/levels", response_model=LevelResponse)
async def get_user_level(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_session),
):
    """Current level of a user; defaults before the first award."""
    await require_user(db, user_id)
    return _level_response(user_id, await get_level(db, user_id))


@router.get("/gamification/levels/table", response_model=LevelTableResponse)
async def get_level_table(max_level: int = Query(10, ge=1, le=100)):
    """Titles, cumulative experience ranges and benefits per level."""
    return LevelTableResponse(levels=[LevelEntry(**entry) for entry in level_table(max_level)])


# ── Streaks ──


@router.post("/gamification/streaks/check", response_model=StreakCheckResponse)
async def check_streak(
    body: StreakCheckRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_or_none),
):
    """Register today's activity against the user's streak."""
    await require_user(db, body.user_id)
    result = await touch_streak(db, body.user_id)
    await db.commit()
    await publish_streak_change(redis, body.user_id, result)
    return StreakCheckResponse(
        streak=_streak_response(body.user_id, result.streak),
        action=result.action.value,
        updated=result.updated,
    )


@router.get("/gamification/streaks", response_model=StreakResponse)
async def get_user_streak(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_session),
):
    await require_user(db, user_id)
    return _streak_response(user_id, await get_streak(db, user_id))


# ── Achievements ──


@router.get("/achievements", response_model=AchievementListResponse)
async def list_achievements(db: AsyncSession = Depends(get_session)):
    """Active achievement catalog."""
    achievements = await achievement_service.list_catalog(db)
    return AchievementListResponse(
        achievements=[AchievementResponse.model_validate(a) for a in achievements],
    )


@router.post("/achievements", response_model=AchievementResponse, status_code=status.HTTP_201_CREATED)
async def create_achievement(body: AchievementCreateRequest, db: AsyncSession = Depends(get_session)):
    achievement = await achievement_service.create_achievement(
        db,
        slug=body.slug,
        name=body.name,
        description=body.description,
        criteria=body.criteria,
        icon=body.icon,
        category=body.category,
        tier=body.tier,
        xp_reward=body.xp_reward,
    )
    return AchievementResponse.model_validate(achievement)


@router.post("/achievements/check", response_model=AchievementCheckResponse)
async def check_achievements(
    body: AchievementCheckRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_or_none),
):
    """Evaluate the catalog for a user and award everything newly earned."""
    awarded: list[Achievement] = await achievement_service.check_achievements(db, redis, body.user_id)
    return AchievementCheckResponse(
        newly_awarded=[AchievementResponse.model_validate(a) for a in awarded],
        count=len(awarded),
    )


@router.get("/users/{user_id}/achievements", response_model=UserAchievementsResponse)
async def get_user_achievements(user_id: str, db: AsyncSession = Depends(get_session)):
    await require_user(db, user_id)
    earned = await achievement_service.list_user_achievements(db, user_id)
    return UserAchievementsResponse(
        user_id=user_id,
        achievements=[
            UserAchievementResponse(
                achievement=AchievementResponse.model_validate(ua.achievement),
                earned_at=ua.earned_at,
            )
            for ua in earned
        ],
        total_earned=len(earned),
    )


@router.post("/users/{user_id}/achievements", response_model=UserAchievementResponse)
async def award_user_achievement(
    user_id: str,
    body: UserAchievementRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
):
    """Manually award an achievement. Re-awarding returns the existing record with 200."""
    user_achievement, created = await achievement_service.award_achievement(db, user_id, body.achievement_id)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return UserAchievementResponse(
        achievement=AchievementResponse.model_validate(user_achievement.achievement),
        earned_at=user_achievement.earned_at,
    )
