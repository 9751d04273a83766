"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from learnquest.gamification.levels import MAX_EXPERIENCE_AWARD


# --- Levels ---


class ExperienceRequest(BaseModel):
    user_id: str = Field(min_length=1)
    amount: int = Field(le=MAX_EXPERIENCE_AWARD)
    source: str = "manual"


class LevelResponse(BaseModel):
    user_id: str
    current_level: int
    experience: int
    next_level_exp: int
    title: str
    progress: float


class ExperienceResponse(BaseModel):
    level: LevelResponse
    leveled_up: bool
    levels_gained: int
    experience_added: int


class LevelEntry(BaseModel):
    level: int
    title: str
    min_experience: int
    max_experience: int
    benefits: list[str]


class LevelTableResponse(BaseModel):
    levels: list[LevelEntry]


# --- Streaks ---


class StreakCheckRequest(BaseModel):
    user_id: str = Field(min_length=1)


class StreakResponse(BaseModel):
    user_id: str
    current_streak: int
    longest_streak: int
    last_active: date | None = None
    is_active: bool


class StreakCheckResponse(BaseModel):
    streak: StreakResponse
    action: str
    updated: bool


# --- Achievements ---


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    name: str
    description: str
    criteria: dict[str, Any]
    icon: str | None = None
    category: str
    tier: str
    xp_reward: int


class AchievementCreateRequest(BaseModel):
    slug: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=128)
    description: str
    criteria: dict[str, Any]
    icon: str | None = None
    category: str = "achievement"
    tier: str = "bronze"
    xp_reward: int | None = Field(default=None, ge=0)


class AchievementListResponse(BaseModel):
    achievements: list[AchievementResponse]


class AchievementCheckRequest(BaseModel):
    user_id: str = Field(min_length=1)


class AchievementCheckResponse(BaseModel):
    newly_awarded: list[AchievementResponse]
    count: int


class UserAchievementRequest(BaseModel):
    achievement_id: str = Field(min_length=1)


class UserAchievementResponse(BaseModel):
    achievement: AchievementResponse
    earned_at: datetime


class UserAchievementsResponse(BaseModel):
    user_id: str
    achievements: list[UserAchievementResponse]
    total_earned: int
