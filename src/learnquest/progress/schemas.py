"""Pydantic request/response models for progress endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Activities ---


class ActivityCreateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    activity_type: str
    topic_id: str | None = None
    activity_data: dict[str, Any] = {}
    duration: int | None = None


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    activity_type: str
    topic_id: str | None = None
    activity_data: dict[str, Any]
    duration: int | None = None
    created_at: datetime


class ActivityListResponse(BaseModel):
    activities: list[ActivityResponse]
    total: int
    limit: int
    offset: int


# --- Goals ---


class GoalCreateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    target_value: int
    goal_type: str
    topic_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class GoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    description: str
    target_value: int
    current_value: int
    goal_type: str
    topic_id: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    completed: bool


class GoalListResponse(BaseModel):
    goals: list[GoalResponse]


# --- Metrics ---


class MetricResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    metric_type: str
    metric_value: float
    metric_data: dict[str, Any]
    date: datetime


class MetricListResponse(BaseModel):
    metrics: list[MetricResponse]


# --- Topic progress and assessments ---


class TopicProgressRequest(BaseModel):
    user_id: str = Field(min_length=1)
    topic_id: str = Field(min_length=1)
    proficiency: float | None = None
    completed: bool | None = None


class TopicProgressResponse(BaseModel):
    id: str
    topic_id: str
    topic_name: str | None = None
    proficiency: float
    completed: bool
    last_activity: datetime | None = None


class ProgressStats(BaseModel):
    completed_topics: int
    total_topics: int
    progress_percentage: int
    average_proficiency: float


class TopicProgressListResponse(BaseModel):
    user_id: str
    progress: list[TopicProgressResponse]
    stats: ProgressStats


class AssessmentResultRequest(BaseModel):
    user_id: str = Field(min_length=1)
    assessment_id: str = Field(min_length=1)
    score: float
    topic_id: str | None = None


class AssessmentResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    assessment_id: str
    score: float
    completed_at: datetime
    feedback: str | None = None


# --- Summary and export ---


class ProgressSummaryResponse(ProgressStats):
    user_id: str
    recent_assessments: list[AssessmentResultResponse]
    recent_assessment_score: float | None = None
    achievement_count: int
    current_streak: int
    current_level: int
    strengths: list[TopicProgressResponse]
    weaknesses: list[TopicProgressResponse]


class ProgressExportRequest(BaseModel):
    user_id: str = Field(min_length=1)
    start: datetime | None = None
    end: datetime | None = None
    include_activities: bool = True
    include_assessments: bool = True
    include_achievements: bool = True
    include_metrics: bool = True


class ExportedUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None = None
    email: str | None = None


class ExportedAchievement(BaseModel):
    slug: str
    name: str
    description: str
    tier: str
    earned_at: datetime


class ProgressExportResponse(BaseModel):
    user: ExportedUser
    summary: ProgressSummaryResponse
    topic_progress: list[TopicProgressResponse]
    activities: list[ActivityResponse] | None = None
    assessments: list[AssessmentResultResponse] | None = None
    achievements: list[ExportedAchievement] | None = None
    metrics: list[MetricResponse] | None = None
    exported_at: datetime
