"""Progress API endpoints: topic progress, assessments, activities, goals, metrics and export."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.database import get_session
from learnquest.db.models import UserProgress
from learnquest.gamification.xp_service import require_user
from learnquest.progress.activity_service import list_activities, record_activity
from learnquest.progress.goal_service import create_goal, delete_goal, list_goals
from learnquest.progress.metrics_service import list_metrics
from learnquest.progress.progress_service import (
    ProgressSummary,
    assessment_feedback,
    export_progress,
    list_topic_progress,
    progress_summary,
    record_assessment_result,
    upsert_topic_progress,
)
from learnquest.progress.schemas import (
    ActivityCreateRequest,
    ActivityListResponse,
    ActivityResponse,
    AssessmentResultRequest,
    AssessmentResultResponse,
    ExportedAchievement,
    ExportedUser,
    GoalCreateRequest,
    GoalListResponse,
    GoalResponse,
    MetricListResponse,
    MetricResponse,
    ProgressExportRequest,
    ProgressExportResponse,
    ProgressStats,
    ProgressSummaryResponse,
    TopicProgressListResponse,
    TopicProgressRequest,
    TopicProgressResponse,
)
from learnquest.redis_client import get_redis_or_none

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


def _topic_progress_response(row: UserProgress) -> TopicProgressResponse:
    return TopicProgressResponse(
        id=row.id,
        topic_id=row.topic_id,
        topic_name=row.topic.name,
        proficiency=row.proficiency,
        completed=row.completed,
        last_activity=row.last_activity,
    )


def _summary_response(user_id: str, summary: ProgressSummary) -> ProgressSummaryResponse:
    return ProgressSummaryResponse(
        user_id=user_id,
        completed_topics=summary.completed_topics,
        total_topics=summary.total_topics,
        progress_percentage=summary.progress_percentage,
        average_proficiency=summary.average_proficiency,
        recent_assessments=[AssessmentResultResponse.model_validate(a) for a in summary.recent_assessments],
        recent_assessment_score=summary.recent_assessment_score,
        achievement_count=summary.achievement_count,
        current_streak=summary.current_streak,
        current_level=summary.current_level,
        strengths=[_topic_progress_response(p) for p in summary.strengths],
        weaknesses=[_topic_progress_response(p) for p in summary.weaknesses],
    )


# ── Topic progress ──


@router.get("", response_model=TopicProgressListResponse)
async def get_progress(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_session),
):
    """Per-topic progress, most recent first, with completion stats."""
    summary = await progress_summary(db, user_id)
    progress = await list_topic_progress(db, user_id)
    return TopicProgressListResponse(
        user_id=user_id,
        progress=[_topic_progress_response(p) for p in progress],
        stats=ProgressStats(
            completed_topics=summary.completed_topics,
            total_topics=summary.total_topics,
            progress_percentage=summary.progress_percentage,
            average_proficiency=summary.average_proficiency,
        ),
    )


@router.post("/topics", response_model=TopicProgressResponse)
async def put_topic_progress(
    body: TopicProgressRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
):
    """Create (201) or update (200) the user's progress on a topic."""
    row, created = await upsert_topic_progress(
        db, body.user_id, body.topic_id, proficiency=body.proficiency, completed=body.completed,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return _topic_progress_response(row)


@router.post("/assessments", response_model=AssessmentResultResponse, status_code=status.HTTP_201_CREATED)
async def post_assessment_result(body: AssessmentResultRequest, db: AsyncSession = Depends(get_session)):
    attempt = await record_assessment_result(
        db, body.user_id, body.assessment_id, body.score, topic_id=body.topic_id,
    )
    result = AssessmentResultResponse.model_validate(attempt)
    result.feedback = assessment_feedback(attempt.score)
    return result


@router.get("/summary", response_model=ProgressSummaryResponse)
async def get_summary(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_session),
):
    return _summary_response(user_id, await progress_summary(db, user_id))


@router.post("/export", response_model=ProgressExportResponse)
async def post_export(body: ProgressExportRequest, db: AsyncSession = Depends(get_session)):
    """Everything recorded for a user as one JSON document."""
    export = await export_progress(
        db,
        body.user_id,
        start=body.start,
        end=body.end,
        include_activities=body.include_activities,
        include_assessments=body.include_assessments,
        include_achievements=body.include_achievements,
        include_metrics=body.include_metrics,
    )
    return ProgressExportResponse(
        user=ExportedUser.model_validate(export.user),
        summary=_summary_response(body.user_id, export.summary),
        topic_progress=[_topic_progress_response(p) for p in export.topic_progress],
        activities=(
            None if export.activities is None
            else [ActivityResponse.model_validate(a) for a in export.activities]
        ),
        assessments=(
            None if export.assessments is None
            else [AssessmentResultResponse.model_validate(a) for a in export.assessments]
        ),
        achievements=(
            None if export.achievements is None
            else [
                ExportedAchievement(
                    slug=ua.achievement.slug,
                    name=ua.achievement.name,
                    description=ua.achievement.description,
                    tier=ua.achievement.tier,
                    earned_at=ua.earned_at,
                )
                for ua in export.achievements
            ]
        ),
        metrics=None if export.metrics is None else [MetricResponse.model_validate(m) for m in export.metrics],
        exported_at=export.exported_at,
    )


# ── Activities ──


@router.post("/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    body: ActivityCreateRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_or_none),
):
    """Record a learning activity. Updates the daily streak and goal progress."""
    activity = await record_activity(
        db,
        body.user_id,
        body.activity_type,
        topic_id=body.topic_id,
        activity_data=body.activity_data,
        duration=body.duration,
        redis=redis,
    )
    return ActivityResponse.model_validate(activity)


@router.get("/activities", response_model=ActivityListResponse)
async def get_activities(
    user_id: str = Query(min_length=1),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    activity_type: str | None = None,
    db: AsyncSession = Depends(get_session),
):
    activities, total = await list_activities(db, user_id, limit=limit, offset=offset, activity_type=activity_type)
    return ActivityListResponse(
        activities=[ActivityResponse.model_validate(a) for a in activities],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── Goals ──


@router.get("/goals", response_model=GoalListResponse)
async def get_goals(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_session),
):
    await require_user(db, user_id)
    goals = await list_goals(db, user_id)
    return GoalListResponse(goals=[GoalResponse.model_validate(g) for g in goals])


@router.post("/goals", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
async def post_goal(body: GoalCreateRequest, db: AsyncSession = Depends(get_session)):
    goal = await create_goal(
        db,
        body.user_id,
        title=body.title,
        description=body.description,
        target_value=body.target_value,
        goal_type=body.goal_type,
        topic_id=body.topic_id,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    return GoalResponse.model_validate(goal)


@router.delete("/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_goal(goal_id: str, db: AsyncSession = Depends(get_session)) -> None:
    await delete_goal(db, goal_id)


# ── Metrics ──


@router.get("/metrics", response_model=MetricListResponse)
async def get_metrics(
    user_id: str = Query(min_length=1),
    metric_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    db: AsyncSession = Depends(get_session),
):
    """Audit-log metrics for a user, newest first."""
    metrics = await list_metrics(db, user_id, metric_type=metric_type, start=start, end=end)
    return MetricListResponse(metrics=[MetricResponse.model_validate(m) for m in metrics])
