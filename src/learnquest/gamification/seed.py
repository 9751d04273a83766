"""Default achievement catalog and its idempotent seed."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnquest.db.models import Achievement
from learnquest.gamification.criteria import parse_criteria

logger = logging.getLogger(__name__)

# XP granted on earning, by tier.
TIER_XP_REWARD: dict[str, int] = {
    "bronze": 50,
    "silver": 100,
    "gold": 200,
    "platinum": 500,
}


def _entry(
    slug: str,
    name: str,
    description: str,
    criteria: dict,
    icon: str,
    category: str,
    tier: str,
) -> dict:
    return {
        "slug": slug,
        "name": name,
        "description": description,
        "criteria": criteria,
        "icon": icon,
        "category": category,
        "tier": tier,
        "xp_reward": TIER_XP_REWARD[tier],
    }


ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Learning
    _entry("first_steps", "First Steps", "Complete your first lesson",
           {"type": "lesson_completion", "threshold": 1}, "award", "learning", "bronze"),
    _entry("knowledge_seeker", "Knowledge Seeker", "Complete 5 lessons",
           {"type": "lesson_completion", "threshold": 5}, "book-open", "learning", "bronze"),
    _entry("dedicated_learner", "Dedicated Learner", "Complete 15 lessons",
           {"type": "lesson_completion", "threshold": 15}, "book-open", "learning", "silver"),
    _entry("topic_explorer", "Topic Explorer", "Study at least 3 different topics",
           {"type": "topic_diversity", "threshold": 3}, "compass", "learning", "silver"),
    _entry("knowledge_master", "Knowledge Master", "Complete 30 lessons",
           {"type": "lesson_completion", "threshold": 30}, "book-open", "learning", "gold"),
    _entry("topic_master", "Topic Master", "Complete all lessons in a topic",
           {"type": "topic_mastery", "threshold": 1}, "award", "learning", "gold"),
    # Assessment
    _entry("quiz_taker", "Quiz Taker", "Complete your first assessment",
           {"type": "assessment_completion", "threshold": 1}, "check-circle", "assessment", "bronze"),
    _entry("passing_grade", "Passing Grade", "Score at least 70% on an assessment",
           {"type": "assessment_score", "threshold": 1, "min_score": 70}, "check-circle", "assessment", "bronze"),
    _entry("assessment_ace", "Assessment Ace", "Score 100% on an assessment",
           {"type": "assessment_score", "threshold": 1, "min_score": 100}, "award", "assessment", "silver"),
    _entry("quiz_master", "Quiz Master", "Complete 10 assessments",
           {"type": "assessment_completion", "threshold": 10}, "check-circle", "assessment", "silver"),
    _entry("perfect_streak", "Perfect Streak", "Score 100% on 3 assessments in a row",
           {"type": "perfect_scores", "threshold": 3}, "zap", "assessment", "gold"),
    # Coding
    _entry("code_rookie", "Code Rookie", "Complete your first coding exercise",
           {"type": "coding_exercises", "threshold": 1}, "code", "coding", "bronze"),
    _entry("code_enthusiast", "Code Enthusiast", "Complete 10 coding exercises",
           {"type": "coding_exercises", "threshold": 10}, "code", "coding", "silver"),
    _entry("code_ninja", "Code Ninja", "Complete 25 coding exercises",
           {"type": "coding_exercises", "threshold": 25}, "code", "coding", "gold"),
    # Streaks
    _entry("getting_started", "Getting Started", "Maintain a 3-day learning streak",
           {"type": "streak_days", "threshold": 3}, "calendar", "streak", "bronze"),
    _entry("consistent_learner", "Consistent Learner", "Maintain a 7-day learning streak",
           {"type": "streak_days", "threshold": 7}, "calendar", "streak", "silver"),
    _entry("dedicated_scholar", "Dedicated Scholar", "Maintain a 14-day learning streak",
           {"type": "streak_days", "threshold": 14}, "calendar", "streak", "gold"),
    _entry("learning_legend", "Learning Legend", "Maintain a 30-day learning streak",
           {"type": "streak_days", "threshold": 30}, "flame", "streak", "platinum"),
]


async def seed_achievements(db: AsyncSession) -> int:
    """Insert catalog entries whose slug is missing. Returns the number inserted."""
    result = await db.execute(select(Achievement.slug))
    existing = set(result.scalars())

    inserted = 0
    for order, data in enumerate(ACHIEVEMENT_SEED_DATA, start=1):
        if data["slug"] in existing:
            continue
        criteria = parse_criteria(data["criteria"])
        db.add(Achievement(
            **{**data, "criteria": criteria.model_dump()},
            sort_order=order,
            is_active=True,
        ))
        inserted += 1

    await db.commit()
    if inserted:
        logger.info("Seeded %d achievements", inserted)
    return inserted
