"""Achievement checks: stats collection, batch awarding, idempotency, XP rewards."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select

from learnquest.db.models import (
    Achievement,
    Topic,
    UserAchievement,
    UserActivity,
    UserAssessment,
    UserProgress,
    UserStreak,
)
from learnquest.errors import ConflictError, NotFoundError, ValidationError
from learnquest.gamification import achievement_service, xp_service
from learnquest.gamification.achievement_service import (
    award_achievement,
    check_achievements,
    collect_user_stats,
    create_achievement,
    earned_achievement_ids,
    list_user_achievements,
    load_catalog,
)
from learnquest.gamification.xp_service import get_level

TODAY = date(2026, 6, 15)


@pytest_asyncio.fixture
async def catalog(db_session):
    """Small catalog: two lesson tiers and a streak achievement."""
    entries = [
        Achievement(slug="first_steps", name="First Steps", description="Complete your first lesson",
                    criteria={"type": "lesson_completion", "threshold": 1}, tier="bronze", xp_reward=50,
                    sort_order=1),
        Achievement(slug="three_lessons", name="Three Lessons", description="Complete 3 lessons",
                    criteria={"type": "lesson_completion", "threshold": 3}, tier="silver", xp_reward=100,
                    sort_order=2),
        Achievement(slug="getting_started", name="Getting Started", description="3-day streak",
                    criteria={"type": "streak_days", "threshold": 3}, tier="bronze", xp_reward=0,
                    sort_order=3),
    ]
    db_session.add_all(entries)
    await db_session.commit()
    return {a.slug: a for a in entries}


async def _add_lessons(db, user_id: str, count: int) -> None:
    for _ in range(count):
        db.add(UserActivity(user_id=user_id, activity_type="lesson"))
    await db.commit()


class TestCatalog:
    @pytest.mark.asyncio
    async def test_invalid_stored_criteria_skipped(self, db_session, catalog):
        db_session.add(Achievement(slug="broken", name="Broken", description="bad row",
                                   criteria={"type": "mystery", "threshold": 1}, sort_order=9))
        await db_session.commit()

        slugs = [achievement.slug for achievement, _ in await load_catalog(db_session)]
        assert slugs == ["first_steps", "three_lessons", "getting_started"]

    @pytest.mark.asyncio
    async def test_inactive_entries_excluded(self, db_session, catalog):
        catalog["three_lessons"].is_active = False
        await db_session.commit()

        slugs = [achievement.slug for achievement, _ in await load_catalog(db_session)]
        assert "three_lessons" not in slugs

    @pytest.mark.asyncio
    async def test_create_achievement_validates_criteria(self, db_session):
        with pytest.raises(ValidationError):
            await create_achievement(db_session, slug="bad", name="Bad", description="",
                                     criteria={"type": "lesson_completion", "threshold": -1})

    @pytest.mark.asyncio
    async def test_create_achievement_defaults_reward_from_tier(self, db_session):
        achievement = await create_achievement(
            db_session, slug="quiz_whiz", name="Quiz Whiz", description="Score 90% twice",
            criteria={"type": "assessment_score", "threshold": 2}, tier="gold",
        )
        assert achievement.xp_reward == 200
        assert achievement.criteria == {"type": "assessment_score", "threshold": 2, "min_score": 90}

    @pytest.mark.asyncio
    async def test_duplicate_slug_conflicts(self, db_session, catalog):
        with pytest.raises(ConflictError):
            await create_achievement(db_session, slug="first_steps", name="Again", description="",
                                     criteria={"type": "lesson_completion", "threshold": 1})

    @pytest.mark.asyncio
    async def test_unknown_tier_rejected(self, db_session):
        with pytest.raises(ValidationError):
            await create_achievement(db_session, slug="x", name="X", description="",
                                     criteria={"type": "lesson_completion", "threshold": 1}, tier="diamond")


class TestCollectUserStats:
    @pytest.mark.asyncio
    async def test_aggregates_all_sources(self, db_session, user):
        topics = [Topic(name=f"Topic {i}") for i in range(3)]
        db_session.add_all(topics)
        await db_session.flush()
        db_session.add_all([
            UserProgress(user_id=user.id, topic_id=topics[0].id, proficiency=100, completed=True),
            UserProgress(user_id=user.id, topic_id=topics[1].id, proficiency=40),
            UserActivity(user_id=user.id, activity_type="lesson"),
            UserActivity(user_id=user.id, activity_type="lesson"),
            UserActivity(user_id=user.id, activity_type="practice"),
            UserActivity(user_id=user.id, activity_type="quiz"),
            UserAssessment(user_id=user.id, assessment_id="a1", score=100,
                           completed_at=datetime(2026, 6, 1, tzinfo=timezone.utc)),
            UserAssessment(user_id=user.id, assessment_id="a2", score=75,
                           completed_at=datetime(2026, 6, 2, tzinfo=timezone.utc)),
            UserStreak(user_id=user.id, current_streak=4, longest_streak=4, last_active=TODAY),
        ])
        await db_session.commit()

        stats = await collect_user_stats(db_session, user.id, today=TODAY)

        assert stats.lessons_completed == 2
        assert stats.coding_exercises == 1
        assert stats.topics_studied == 2
        assert stats.topics_completed == 1
        assert stats.assessment_scores == (100, 75)
        assert stats.current_streak == 4

    @pytest.mark.asyncio
    async def test_lapsed_streak_counts_as_zero(self, db_session, user):
        db_session.add(UserStreak(user_id=user.id, current_streak=9, longest_streak=9,
                                  last_active=TODAY - timedelta(days=2)))
        await db_session.commit()

        stats = await collect_user_stats(db_session, user.id, today=TODAY)
        assert stats.current_streak == 0


class TestCheckAchievements:
    @pytest.mark.asyncio
    async def test_awards_all_qualifiers_in_one_batch(self, db_session, user, catalog):
        await _add_lessons(db_session, user.id, 3)

        awarded = await check_achievements(db_session, None, user.id, today=TODAY)

        assert [a.slug for a in awarded] == ["first_steps", "three_lessons"]
        assert await earned_achievement_ids(db_session, user.id) == {
            catalog["first_steps"].id, catalog["three_lessons"].id,
        }

    @pytest.mark.asyncio
    async def test_second_check_awards_nothing(self, db_session, user, catalog):
        await _add_lessons(db_session, user.id, 1)

        first = await check_achievements(db_session, None, user.id, today=TODAY)
        second = await check_achievements(db_session, None, user.id, today=TODAY)

        assert [a.slug for a in first] == ["first_steps"]
        assert second == []
        rows = await db_session.execute(select(UserAchievement))
        assert len(rows.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_rewards_granted_as_experience(self, db_session, user, catalog):
        await _add_lessons(db_session, user.id, 3)

        await check_achievements(db_session, None, user.id, today=TODAY)

        # 50 + 100 = 150: one level-up, 50 into level 2
        level = await get_level(db_session, user.id)
        assert (level.current_level, level.experience) == (2, 50)

    @pytest.mark.asyncio
    async def test_zero_reward_skips_experience(self, db_session, user, catalog):
        db_session.add(UserStreak(user_id=user.id, current_streak=3, longest_streak=3, last_active=TODAY))
        await db_session.commit()

        awarded = await check_achievements(db_session, None, user.id, today=TODAY)

        assert [a.slug for a in awarded] == ["getting_started"]
        assert await get_level(db_session, user.id) is None

    @pytest.mark.asyncio
    async def test_concurrent_check_is_not_an_error(self, db_session, user, catalog, monkeypatch):
        """A uniqueness violation from a parallel check re-evaluates against the fresh earned set."""
        user_id = user.id
        first_steps_id, three_lessons_id = catalog["first_steps"].id, catalog["three_lessons"].id
        await _add_lessons(db_session, user_id, 3)
        real_earned = achievement_service.earned_achievement_ids
        calls = 0

        async def _parallel_award_first(db, user_id):
            nonlocal calls
            calls += 1
            if calls == 1:
                # Another request wins the race for first_steps after our read
                earned = await real_earned(db, user_id)
                await award_achievement(db, user_id, first_steps_id)
                return earned
            return await real_earned(db, user_id)

        monkeypatch.setattr(achievement_service, "earned_achievement_ids", _parallel_award_first)

        awarded = await check_achievements(db_session, None, user_id, today=TODAY)

        assert [a.slug for a in awarded] == ["three_lessons"]
        assert await real_earned(db_session, user_id) == {first_steps_id, three_lessons_id}

    @pytest.mark.asyncio
    async def test_lost_reward_race_still_reports_awards(self, db_session, user, catalog, fake_redis, monkeypatch):
        """Both XP attempts lose; the committed achievements are still returned and announced."""
        user_id = user.id
        await _add_lessons(db_session, user_id, 3)

        async def _always_stale(db, level, outcome):
            return False

        monkeypatch.setattr(xp_service, "_compare_and_set", _always_stale)

        awarded = await check_achievements(db_session, fake_redis, user_id, today=TODAY)

        assert [a.slug for a in awarded] == ["first_steps", "three_lessons"]
        assert [a.xp_reward for a in awarded] == [50, 100]
        assert await earned_achievement_ids(db_session, user_id) == {a.id for a in awarded}
        assert await get_level(db_session, user_id) is None
        earned = [json.loads(m)["achievement_slug"] for c, m in fake_redis.published
                  if c == "pubsub:achievement_earned"]
        assert earned == ["first_steps", "three_lessons"]

    @pytest.mark.asyncio
    async def test_publishes_notifications(self, db_session, user, catalog, fake_redis):
        await _add_lessons(db_session, user.id, 1)

        await check_achievements(db_session, fake_redis, user.id, today=TODAY)

        earned = [json.loads(m) for c, m in fake_redis.published if c == "pubsub:achievement_earned"]
        assert earned[0]["achievement_slug"] == "first_steps"
        assert earned[0]["xp_reward"] == 50

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, catalog):
        with pytest.raises(NotFoundError):
            await check_achievements(db_session, None, "ghost")


class TestAwardAchievement:
    @pytest.mark.asyncio
    async def test_manual_award_is_idempotent(self, db_session, user, catalog):
        first, created = await award_achievement(db_session, user.id, catalog["first_steps"].id)
        again, created_again = await award_achievement(db_session, user.id, catalog["first_steps"].id)

        assert created is True
        assert created_again is False
        assert first.id == again.id
        assert again.achievement.slug == "first_steps"

    @pytest.mark.asyncio
    async def test_unknown_achievement(self, db_session, user):
        with pytest.raises(NotFoundError):
            await award_achievement(db_session, user.id, "missing")

    @pytest.mark.asyncio
    async def test_list_user_achievements(self, db_session, user, catalog):
        await award_achievement(db_session, user.id, catalog["first_steps"].id)
        await award_achievement(db_session, user.id, catalog["three_lessons"].id)

        earned = await list_user_achievements(db_session, user.id)
        assert [ua.achievement.slug for ua in earned] == ["three_lessons", "first_steps"]
