"""Gamification endpoints: levels, streaks, achievements and error mapping."""

from __future__ import annotations

import pytest
import pytest_asyncio

from learnquest.db.models import Achievement, UserActivity


@pytest_asyncio.fixture
async def lesson_achievement(db_session) -> Achievement:
    achievement = Achievement(slug="first_steps", name="First Steps", description="Complete your first lesson",
                              criteria={"type": "lesson_completion", "threshold": 1}, tier="bronze",
                              xp_reward=50, sort_order=1)
    db_session.add(achievement)
    await db_session.commit()
    return achievement


class TestLevels:
    @pytest.mark.asyncio
    async def test_grant_experience(self, client, user):
        response = await client.post("/api/v1/gamification/levels/experience",
                                     json={"user_id": user.id, "amount": 250, "source": "lesson"})
        assert response.status_code == 200
        data = response.json()
        assert data["leveled_up"] is True
        assert data["levels_gained"] == 1
        assert data["experience_added"] == 250
        assert data["level"]["current_level"] == 2
        assert data["level"]["experience"] == 150
        assert data["level"]["next_level_exp"] == 283
        assert data["level"]["title"] == "Apprentice"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -10])
    async def test_non_positive_amount_is_400(self, client, user, amount):
        response = await client.post("/api/v1/gamification/levels/experience",
                                     json={"user_id": user.id, "amount": amount})
        assert response.status_code == 400
        assert "positive integer" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_oversized_amount_is_422(self, client, user):
        response = await client.post("/api/v1/gamification/levels/experience",
                                     json={"user_id": user.id, "amount": 10**16})
        assert response.status_code == 422

        level = await client.get("/api/v1/gamification/levels", params={"user_id": user.id})
        assert level.json()["current_level"] == 1

    @pytest.mark.asyncio
    async def test_malformed_body_is_422(self, client, user):
        response = await client.post("/api/v1/gamification/levels/experience",
                                     json={"user_id": user.id, "amount": "lots"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, client):
        response = await client.post("/api/v1/gamification/levels/experience",
                                     json={"user_id": "ghost", "amount": 10})
        assert response.status_code == 404
        assert response.json() == {"detail": "User not found: ghost"}

    @pytest.mark.asyncio
    async def test_get_level_defaults_before_first_award(self, client, user):
        response = await client.get("/api/v1/gamification/levels", params={"user_id": user.id})
        assert response.status_code == 200
        assert response.json() == {
            "user_id": user.id,
            "current_level": 1,
            "experience": 0,
            "next_level_exp": 100,
            "title": "Novice",
            "progress": 0.0,
        }

    @pytest.mark.asyncio
    async def test_get_level_after_award(self, client, user):
        await client.post("/api/v1/gamification/levels/experience", json={"user_id": user.id, "amount": 25})
        response = await client.get("/api/v1/gamification/levels", params={"user_id": user.id})
        assert response.json()["experience"] == 25
        assert response.json()["progress"] == 25.0

    @pytest.mark.asyncio
    async def test_level_table(self, client):
        response = await client.get("/api/v1/gamification/levels/table", params={"max_level": 3})
        levels = response.json()["levels"]
        assert [entry["title"] for entry in levels] == ["Novice", "Apprentice", "Student"]
        assert levels[2]["max_experience"] == 903


class TestStreaks:
    @pytest.mark.asyncio
    async def test_check_then_get(self, client, user):
        response = await client.post("/api/v1/gamification/streaks/check", json={"user_id": user.id})
        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "started"
        assert data["updated"] is True
        assert data["streak"]["current_streak"] == 1
        assert data["streak"]["is_active"] is True

        again = await client.post("/api/v1/gamification/streaks/check", json={"user_id": user.id})
        assert again.json()["action"] == "unchanged"
        assert again.json()["updated"] is False

        response = await client.get("/api/v1/gamification/streaks", params={"user_id": user.id})
        assert response.json()["current_streak"] == 1
        assert response.json()["longest_streak"] == 1

    @pytest.mark.asyncio
    async def test_get_streak_defaults(self, client, user):
        response = await client.get("/api/v1/gamification/streaks", params={"user_id": user.id})
        assert response.json() == {
            "user_id": user.id,
            "current_streak": 0,
            "longest_streak": 0,
            "last_active": None,
            "is_active": False,
        }


class TestAchievements:
    @pytest.mark.asyncio
    async def test_catalog_listing(self, client, lesson_achievement):
        response = await client.get("/api/v1/achievements")
        assert response.status_code == 200
        (entry,) = response.json()["achievements"]
        assert entry["slug"] == "first_steps"
        assert entry["criteria"] == {"type": "lesson_completion", "threshold": 1}

    @pytest.mark.asyncio
    async def test_create_achievement(self, client):
        payload = {
            "slug": "night_owl",
            "name": "Night Owl",
            "description": "Complete 3 coding exercises",
            "criteria": {"type": "coding_exercises", "threshold": 3},
            "tier": "silver",
        }
        response = await client.post("/api/v1/achievements", json=payload)
        assert response.status_code == 201
        assert response.json()["xp_reward"] == 100

        duplicate = await client.post("/api/v1/achievements", json=payload)
        assert duplicate.status_code == 409

    @pytest.mark.asyncio
    async def test_create_with_invalid_criteria_is_400(self, client):
        response = await client.post("/api/v1/achievements", json={
            "slug": "bad", "name": "Bad", "description": "",
            "criteria": {"type": "telepathy", "threshold": 1},
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_check_awards_once(self, client, db_session, user, lesson_achievement):
        db_session.add(UserActivity(user_id=user.id, activity_type="lesson"))
        await db_session.commit()

        response = await client.post("/api/v1/achievements/check", json={"user_id": user.id})
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["newly_awarded"][0]["slug"] == "first_steps"

        again = await client.post("/api/v1/achievements/check", json={"user_id": user.id})
        assert again.json() == {"newly_awarded": [], "count": 0}

        level = await client.get("/api/v1/gamification/levels", params={"user_id": user.id})
        assert level.json()["experience"] == 50

    @pytest.mark.asyncio
    async def test_check_unknown_user(self, client):
        response = await client.post("/api/v1/achievements/check", json={"user_id": "ghost"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_manual_award_and_listing(self, client, user, lesson_achievement):
        url = f"/api/v1/users/{user.id}/achievements"
        created = await client.post(url, json={"achievement_id": lesson_achievement.id})
        assert created.status_code == 201
        assert created.json()["achievement"]["slug"] == "first_steps"

        repeat = await client.post(url, json={"achievement_id": lesson_achievement.id})
        assert repeat.status_code == 200

        listing = await client.get(url)
        data = listing.json()
        assert data["total_earned"] == 1
        assert data["achievements"][0]["achievement"]["name"] == "First Steps"

    @pytest.mark.asyncio
    async def test_manual_award_unknown_achievement(self, client, user):
        response = await client.post(f"/api/v1/users/{user.id}/achievements", json={"achievement_id": "nope"})
        assert response.status_code == 404
