"""Progress endpoints: topic progress, assessments, activities, goals, metrics and export."""

from __future__ import annotations

import pytest

from learnquest.gamification.seed import seed_achievements


class TestActivities:
    @pytest.mark.asyncio
    async def test_record_and_list(self, client, user, topic):
        response = await client.post("/api/v1/progress/activities", json={
            "user_id": user.id,
            "activity_type": "lesson",
            "topic_id": topic.id,
            "activity_data": {"lesson_id": "intro"},
            "duration": 120,
        })
        assert response.status_code == 201
        assert response.json()["topic_id"] == topic.id

        listing = await client.get("/api/v1/progress/activities", params={"user_id": user.id})
        data = listing.json()
        assert data["total"] == 1
        assert data["activities"][0]["activity_data"] == {"lesson_id": "intro"}

        streak = await client.get("/api/v1/gamification/streaks", params={"user_id": user.id})
        assert streak.json()["current_streak"] == 1

    @pytest.mark.asyncio
    async def test_unknown_topic_is_404(self, client, user):
        response = await client.post("/api/v1/progress/activities", json={
            "user_id": user.id, "activity_type": "lesson", "topic_id": "missing",
        })
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_activity_type_is_400(self, client, user):
        response = await client.post("/api/v1/progress/activities", json={
            "user_id": user.id, "activity_type": "napping",
        })
        assert response.status_code == 400


class TestGoals:
    @pytest.mark.asyncio
    async def test_create_progress_and_delete(self, client, user):
        created = await client.post("/api/v1/progress/goals", json={
            "user_id": user.id, "title": "Daily practice", "target_value": 1, "goal_type": "total",
        })
        assert created.status_code == 201
        goal_id = created.json()["id"]

        await client.post("/api/v1/progress/activities", json={"user_id": user.id, "activity_type": "practice"})

        goals = (await client.get("/api/v1/progress/goals", params={"user_id": user.id})).json()["goals"]
        assert goals[0]["current_value"] == 1
        assert goals[0]["completed"] is True

        deleted = await client.delete(f"/api/v1/progress/goals/{goal_id}")
        assert deleted.status_code == 204
        missing = await client.delete(f"/api/v1/progress/goals/{goal_id}")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_goal_type_is_400(self, client, user):
        response = await client.post("/api/v1/progress/goals", json={
            "user_id": user.id, "title": "x", "target_value": 1, "goal_type": "decade",
        })
        assert response.status_code == 400


class TestMetrics:
    @pytest.mark.asyncio
    async def test_experience_awards_are_logged(self, client, user):
        for amount in (10, 20):
            await client.post("/api/v1/gamification/levels/experience",
                              json={"user_id": user.id, "amount": amount, "source": "quiz"})

        response = await client.get("/api/v1/progress/metrics",
                                    params={"user_id": user.id, "metric_type": "experience_gain"})
        metrics = response.json()["metrics"]
        assert [m["metric_value"] for m in metrics] == [20, 10]
        assert metrics[0]["metric_data"]["source"] == "quiz"


class TestTopicProgress:
    @pytest.mark.asyncio
    async def test_upsert_then_list(self, client, user, topic):
        created = await client.post("/api/v1/progress/topics", json={
            "user_id": user.id, "topic_id": topic.id, "proficiency": 45,
        })
        assert created.status_code == 201
        assert created.json()["topic_name"] == "Python Basics"
        assert created.json()["completed"] is False

        updated = await client.post("/api/v1/progress/topics", json={
            "user_id": user.id, "topic_id": topic.id, "proficiency": 90,
        })
        assert updated.status_code == 200
        assert updated.json()["id"] == created.json()["id"]
        assert updated.json()["completed"] is True

        listing = await client.get("/api/v1/progress", params={"user_id": user.id})
        data = listing.json()
        assert len(data["progress"]) == 1
        assert data["stats"] == {
            "completed_topics": 1, "total_topics": 1, "progress_percentage": 100, "average_proficiency": 90.0,
        }

    @pytest.mark.asyncio
    async def test_out_of_range_proficiency_is_400(self, client, user, topic):
        response = await client.post("/api/v1/progress/topics", json={
            "user_id": user.id, "topic_id": topic.id, "proficiency": 250,
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, client):
        response = await client.get("/api/v1/progress", params={"user_id": "ghost"})
        assert response.status_code == 404


class TestAssessments:
    @pytest.mark.asyncio
    async def test_submit_scores_topic_and_unlocks_achievements(self, client, user, topic, db_session):
        await seed_achievements(db_session)

        response = await client.post("/api/v1/progress/assessments", json={
            "user_id": user.id, "assessment_id": "quiz-1", "score": 100, "topic_id": topic.id,
        })
        assert response.status_code == 201
        assert response.json()["feedback"] == "Excellent work!"

        check = await client.post("/api/v1/achievements/check", json={"user_id": user.id})
        slugs = {a["slug"] for a in check.json()["newly_awarded"]}
        assert {"quiz_taker", "passing_grade", "assessment_ace", "topic_master"} <= slugs

    @pytest.mark.asyncio
    async def test_summary_and_export(self, client, user, topic):
        await client.post("/api/v1/progress/assessments", json={
            "user_id": user.id, "assessment_id": "quiz-1", "score": 65, "topic_id": topic.id,
        })

        summary = await client.get("/api/v1/progress/summary", params={"user_id": user.id})
        assert summary.status_code == 200
        assert summary.json()["recent_assessment_score"] == 65.0
        assert summary.json()["strengths"][0]["topic_name"] == "Python Basics"

        export = await client.post("/api/v1/progress/export", json={"user_id": user.id, "include_metrics": False})
        assert export.status_code == 200
        data = export.json()
        assert data["user"]["email"] == "ada@example.com"
        assert [a["assessment_id"] for a in data["assessments"]] == ["quiz-1"]
        assert data["metrics"] is None
        assert data["summary"]["completed_topics"] == 0
