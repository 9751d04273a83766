"""Achievement criteria as a closed, tagged set of pydantic models.

Raw JSON from the catalog is parsed once via ``parse_criteria`` when the
catalog is loaded or an achievement is created, so evaluation never has to
guess at the shape of a criteria blob.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from learnquest.errors import ValidationError


@dataclass(frozen=True)
class UserStats:
    """Aggregate learning stats the criteria are measured against."""

    lessons_completed: int = 0
    topics_completed: int = 0
    topics_studied: int = 0
    current_streak: int = 0
    coding_exercises: int = 0
    assessment_scores: tuple[float, ...] = ()  # chronological

    @property
    def assessments_completed(self) -> int:
        return len(self.assessment_scores)

    def assessments_scoring_at_least(self, min_score: float) -> int:
        return sum(1 for score in self.assessment_scores if score >= min_score)

    @property
    def perfect_score_run(self) -> int:
        """Longest run of consecutive 100% assessments."""
        best = run = 0
        for score in self.assessment_scores:
            run = run + 1 if score >= 100 else 0
            best = max(best, run)
        return best


class _Criteria(BaseModel):
    # Presentation extras (icon_name, category, tier) are kept but never evaluated.
    model_config = ConfigDict(extra="allow", frozen=True)

    threshold: int = Field(ge=1)

    def measure(self, stats: UserStats) -> int:
        raise NotImplementedError

    def is_met(self, stats: UserStats) -> bool:
        return self.measure(stats) >= self.threshold


class LessonCompletion(_Criteria):
    type: Literal["lesson_completion"]

    def measure(self, stats: UserStats) -> int:
        return stats.lessons_completed


class TopicMastery(_Criteria):
    type: Literal["topic_mastery"]

    def measure(self, stats: UserStats) -> int:
        return stats.topics_completed


class TopicDiversity(_Criteria):
    type: Literal["topic_diversity"]

    def measure(self, stats: UserStats) -> int:
        return stats.topics_studied


class StreakDays(_Criteria):
    type: Literal["streak_days"]

    def measure(self, stats: UserStats) -> int:
        return stats.current_streak


class AssessmentCompletion(_Criteria):
    type: Literal["assessment_completion"]

    def measure(self, stats: UserStats) -> int:
        return stats.assessments_completed


class AssessmentScore(_Criteria):
    type: Literal["assessment_score"]
    min_score: float = Field(default=90, ge=0, le=100)

    def measure(self, stats: UserStats) -> int:
        return stats.assessments_scoring_at_least(self.min_score)


class PerfectScores(_Criteria):
    type: Literal["perfect_scores"]

    def measure(self, stats: UserStats) -> int:
        return stats.perfect_score_run


class CodingExercises(_Criteria):
    type: Literal["coding_exercises"]

    def measure(self, stats: UserStats) -> int:
        return stats.coding_exercises


Criteria = Annotated[
    Union[
        LessonCompletion,
        TopicMastery,
        TopicDiversity,
        StreakDays,
        AssessmentCompletion,
        AssessmentScore,
        PerfectScores,
        CodingExercises,
    ],
    Field(discriminator="type"),
]

CRITERIA_TYPES = (
    "lesson_completion",
    "topic_mastery",
    "topic_diversity",
    "streak_days",
    "assessment_completion",
    "assessment_score",
    "perfect_scores",
    "coding_exercises",
)

_adapter: TypeAdapter[Criteria] = TypeAdapter(Criteria)


def parse_criteria(raw: Any) -> Criteria:  # noqa: ANN401
    """Validate a raw criteria mapping. Raises ValidationError on any defect."""
    # The original catalog stored camelCase keys.
    if isinstance(raw, dict) and "minScore" in raw and "min_score" not in raw:
        raw = {**raw, "min_score": raw["minScore"]}
        raw.pop("minScore")
    try:
        return _adapter.validate_python(raw)
    except pydantic.ValidationError as exc:
        msg = f"Invalid achievement criteria: {exc.errors(include_url=False)}"
        raise ValidationError(msg) from exc
