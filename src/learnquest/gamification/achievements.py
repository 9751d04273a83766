"""Achievement evaluation against a user's aggregate stats."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass

from learnquest.gamification.criteria import Criteria, UserStats


@dataclass(frozen=True)
class CatalogEntry:
    """An achievement id paired with its already-validated criteria."""

    achievement_id: str
    criteria: Criteria


def evaluate(
    stats: UserStats,
    catalog: Iterable[CatalogEntry],
    already_earned_ids: Collection[str],
) -> list[str]:
    """Return ids of catalog achievements newly met by ``stats``.

    Pure: the same inputs always give the same result, in catalog order.
    Achievements never exclude each other, so every qualifier is returned.
    """
    earned = set(already_earned_ids)
    return [
        entry.achievement_id
        for entry in catalog
        if entry.achievement_id not in earned and entry.criteria.is_met(stats)
    ]
