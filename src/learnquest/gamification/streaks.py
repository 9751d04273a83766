"""Daily streak rules.

All calendar-day comparisons use UTC days. Callers must derive ``today``
from ``utc_today()`` (or a UTC datetime) so every server instance agrees on
where a day ends.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone


class StreakAction(str, enum.Enum):
    STARTED = "started"
    CONTINUED = "continued"
    RESET = "reset"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class StreakUpdate:
    streak: int
    action: StreakAction

    @property
    def changed(self) -> bool:
        return self.action is not StreakAction.UNCHANGED


def utc_today(now: datetime | None = None) -> date:
    """Current UTC calendar day. Naive datetimes are taken to be UTC."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()


def update_streak(last_active: date | None, today: date, current_streak: int = 0) -> StreakUpdate:
    """Decide the streak after activity on ``today``.

    - no prior activity: started at 1
    - already active today: unchanged (at most one increment per day)
    - active yesterday: continued, +1
    - anything else, including a last_active in the future: reset to 1
    """
    if last_active is None:
        return StreakUpdate(streak=1, action=StreakAction.STARTED)

    if last_active == today:
        return StreakUpdate(streak=current_streak, action=StreakAction.UNCHANGED)

    if last_active == today - timedelta(days=1):
        return StreakUpdate(streak=current_streak + 1, action=StreakAction.CONTINUED)

    return StreakUpdate(streak=1, action=StreakAction.RESET)


def is_streak_active(last_active: date | None, today: date) -> bool:
    """A streak is alive while the last activity was today or yesterday."""
    if last_active is None:
        return False
    return 0 <= (today - last_active).days <= 1
