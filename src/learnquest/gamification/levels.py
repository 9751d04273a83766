"""Level progression: thresholds and the level-up calculator.

A user holds ``experience`` points *towards* the next level. The threshold to
leave level ``n`` is ``round(100 * n ** 1.5)``; overflow rolls into further
level-ups, so one large award may jump several levels.
"""

from __future__ import annotations

from dataclasses import dataclass

from learnquest.errors import InvalidAmount

BASE_EXPERIENCE = 100
LEVEL_EXPONENT = 1.5

DEFAULT_LEVEL = 1
DEFAULT_EXPERIENCE = 0
DEFAULT_NEXT_LEVEL_EXP = BASE_EXPERIENCE

# Upper bound for one award; keeps the roll-over loop short and the stored
# experience inside a 32-bit column.
MAX_EXPERIENCE_AWARD = 1_000_000

LEVEL_TITLES: dict[int, str] = {
    1: "Novice",
    2: "Apprentice",
    3: "Student",
    4: "Scholar",
    5: "Adept",
    6: "Expert",
    7: "Master",
    8: "Grandmaster",
    9: "Sage",
    10: "Enlightened",
}

LEVEL_BENEFITS: dict[int, list[str]] = {
    1: ["Access to basic learning content"],
    2: ["Unlock daily challenges"],
    3: ["Access to intermediate learning content"],
    5: ["Unlock advanced learning content", "Access to special coding exercises"],
    7: ["Unlock expert challenges", "Access to community forums"],
    10: ["Unlock mentor status", "Create and share custom learning paths"],
}


@dataclass(frozen=True)
class LevelOutcome:
    level: int
    experience: int
    next_level_exp: int
    leveled_up: bool
    levels_gained: int


def threshold(level: int) -> int:
    """Experience needed to advance from ``level`` to ``level + 1``."""
    if level < 1:
        msg = f"level must be >= 1, got {level}"
        raise ValueError(msg)
    return round(BASE_EXPERIENCE * level**LEVEL_EXPONENT)


def apply_experience(
    current_level: int,
    current_experience: int,
    next_level_exp: int,
    gained: int,
) -> LevelOutcome:
    """Add ``gained`` experience and roll any overflow into level-ups.

    ``next_level_exp`` is the stored threshold for ``current_level``; it is
    honoured as-is for the first level-up and recomputed from the formula for
    every level after that.
    """
    if isinstance(gained, bool) or not isinstance(gained, int) or gained <= 0:
        msg = f"Experience amount must be a positive integer, got {gained!r}"
        raise InvalidAmount(msg)
    if gained > MAX_EXPERIENCE_AWARD:
        msg = f"Experience amount must not exceed {MAX_EXPERIENCE_AWARD}, got {gained}"
        raise InvalidAmount(msg)

    level = current_level
    experience = current_experience + gained
    needed = next_level_exp
    gained_levels = 0

    while experience >= needed:
        experience -= needed
        level += 1
        gained_levels += 1
        needed = threshold(level)

    return LevelOutcome(
        level=level,
        experience=experience,
        next_level_exp=needed,
        leveled_up=gained_levels > 0,
        levels_gained=gained_levels,
    )


def total_experience_for_level(level: int) -> int:
    """Cumulative experience spent to complete levels 1..level."""
    return sum(threshold(i) for i in range(1, level + 1))


def level_title(level: int) -> str:
    return LEVEL_TITLES.get(level, f"Level {level}")


def level_info(level: int) -> dict:
    """Title, cumulative experience window and unlocked benefits for a level."""
    return {
        "level": level,
        "title": level_title(level),
        "min_experience": 0 if level == 1 else total_experience_for_level(level - 1),
        "max_experience": total_experience_for_level(level),
        "benefits": LEVEL_BENEFITS.get(level, []),
    }


def level_table(max_level: int = 10) -> list[dict]:
    return [level_info(level) for level in range(1, max_level + 1)]
