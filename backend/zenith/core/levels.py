"""Experience/Rank Engine - Gamified progression from lifetime completions.

All functions are pure: same input always produces same output, no side effects.
"""

from typing import Iterable, NamedTuple

from .models import HabitLog, LevelInfo


XP_PER_COMPLETION = 10
MAX_RANK = "MAX"


class Rank(NamedTuple):
    name: str
    min_xp: int


# Ascending by threshold
RANKS: tuple[Rank, ...] = (
    Rank("Initiate", 0),
    Rank("Operative", 500),
    Rank("Specialist", 1500),
    Rank("Commander", 3000),
    Rank("Architect", 6000),
    Rank("Master", 10000),
)


def total_completions(logs: Iterable[HabitLog]) -> int:
    """Count completed logs across the whole history."""
    return sum(1 for log in logs if log.completed)


def compute_level(completions: int) -> LevelInfo:
    """Derive xp, rank and progress toward the next rank.

    Args:
        completions: Lifetime number of completed logs

    Returns:
        LevelInfo; progress is 100 once the top rank is reached
    """
    xp = completions * XP_PER_COMPLETION

    index = 0
    for i, rank in enumerate(RANKS):
        if rank.min_xp <= xp:
            index = i

    current = RANKS[index]
    if index + 1 < len(RANKS):
        upcoming = RANKS[index + 1]
        progress = (xp - current.min_xp) / (upcoming.min_xp - current.min_xp) * 100
        next_name = upcoming.name
    else:
        progress = 100.0
        next_name = MAX_RANK

    return LevelInfo(xp=xp, rank=current.name, next_rank=next_name, progress=progress)
