"""
Domain models for review statistics.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class DailyStats:
    """
    Progress for the current boundary day.

    Attributes:
        new_reviewed: Results whose card was New before the answer.
        reviews_completed: All results recorded today.
        due_today: Non-new cards due before tomorrow's boundary.
        new_remaining: New cards still allowed by the daily limit.
        date: Boundary-day key (YYYY-MM-DD).
    """

    new_reviewed: int
    reviews_completed: int
    due_today: int
    new_remaining: int
    date: str


@dataclass(frozen=True)
class StreakInfo:
    current_streak: int = 0
    longest_streak: int = 0


@dataclass(frozen=True)
class CardCounts:
    """
    Card maturity breakdown.

    Young/mature split Review cards by scheduled interval; suspended and
    buried cards are counted separately and excluded from the other buckets.
    """

    total: int = 0
    new: int = 0
    learning: int = 0
    young: int = 0
    mature: int = 0
    suspended: int = 0
    buried: int = 0
