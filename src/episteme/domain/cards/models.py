"""
Domain models for flashcard scheduling data.

These are pure data structures with no I/O or external dependencies.
Cards are immutable snapshots: every change produces a new Card via
dataclasses.replace, so queue entries and undo records never alias.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum


class CardState(IntEnum):
    """Lifecycle stage of a card."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class Rating(IntEnum):
    """Grade given after the answer is revealed."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


LEARNING_STATES = frozenset({CardState.LEARNING, CardState.RELEARNING})


def is_valid_rating(rating: object) -> bool:
    """True for 1..4 (ints or Rating members), False otherwise (bools included)."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        return False
    return Rating.AGAIN <= rating <= Rating.EASY


@dataclass(frozen=True)
class Card:
    """
    Scheduling snapshot of a single flashcard.

    Attributes:
        id: Opaque unique key.
        due: Next review time.
        stability: FSRS stability in days (0 for new cards).
        difficulty: FSRS difficulty (0 for new cards).
        reps: Number of reviews.
        lapses: Number of times forgotten from Review.
        state: Lifecycle stage.
        last_review: Time of the last review, None for new cards.
        scheduled_days: Interval assigned by the last review.
        learning_step: Current (re)learning step index.
        suspended: Excluded from every queue while set.
        buried_until: Excluded from queues until this time.
        created_at: Creation time, None for legacy cards.
    """

    id: str
    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    reps: int = 0
    lapses: int = 0
    state: CardState = CardState.NEW
    last_review: datetime | None = None
    scheduled_days: int = 0
    learning_step: int = 0
    suspended: bool = False
    buried_until: datetime | None = None
    created_at: datetime | None = None

    # Metadata used by queue filters (not scheduling state)
    source_note_name: str | None = None
    file_path: str | None = None
    deck: str | None = None
    projects: tuple[str, ...] = ()

    @property
    def is_new(self) -> bool:
        return self.state == CardState.NEW

    @property
    def is_learning(self) -> bool:
        """Learning or Relearning."""
        return self.state in LEARNING_STATES

    @property
    def is_review(self) -> bool:
        return self.state == CardState.REVIEW

    def is_buried(self, now: datetime) -> bool:
        """Buried until a time later than `now`."""
        if self.buried_until is None:
            return False
        return self.buried_until.timestamp() > now.timestamp()


@dataclass(frozen=True)
class ReviewResult:
    """
    Outcome of a single answer within a session.

    Attributes:
        card_id: The card that was answered.
        rating: Button pressed (1=Again, 2=Hard, 3=Good, 4=Easy).
        timestamp: When the answer was recorded.
        response_time_ms: Time between question shown and answer.
        previous_state: Card state before the answer.
        scheduled_days: Interval the card had before the answer.
        elapsed_days: Whole days since the previous review.
    """

    card_id: str
    rating: Rating
    timestamp: datetime
    response_time_ms: int
    previous_state: CardState
    scheduled_days: int
    elapsed_days: int


@dataclass(frozen=True)
class PreviewEntry:
    """Where a card would land for one rating."""

    due: datetime
    interval: str  # human-readable, e.g. "10m", "3d"


@dataclass(frozen=True)
class SchedulingPreview:
    """Next due time for each of the four ratings."""

    again: PreviewEntry
    hard: PreviewEntry
    good: PreviewEntry
    easy: PreviewEntry

    def for_rating(self, rating: Rating) -> PreviewEntry:
        return {
            Rating.AGAIN: self.again,
            Rating.HARD: self.hard,
            Rating.GOOD: self.good,
            Rating.EASY: self.easy,
        }[Rating(rating)]
