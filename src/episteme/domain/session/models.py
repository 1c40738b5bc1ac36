"""
Domain models for a live study session.

Session state lives only in memory: it is created at session start,
mutated by the state machine and discarded at session end.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal

from episteme.domain.cards.models import Card, ReviewResult


@dataclass
class SessionStats:
    """Running tallies for one session. Counters never go below zero."""

    total: int = 0
    reviewed: int = 0
    again: int = 0
    hard: int = 0
    good: int = 0
    easy: int = 0
    new_cards: int = 0
    learning_cards: int = 0
    review_cards: int = 0
    duration_ms: int = 0

    def copy(self) -> "SessionStats":
        return replace(self)


@dataclass
class SessionState:
    """
    Snapshot of a study session.

    Invariants:
        current_index only moves backwards through an explicit undo or removal.
        The session is complete iff it is active and current_index >= len(queue).
    """

    is_active: bool = False
    queue: list[Card] = field(default_factory=list)
    current_index: int = 0
    is_answer_revealed: bool = False
    results: list[ReviewResult] = field(default_factory=list)
    start_time: datetime | None = None
    question_shown_time: datetime | None = None
    stats: SessionStats = field(default_factory=SessionStats)

    def copy(self) -> "SessionState":
        """Copy with independent lists so callers cannot mutate the machine."""
        return replace(
            self,
            queue=list(self.queue),
            results=list(self.results),
            stats=self.stats.copy(),
        )


@dataclass
class EditModeState:
    """Inline edit state for the current card."""

    active: bool = False
    field: Literal["question", "answer"] | None = None


@dataclass(frozen=True)
class SessionProgress:
    current: int
    total: int
    percentage: float


@dataclass(frozen=True)
class RemainingByType:
    new: int
    learning: int
    due: int
