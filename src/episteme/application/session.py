"""
Session state machine for a single study session.

States: Inactive → Active (answer hidden / revealed) → Inactive.
"Complete" is derived: active with current_index past the end of the queue.

The machine is single-writer and holds no timers. Caller-contract
violations (answering an inactive session, invalid ratings, out-of-range
positions) are logged no-ops, and every mutation either applies fully or
not at all, so counters never drift or go negative.
"""

import logging
import random
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from episteme.application.queue_builder import ReviewOrder
from episteme.application.utils.dates import ms_between, utc_now, whole_days_between
from episteme.domain.cards.models import (
    Card,
    CardState,
    Rating,
    ReviewResult,
    SchedulingPreview,
    is_valid_rating,
)
from episteme.domain.constants import RANDOM_REQUEUE_WINDOW, REQUEUE_HORIZON_MINUTES
from episteme.domain.session.models import (
    EditModeState,
    RemainingByType,
    SessionProgress,
    SessionState,
    SessionStats,
)

logger = logging.getLogger(__name__)

_RATING_FIELDS = {
    Rating.AGAIN: "again",
    Rating.HARD: "hard",
    Rating.GOOD: "good",
    Rating.EASY: "easy",
}

_STATE_FIELDS = {
    CardState.NEW: "new_cards",
    CardState.LEARNING: "learning_cards",
    CardState.RELEARNING: "learning_cards",
    CardState.REVIEW: "review_cards",
}


def _tally(stats: SessionStats, result: ReviewResult, delta: int) -> None:
    """Add (delta=1) or remove (delta=-1) one result from the counters, floored at 0."""
    for name in ("reviewed", _RATING_FIELDS[result.rating], _STATE_FIELDS[result.previous_state]):
        setattr(stats, name, max(0, getattr(stats, name) + delta))


class SessionStateMachine:
    """
    Stateful controller for one active study session.

    Every time-dependent method takes an optional `now`; when omitted the
    injected clock is used.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or utc_now
        self._state = SessionState()
        self._edit = EditModeState()
        self.scheduling_preview: SchedulingPreview | None = None

    def _now(self, now: datetime | None) -> datetime:
        return now or self._clock()

    # ===== Session control =====

    def start_session(self, queue: Sequence[Card], now: datetime | None = None) -> None:
        """Inactive → Active with a fresh queue, results and stats."""
        now = self._now(now)
        self._state = SessionState(
            is_active=True,
            queue=list(queue),
            current_index=0,
            is_answer_revealed=False,
            results=[],
            start_time=now,
            question_shown_time=now,
            stats=SessionStats(total=len(queue)),
        )
        self._edit = EditModeState()
        self.scheduling_preview = None
        logger.info(f"Session started with {len(queue)} cards")

    def end_session(self, now: datetime | None = None) -> None:
        """Active → Inactive; freezes the session duration."""
        if not self._state.is_active:
            return
        now = self._now(now)
        self._state.is_active = False
        if self._state.start_time is not None:
            self._state.stats.duration_ms = max(0, ms_between(self._state.start_time, now))
        self._edit = EditModeState()
        self.scheduling_preview = None
        stats = self._state.stats
        logger.info(f"Session ended: {stats.reviewed} reviewed in {stats.duration_ms} ms")

    def reset(self) -> None:
        self._state = SessionState()
        self._edit = EditModeState()
        self.scheduling_preview = None

    # ===== Queries =====

    def get_state(self) -> SessionState:
        """Copy of the current state."""
        return self._state.copy()

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    @property
    def is_answer_revealed(self) -> bool:
        return self._state.is_answer_revealed

    @property
    def current_index(self) -> int:
        return self._state.current_index

    def is_complete(self) -> bool:
        return self._state.is_active and self._state.current_index >= len(self._state.queue)

    def get_current_card(self) -> Card | None:
        if not self._state.is_active or self.is_complete():
            return None
        return self._state.queue[self._state.current_index]

    @property
    def current_card(self) -> Card | None:
        return self.get_current_card()

    def get_progress(self) -> SessionProgress:
        total = len(self._state.queue)
        current = min(self._state.current_index + 1, total)
        percentage = (current / total) * 100 if total > 0 else 0.0
        return SessionProgress(current=current, total=total, percentage=percentage)

    def get_remaining_count(self) -> int:
        return max(0, len(self._state.queue) - self._state.current_index)

    def _remaining(self) -> list[Card]:
        return self._state.queue[self._state.current_index :]

    def get_remaining_by_type(self) -> RemainingByType:
        remaining = self._remaining()
        return RemainingByType(
            new=sum(1 for c in remaining if c.state == CardState.NEW),
            learning=sum(1 for c in remaining if c.is_learning),
            due=sum(1 for c in remaining if c.state == CardState.REVIEW),
        )

    def get_stats(self, now: datetime | None = None) -> SessionStats:
        """Stats copy; duration is live while the session is active."""
        stats = self._state.stats.copy()
        if self._state.is_active and self._state.start_time is not None:
            stats.duration_ms = max(0, ms_between(self._state.start_time, self._now(now)))
        return stats

    # ===== Answer flow =====

    def reveal_answer(self) -> None:
        if not self._state.is_active or self._state.is_answer_revealed:
            return
        self._state.is_answer_revealed = True

    def hide_answer(self) -> None:
        self._state.is_answer_revealed = False

    def record_answer(
        self, rating: int, updated_card: Card, now: datetime | None = None
    ) -> bool:
        """
        Record the answer for the current card.

        Appends a ReviewResult, updates the counters and replaces the queue
        entry with `updated_card`. Does not advance.

        Returns:
            True if the answer was recorded, False if it was rejected.
        """
        current = self.get_current_card()
        if current is None:
            logger.debug("record_answer ignored: no active card")
            return False
        if not is_valid_rating(rating):
            logger.warning(f"record_answer ignored: invalid rating {rating!r}")
            return False
        if updated_card.id != current.id:
            logger.warning(
                f"record_answer ignored: updated card {updated_card.id} "
                f"does not match current card {current.id}"
            )
            return False

        now = self._now(now)
        shown = self._state.question_shown_time or now
        result = ReviewResult(
            card_id=current.id,
            rating=Rating(rating),
            timestamp=now,
            response_time_ms=max(0, ms_between(shown, now)),
            previous_state=current.state,
            scheduled_days=current.scheduled_days,
            elapsed_days=(
                whole_days_between(current.last_review, now) if current.last_review else 0
            ),
        )

        _tally(self._state.stats, result, 1)
        self._state.queue[self._state.current_index] = updated_card
        self._state.results.append(result)
        return True

    def next_card(self, now: datetime | None = None) -> bool:
        """
        Advance past the current card.

        The index moves even from the last card, so is_complete() becomes
        true exactly when the queue is exhausted.

        Returns:
            True if there is a card to show after advancing.
        """
        if not self._state.is_active:
            return False
        if self._state.current_index < len(self._state.queue):
            self._state.current_index += 1
        self._state.is_answer_revealed = False
        self._state.question_shown_time = self._now(now)
        self.scheduling_preview = None
        return self._state.current_index < len(self._state.queue)

    def undo_last_answer(
        self,
        previous_index: int,
        restored_card: Card,
        now: datetime | None = None,
    ) -> bool:
        """
        Revert the most recent answer.

        Restores `restored_card` at `previous_index`, pops the last result and
        reverses its counters. Does nothing when there is no result to undo.
        """
        if not self._state.is_active:
            return False
        if not self._state.results:
            logger.debug("undo_last_answer ignored: no results")
            return False
        if not 0 <= previous_index < len(self._state.queue):
            logger.warning(f"undo_last_answer ignored: index {previous_index} out of range")
            return False

        last = self._state.results.pop()
        _tally(self._state.stats, last, -1)

        self._state.queue[previous_index] = restored_card
        self._state.current_index = previous_index
        self._state.is_answer_revealed = False
        self._state.question_shown_time = self._now(now)
        self._edit = EditModeState()
        self.scheduling_preview = None
        return True

    # ===== Queue surgery =====

    def requeue_card(self, card: Card, position: int | None = None) -> None:
        """Insert a card again (e.g. a learning card due soon). Appends by default."""
        if not self._state.is_active:
            return
        queue = self._state.queue
        if position is None:
            queue.append(card)
        else:
            queue.insert(min(max(0, position), len(queue)), card)
        self._state.stats.total = len(queue)

    def insert_card_at_position(self, card: Card, position: int) -> None:
        """Insert a card at `position`, clamped into [0, len(queue)]."""
        if not self._state.is_active:
            return
        queue = self._state.queue
        queue.insert(min(max(0, position), len(queue)), card)
        self._state.stats.total = len(queue)

    def _remove_at(self, index: int, now: datetime | None = None) -> Card:
        removed = self._state.queue.pop(index)
        if index < self._state.current_index:
            self._state.current_index -= 1
        elif index == self._state.current_index:
            self._state.is_answer_revealed = False
            self._state.question_shown_time = self._now(now)
            self.scheduling_preview = None
        self._state.current_index = min(self._state.current_index, len(self._state.queue))
        self._state.stats.total = len(self._state.queue)
        return removed

    def remove_current_card(self, now: datetime | None = None) -> Card | None:
        """Remove the current card (suspend/bury); the next card becomes current."""
        if self.get_current_card() is None:
            return None
        return self._remove_at(self._state.current_index, now)

    def remove_card_at_position(
        self, position: int, now: datetime | None = None
    ) -> Card | None:
        if not self._state.is_active or not 0 <= position < len(self._state.queue):
            return None
        return self._remove_at(position, now)

    def remove_card_by_id(self, card_id: str, now: datetime | None = None) -> int:
        """
        Remove every queue entry with this id.

        Returns:
            Number of entries removed.
        """
        if not self._state.is_active:
            return 0
        removed = 0
        for index in range(len(self._state.queue) - 1, -1, -1):
            if self._state.queue[index].id == card_id:
                self._remove_at(index, now)
                removed += 1
        return removed

    # ===== Learning-card requeue =====

    def should_requeue(self, card: Card, now: datetime | None = None) -> bool:
        """Learning/relearning cards due within the requeue horizon come back this session."""
        if not card.is_learning:
            return False
        horizon = self._now(now) + timedelta(minutes=REQUEUE_HORIZON_MINUTES)
        return card.due.timestamp() <= horizon.timestamp()

    def get_requeue_position(
        self,
        queue: Sequence[Card],
        card: Card,
        review_order: ReviewOrder | str,
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> int:
        """
        Position within `queue` (usually the remaining cards) for a requeued card.

        random: due-soon cards land at a random slot among the first few
        positions; cards not yet due go to the end.
        due-date orders: before the first card due later, else at the end.
        """
        if review_order == ReviewOrder.RANDOM:
            if not self.should_requeue(card, now):
                return len(queue)
            rng = rng or random.Random()
            return rng.randint(0, min(RANDOM_REQUEUE_WINDOW, len(queue)))

        due = card.due.timestamp()
        for index, queued in enumerate(queue):
            if queued.due.timestamp() > due:
                return index
        return len(queue)

    def get_pending_learning_cards(self, now: datetime | None = None) -> list[Card]:
        """Remaining learning cards that are not due yet."""
        cutoff = self._now(now).timestamp()
        return [c for c in self._remaining() if c.is_learning and c.due.timestamp() > cutoff]

    def is_waiting_for_learning_cards(self, now: datetime | None = None) -> bool:
        """True when the current card is a learning card that is not due yet."""
        card = self.get_current_card()
        if card is None or not card.is_learning:
            return False
        return card.due.timestamp() > self._now(now).timestamp()

    def get_time_until_next_due(self, now: datetime | None = None) -> int:
        """Milliseconds until the next pending learning card is due, or 0."""
        now = self._now(now)
        pending = self.get_pending_learning_cards(now)
        if not pending:
            return 0
        return min(ms_between(now, c.due) for c in pending)

    # ===== Preview & edit mode =====

    def set_scheduling_preview(self, preview: SchedulingPreview | None) -> None:
        self.scheduling_preview = preview

    def get_edit_state(self) -> EditModeState:
        return EditModeState(active=self._edit.active, field=self._edit.field)

    def start_edit(self, field: str) -> bool:
        if self.get_current_card() is None or field not in ("question", "answer"):
            return False
        self._edit = EditModeState(active=True, field=field)
        return True

    def cancel_edit(self) -> None:
        self._edit = EditModeState()

    def is_editing(self) -> bool:
        return self._edit.active
