"""
FSRS Scheduler — Infrastructure adapter for the `fsrs` library.

Converts Episteme Card snapshots to and from fsrs.Card and exposes the two
pure functions the scheduling engine needs: schedule and retrievability.

Note: the fsrs library has no explicit New state. A never-reviewed card is
State.Learning at step 0 with no stability, difficulty or last review; reps
and lapses are not tracked by the library and are maintained here.
"""

import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from fsrs import Card as FsrsCard
from fsrs import Rating as FsrsRating
from fsrs import Scheduler
from fsrs import State as FsrsState

from episteme.application.utils.dates import align, ensure_aware
from episteme.domain.cards.models import Card, CardState, Rating
from episteme.domain.constants import (
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_RELEARNING_STEPS,
    DEFAULT_REQUEST_RETENTION,
)

logger = logging.getLogger(__name__)

_STATE_TO_FSRS = {
    CardState.NEW: FsrsState.Learning,
    CardState.LEARNING: FsrsState.Learning,
    CardState.REVIEW: FsrsState.Review,
    CardState.RELEARNING: FsrsState.Relearning,
}


def _utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    return ensure_aware(dt).astimezone(timezone.utc)


class FsrsScheduler:
    """
    FSRS memory model backed by fsrs.Scheduler.

    Instances are callables `(card, rating, now) -> Card` and never mutate
    their input.

    Attributes:
        desired_retention: Target recall probability.
        maximum_interval: Maximum days between reviews.
        learning_steps: Learning steps in minutes.
        relearning_steps: Relearning steps in minutes.
        enable_fuzz: Randomize long intervals slightly.
    """

    def __init__(
        self,
        weights: Sequence[float] | None = None,
        desired_retention: float = DEFAULT_REQUEST_RETENTION,
        maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL,
        learning_steps: Sequence[int] = DEFAULT_LEARNING_STEPS,
        relearning_steps: Sequence[int] = DEFAULT_RELEARNING_STEPS,
        enable_fuzz: bool = False,
    ):
        self.desired_retention = desired_retention
        self.maximum_interval = maximum_interval
        self.learning_steps = tuple(learning_steps)
        self.relearning_steps = tuple(relearning_steps)
        self.enable_fuzz = enable_fuzz

        kwargs = {
            "desired_retention": desired_retention,
            "maximum_interval": maximum_interval,
            "learning_steps": tuple(timedelta(minutes=m) for m in self.learning_steps),
            "relearning_steps": tuple(timedelta(minutes=m) for m in self.relearning_steps),
            "enable_fuzzing": enable_fuzz,
        }
        if weights is not None:
            kwargs["parameters"] = tuple(weights)

        self._fsrs = Scheduler(**kwargs)

    def to_fsrs_card(self, card: Card) -> FsrsCard:
        """Build the library's card from an Episteme snapshot."""
        if card.state == CardState.NEW:
            return FsrsCard(
                card_id=0,
                state=FsrsState.Learning,
                step=0,
                due=_utc(card.due),
            )

        stability = card.stability if card.stability > 0 else None
        return FsrsCard(
            card_id=0,
            state=_STATE_TO_FSRS[card.state],
            step=None if card.state == CardState.REVIEW else card.learning_step,
            stability=stability,
            difficulty=card.difficulty if stability is not None else None,
            due=_utc(card.due),
            last_review=_utc(card.last_review),
        )

    def __call__(self, card: Card, rating: Rating, now: datetime) -> Card:
        review_time = _utc(now)
        result, _ = self._fsrs.review_card(
            self.to_fsrs_card(card), FsrsRating(int(rating)), review_datetime=review_time
        )

        state = CardState(result.state.value)
        due = align(result.due, now)
        scheduled_days = 0
        if state == CardState.REVIEW:
            scheduled_days = max(0, (result.due - review_time).days)

        lapsed = rating == Rating.AGAIN and card.state == CardState.REVIEW

        logger.debug(
            f"[fsrs] {card.id}: {card.state.name} -> {state.name} "
            f"rating={int(rating)} due={due.isoformat()}"
        )

        return replace(
            card,
            due=due,
            stability=result.stability or 0.0,
            difficulty=result.difficulty or 0.0,
            reps=card.reps + 1,
            lapses=card.lapses + (1 if lapsed else 0),
            state=state,
            last_review=now,
            scheduled_days=scheduled_days,
            learning_step=result.step or 0,
        )

    def retrievability(self, card: Card, now: datetime) -> float:
        """Probability of recall at `now` from the FSRS forgetting curve."""
        return self._fsrs.get_card_retrievability(
            self.to_fsrs_card(card), current_datetime=_utc(now)
        )
