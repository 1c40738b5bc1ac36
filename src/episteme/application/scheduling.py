"""
Scheduling engine — Application layer wrapper over the FSRS memory model.

The memory model itself (stability, difficulty and interval computation) is
an external pure function injected at construction. This module adds card
creation, rating validation, previews and the selection/sort helpers the
queue builder relies on.
"""

import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from episteme.application.day_boundary import DayBoundaryService
from episteme.application.id_service import generate_card_id
from episteme.application.utils.dates import align, utc_now
from episteme.application.utils.text import format_interval
from episteme.domain.cards.models import (
    Card,
    CardState,
    PreviewEntry,
    Rating,
    SchedulingPreview,
    is_valid_rating,
)
from episteme.domain.cards.ports import RetrievabilityFunction, ScheduleFunction
from episteme.domain.errors import InvalidRatingError

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """
    Rating → updated-card transitions plus card selection helpers.

    Follows Dependency Inversion: depends on the ScheduleFunction port, not
    on the fsrs library directly.
    """

    def __init__(
        self,
        schedule_fn: ScheduleFunction | None = None,
        retrievability_fn: RetrievabilityFunction | None = None,
    ):
        """
        Args:
            schedule_fn: Pure `(card, rating, now) -> card` memory model.
                Defaults to FsrsScheduler with library defaults.
            retrievability_fn: Pure `(card, now) -> float`. Defaults to the
                schedule_fn's `retrievability` method when it has one.
        """
        if schedule_fn is None:
            from episteme.infrastructure.adapters.fsrs_scheduler import FsrsScheduler

            schedule_fn = FsrsScheduler()

        self._schedule = schedule_fn
        self._retrievability = retrievability_fn or getattr(schedule_fn, "retrievability", None)

    def create_new_card(
        self,
        card_id: str | None = None,
        now: datetime | None = None,
        **metadata,
    ) -> Card:
        """
        Create a card in state New, due immediately.

        Args:
            card_id: Card id; a ULID-based id is generated when omitted.
            now: Creation time (defaults to current UTC time).
            **metadata: Filter metadata (source_note_name, file_path, deck, projects).
        """
        now = now or utc_now()
        return Card(
            id=card_id or generate_card_id(),
            due=now,
            created_at=now,
            **metadata,
        )

    def schedule_card(self, card: Card, rating: int, now: datetime) -> Card:
        """
        Schedule a card after a review.

        The input card is never mutated. Errors raised by the memory model
        propagate unchanged: there is no retry and no fallback schedule.

        Raises:
            InvalidRatingError: If rating is not 1..4.
        """
        if not is_valid_rating(rating):
            raise InvalidRatingError(rating)
        return self._schedule(card, Rating(rating), now)

    def get_retrievability(self, card: Card, now: datetime) -> float:
        """Probability of recall in [0, 1]; always 0 for New cards."""
        if card.state == CardState.NEW or self._retrievability is None:
            return 0.0
        value = self._retrievability(card, now)
        return min(1.0, max(0.0, float(value)))

    def get_scheduling_preview(self, card: Card, now: datetime) -> SchedulingPreview:
        """Where the card would land for each of the four ratings."""
        entries = {}
        for rating in Rating:
            scheduled = self.schedule_card(card, rating, now)
            minutes = (align(scheduled.due, now) - now).total_seconds() / 60
            entries[rating] = PreviewEntry(due=scheduled.due, interval=format_interval(minutes))

        return SchedulingPreview(
            again=entries[Rating.AGAIN],
            hard=entries[Rating.HARD],
            good=entries[Rating.GOOD],
            easy=entries[Rating.EASY],
        )

    def bury_card(self, card: Card, now: datetime, day_boundary: DayBoundaryService) -> Card:
        """Hide the card until the next review day starts."""
        return replace(card, buried_until=day_boundary.get_tomorrow_boundary(now))

    def suspend_card(self, card: Card) -> Card:
        return replace(card, suspended=True)

    # ----- Selection helpers -----

    def get_due_cards(self, cards: Iterable[Card], now: datetime) -> list[Card]:
        """Cards whose exact due time has passed (any state)."""
        return [c for c in cards if align(c.due, now) <= now]

    def get_new_cards(self, cards: Iterable[Card], limit: int | None = None) -> list[Card]:
        new_cards = [c for c in cards if c.state == CardState.NEW]
        if limit is None:
            return new_cards
        return new_cards[: max(0, limit)]

    def get_learning_cards(self, cards: Iterable[Card]) -> list[Card]:
        return [c for c in cards if c.is_learning]

    def get_review_cards(
        self,
        cards: Iterable[Card],
        now: datetime,
        day_boundary: DayBoundaryService,
    ) -> list[Card]:
        """Review-state cards due in the current review day."""
        return [c for c in cards if c.is_review and day_boundary.is_card_due_today(c, now)]

    def sort_by_due(self, cards: Iterable[Card]) -> list[Card]:
        """Stable ascending sort by due time."""
        return sorted(cards, key=lambda c: c.due.timestamp())
