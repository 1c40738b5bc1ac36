"""
Day boundary service.

Implements Anki-style "next day starts at" logic: a review day runs from
`day_start_hour` on one calendar date to `day_start_hour` on the next.
Review cards are due for the whole day, learning cards at their exact time.

Boundaries are computed from the wall-clock date and hour of `now`. Across a
DST transition the boundary day can be 23 or 25 hours long; that is accepted
as-is rather than corrected.
"""

from collections.abc import Iterable
from datetime import datetime, time, timedelta

from episteme.application.utils.dates import align
from episteme.domain.cards.models import Card, CardState
from episteme.domain.constants import DEFAULT_DAY_START_HOUR


def _validate_hour(hour: int) -> int:
    if not 0 <= hour <= 23:
        raise ValueError(f"day_start_hour must be between 0 and 23, got {hour}")
    return hour


class DayBoundaryService:
    """
    Service for day-based scheduling calculations.

    Stateless apart from the configured start hour; every method takes an
    explicit `now` so results are deterministic.
    """

    def __init__(self, day_start_hour: int = DEFAULT_DAY_START_HOUR):
        self.day_start_hour = _validate_hour(day_start_hour)

    def update_day_start_hour(self, hour: int) -> None:
        self.day_start_hour = _validate_hour(hour)

    def _boundary_on(self, day, ref: datetime) -> datetime:
        return datetime.combine(day, time(self.day_start_hour), tzinfo=ref.tzinfo)

    def get_today_boundary(self, now: datetime) -> datetime:
        """
        Start of the current review day.

        If the current hour is before day_start_hour we are still in
        "yesterday", so the boundary is yesterday's date at that hour.
        """
        day = now.date()
        if now.hour < self.day_start_hour:
            day -= timedelta(days=1)
        return self._boundary_on(day, now)

    def get_tomorrow_boundary(self, now: datetime) -> datetime:
        """End of the current review day (exclusive)."""
        today = self.get_today_boundary(now)
        return self._boundary_on(today.date() + timedelta(days=1), now)

    def is_card_due_today(self, card: Card, now: datetime) -> bool:
        """
        Check whether a card is due in the current review day.

        Learning/Relearning cards use their exact due time; Review cards are
        due if they fall before tomorrow's boundary; New cards are never due.
        """
        due = align(card.due, now)

        if card.state in (CardState.LEARNING, CardState.RELEARNING):
            return due <= now

        if card.state == CardState.REVIEW:
            return due < self.get_tomorrow_boundary(now)

        return False

    def is_card_available(self, card: Card, now: datetime) -> bool:
        """New cards are always available; others only when due today."""
        if card.state == CardState.NEW:
            return True
        return self.is_card_due_today(card, now)

    def count_due_cards(self, cards: Iterable[Card], now: datetime) -> int:
        return sum(1 for c in cards if self.is_card_due_today(c, now))

    def get_due_cards(self, cards: Iterable[Card], now: datetime) -> list[Card]:
        return [c for c in cards if self.is_card_due_today(c, now)]

    def get_available_cards(self, cards: Iterable[Card], now: datetime) -> list[Card]:
        return [c for c in cards if self.is_card_available(c, now)]

    def day_key(self, ts: datetime, now: datetime) -> str:
        """
        Boundary-aware calendar day (YYYY-MM-DD) that `ts` belongs to.

        `now` only supplies the timezone; at 03:00 with day_start_hour=4 a
        timestamp belongs to the previous date.
        """
        local = align(ts, now)
        day = local.date()
        if local.hour < self.day_start_hour:
            day -= timedelta(days=1)
        return day.isoformat()

    def get_today_key(self, now: datetime) -> str:
        return self.get_today_boundary(now).date().isoformat()

    def is_timestamp_today(self, ts: datetime, now: datetime) -> bool:
        local = align(ts, now)
        return self.get_today_boundary(now) <= local < self.get_tomorrow_boundary(now)
