from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from episteme.application.day_boundary import DayBoundaryService
from episteme.application.scheduling import SchedulingEngine
from episteme.domain.cards.models import Card, CardState, Rating


@pytest.fixture
def now():
    """A fixed mid-morning reference time (UTC)."""
    return datetime(2025, 3, 12, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def day_boundary():
    return DayBoundaryService(day_start_hour=4)


def fake_schedule(card: Card, rating: Rating, now: datetime) -> Card:
    """Deterministic stand-in for the memory model.

    Again -> Learning due in 1 minute, Hard -> Learning due in 6 minutes,
    Good -> Review due in 3 days, Easy -> Review due in 10 days.
    """
    if rating == Rating.AGAIN:
        state, delta, days = CardState.LEARNING, timedelta(minutes=1), 0
    elif rating == Rating.HARD:
        state, delta, days = CardState.LEARNING, timedelta(minutes=6), 0
    elif rating == Rating.GOOD:
        state, delta, days = CardState.REVIEW, timedelta(days=3), 3
    else:
        state, delta, days = CardState.REVIEW, timedelta(days=10), 10
    return replace(
        card,
        state=state,
        due=now + delta,
        stability=float(days or 1),
        difficulty=5.0,
        reps=card.reps + 1,
        last_review=now,
        scheduled_days=days,
    )


@pytest.fixture
def engine():
    return SchedulingEngine(schedule_fn=fake_schedule, retrievability_fn=lambda c, n: 0.9)


@pytest.fixture
def make_card(now):
    """Factory for cards relative to `now`."""

    def _make(
        card_id: str,
        state: CardState = CardState.NEW,
        due: datetime | None = None,
        **kwargs,
    ) -> Card:
        return Card(id=card_id, due=due or now, state=state, **kwargs)

    return _make
