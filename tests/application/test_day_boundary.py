from datetime import datetime, timedelta, timezone

import pytest

from episteme.application.day_boundary import DayBoundaryService
from episteme.domain.cards.models import Card, CardState

UTC = timezone.utc


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def service():
    return DayBoundaryService(day_start_hour=4)


def test_today_boundary_after_start_hour(service):
    assert service.get_today_boundary(at(12, 9)) == at(12, 4)
    assert service.get_tomorrow_boundary(at(12, 9)) == at(13, 4)


def test_today_boundary_before_start_hour_is_yesterday(service):
    # 03:00 still belongs to the previous review day
    assert service.get_today_boundary(at(12, 3)) == at(11, 4)
    assert service.get_tomorrow_boundary(at(12, 3)) == at(12, 4)


def test_midnight_boundary():
    service = DayBoundaryService(day_start_hour=0)
    assert service.get_today_boundary(at(12, 0, 30)) == at(12, 0)


def test_invalid_hour_rejected():
    with pytest.raises(ValueError):
        DayBoundaryService(day_start_hour=24)
    with pytest.raises(ValueError):
        DayBoundaryService(day_start_hour=-1)


def test_update_day_start_hour(service):
    service.update_day_start_hour(6)
    assert service.get_today_boundary(at(12, 5)) == at(11, 6)
    with pytest.raises(ValueError):
        service.update_day_start_hour(30)


def test_review_card_due_late_today_is_due(service):
    card = Card(id="r", due=at(12, 23), state=CardState.REVIEW)
    assert service.is_card_due_today(card, at(12, 9))


def test_review_card_due_after_boundary_is_not_due(service):
    card = Card(id="r", due=at(13, 4), state=CardState.REVIEW)
    assert not service.is_card_due_today(card, at(12, 9))


def test_review_card_due_before_next_boundary_overnight(service):
    # Due 02:00 on the 13th is still inside the review day that started on the 12th
    card = Card(id="r", due=at(13, 2), state=CardState.REVIEW)
    assert service.is_card_due_today(card, at(12, 9))


def test_learning_card_uses_exact_time(service):
    card = Card(id="l", due=at(12, 23), state=CardState.LEARNING)
    assert not service.is_card_due_today(card, at(12, 9))
    assert service.is_card_due_today(card, at(12, 23))


def test_relearning_card_uses_exact_time(service):
    card = Card(id="l", due=at(12, 8, 59), state=CardState.RELEARNING)
    assert service.is_card_due_today(card, at(12, 9))


def test_new_card_is_never_due_but_always_available(service):
    card = Card(id="n", due=at(1, 0), state=CardState.NEW)
    assert not service.is_card_due_today(card, at(12, 9))
    assert service.is_card_available(card, at(12, 9))


def test_due_helpers(service):
    now = at(12, 9)
    cards = [
        Card(id="n", due=now, state=CardState.NEW),
        Card(id="r1", due=at(12, 20), state=CardState.REVIEW),
        Card(id="r2", due=at(14, 9), state=CardState.REVIEW),
        Card(id="l1", due=now - timedelta(minutes=5), state=CardState.LEARNING),
    ]
    assert service.count_due_cards(cards, now) == 2
    assert [c.id for c in service.get_due_cards(cards, now)] == ["r1", "l1"]
    assert [c.id for c in service.get_available_cards(cards, now)] == ["n", "r1", "l1"]


def test_day_key_is_boundary_aware(service):
    now = at(12, 9)
    assert service.day_key(at(12, 3), now) == "2025-03-11"
    assert service.day_key(at(12, 5), now) == "2025-03-12"
    assert service.get_today_key(now) == "2025-03-12"
    assert service.get_today_key(at(12, 3)) == "2025-03-11"


def test_day_key_uses_reference_timezone(service):
    tz = timezone(timedelta(hours=-5))
    now = datetime(2025, 3, 12, 9, 0, tzinfo=tz)
    # 08:00 UTC is 03:00 at UTC-5, before the boundary
    assert service.day_key(at(12, 8), now) == "2025-03-11"


def test_is_timestamp_today(service):
    now = at(12, 9)
    assert service.is_timestamp_today(at(12, 4), now)
    assert service.is_timestamp_today(at(13, 3, 59), now)
    assert not service.is_timestamp_today(at(12, 3, 59), now)
    assert not service.is_timestamp_today(at(13, 4), now)
