"""
Queue builder for study sessions.

Builds ordered study queues by:
1. Filtering the card pool (activity, source, deck, project, age, weakness, state)
2. Splitting learning cards into due-now and pending
3. Selecting, limiting and ordering review and new cards
4. Mixing reviews with new cards and framing them with learning cards

The final order is: due learning → mixed reviews/new → pending learning.
Pending learning cards go last so a session only waits on them once
everything else is done.
"""

import logging
import random
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from episteme.application.day_boundary import DayBoundaryService
from episteme.application.scheduling import SchedulingEngine
from episteme.application.utils.dates import utc_now
from episteme.domain.cards.models import Card, CardState
from episteme.domain.constants import (
    CREATED_THIS_WEEK_DAYS,
    DEFAULT_DAY_START_HOUR,
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_REVIEWS_PER_DAY,
    LEARN_AHEAD_LIMIT_MINUTES,
    WEAK_STABILITY_THRESHOLD,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NewCardOrder(str, Enum):
    RANDOM = "random"
    OLDEST_FIRST = "oldest-first"
    NEWEST_FIRST = "newest-first"


class ReviewOrder(str, Enum):
    DUE_DATE = "due-date"
    RANDOM = "random"
    DUE_DATE_RANDOM = "due-date-random"


class NewReviewMix(str, Enum):
    MIX_WITH_REVIEWS = "mix-with-reviews"
    SHOW_AFTER_REVIEWS = "show-after-reviews"
    SHOW_BEFORE_REVIEWS = "show-before-reviews"


class StateFilter(str, Enum):
    DUE = "due"
    LEARNING = "learning"
    NEW = "new"
    BURIED = "buried"


def _coerce_enum(enum_cls: type[Enum], value: Any, default: Any, field: str) -> Any:
    if value is None or isinstance(value, enum_cls):
        return value if value is not None else default
    try:
        return enum_cls(value)
    except ValueError:
        logger.debug(f"Unknown {field} {value!r}, falling back to {default!r}")
        return default


class QueueBuildOptions(BaseModel):
    """
    Options for building a review queue.

    Unknown enum values fall back to the defaults instead of failing, and
    negative limits are treated as zero.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Limits
    new_cards_limit: int = DEFAULT_NEW_CARDS_PER_DAY
    reviews_limit: int = DEFAULT_REVIEWS_PER_DAY
    ignore_daily_limits: bool = False

    # Daily progress from persisted history
    reviewed_today: frozenset[str] = frozenset()
    new_cards_studied_today: int = 0

    # Filters
    deck_filter: str | None = None
    source_note_filter: str | None = None
    source_note_filters: list[str] = Field(default_factory=list)
    file_path_filter: str | None = None
    project_filters: list[str] = Field(default_factory=list)
    # Fallback for cards that carry no project names of their own
    project_resolver: Callable[[Card], Iterable[str]] | None = None
    created_today_only: bool = False
    created_this_week: bool = False
    weak_cards_only: bool = False
    state_filter: StateFilter | None = None

    # Custom study: show matching cards regardless of due date
    bypass_scheduling: bool = False

    # Display order
    new_card_order: NewCardOrder = NewCardOrder.RANDOM
    review_order: ReviewOrder = ReviewOrder.DUE_DATE
    new_review_mix: NewReviewMix = NewReviewMix.MIX_WITH_REVIEWS

    day_start_hour: int = Field(default=DEFAULT_DAY_START_HOUR, ge=0, le=23)

    @field_validator("new_cards_limit", "reviews_limit", "new_cards_studied_today", mode="before")
    @classmethod
    def clamp_non_negative(cls, v: Any) -> Any:
        if isinstance(v, int) and v < 0:
            return 0
        return v

    @field_validator("new_card_order", mode="before")
    @classmethod
    def fallback_new_card_order(cls, v: Any) -> NewCardOrder:
        return _coerce_enum(NewCardOrder, v, NewCardOrder.RANDOM, "new_card_order")

    @field_validator("review_order", mode="before")
    @classmethod
    def fallback_review_order(cls, v: Any) -> ReviewOrder:
        return _coerce_enum(ReviewOrder, v, ReviewOrder.DUE_DATE, "review_order")

    @field_validator("new_review_mix", mode="before")
    @classmethod
    def fallback_new_review_mix(cls, v: Any) -> NewReviewMix:
        return _coerce_enum(NewReviewMix, v, NewReviewMix.MIX_WITH_REVIEWS, "new_review_mix")

    @field_validator("state_filter", mode="before")
    @classmethod
    def fallback_state_filter(cls, v: Any) -> StateFilter | None:
        return _coerce_enum(StateFilter, v, None, "state_filter")


# ---------------------------------------------------------------------------
# Ordering helpers
# ---------------------------------------------------------------------------


def shuffle(items: Sequence[T], rng: random.Random) -> list[T]:
    """Uniform Fisher-Yates shuffle of a copy."""
    result = list(items)
    rng.shuffle(result)
    return result


def interleave(primary: Sequence[T], secondary: Sequence[T]) -> list[T]:
    """
    Distribute `secondary` evenly through `primary`.

    Each secondary item is placed at the centre of its proportional share of
    primary items, so 3 primary + 1 secondary gives P P S P. Relative order
    within each list is preserved.
    """
    if not secondary:
        return list(primary)
    if not primary:
        return list(secondary)

    result: list[T] = []
    n_primary, n_secondary = len(primary), len(secondary)
    p = 0

    for s, item in enumerate(secondary):
        # round((s + 0.5) * n_primary / n_secondary), in integer arithmetic
        target = ((2 * s + 1) * n_primary + n_secondary) // (2 * n_secondary)
        while p < min(target, n_primary):
            result.append(primary[p])
            p += 1
        result.append(item)

    result.extend(primary[p:])
    return result


def _created_key(card: Card) -> tuple[float, str]:
    # Legacy cards without created_at sort as the oldest
    created = card.created_at.timestamp() if card.created_at is not None else 0.0
    return (created, card.id)


def _sort_new_cards(cards: list[Card], order: NewCardOrder, rng: random.Random) -> list[Card]:
    if order == NewCardOrder.OLDEST_FIRST:
        return sorted(cards, key=_created_key)
    if order == NewCardOrder.NEWEST_FIRST:
        return sorted(cards, key=_created_key, reverse=True)
    return shuffle(cards, rng)


def _sort_review_cards(
    cards: list[Card],
    order: ReviewOrder,
    engine: SchedulingEngine,
    day_boundary: DayBoundaryService,
    now: datetime,
    rng: random.Random,
) -> list[Card]:
    if order == ReviewOrder.RANDOM:
        return shuffle(cards, rng)

    by_due = engine.sort_by_due(cards)
    if order != ReviewOrder.DUE_DATE_RANDOM:
        return by_due

    # Shuffle within groups that share a review day
    groups: dict[str, list[Card]] = {}
    for card in by_due:
        groups.setdefault(day_boundary.day_key(card.due, now), []).append(card)

    result: list[Card] = []
    for group in groups.values():
        result.extend(shuffle(group, rng))
    return result


def _mix(reviews: list[Card], new_cards: list[Card], mix: NewReviewMix) -> list[Card]:
    if mix == NewReviewMix.SHOW_AFTER_REVIEWS:
        return reviews + new_cards
    if mix == NewReviewMix.SHOW_BEFORE_REVIEWS:
        return new_cards + reviews
    return interleave(reviews, new_cards)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _dedupe(cards: Iterable[Card]) -> list[Card]:
    seen: set[str] = set()
    unique: list[Card] = []
    for card in cards:
        if card.id in seen:
            logger.debug(f"Duplicate card id {card.id} in pool, keeping first occurrence")
            continue
        seen.add(card.id)
        unique.append(card)
    return unique


def _is_active(card: Card, options: QueueBuildOptions, now: datetime) -> bool:
    """Suspended cards never study; buried cards only in a buried-only session."""
    if card.suspended:
        return False
    if options.state_filter == StateFilter.BURIED:
        return card.is_buried(now)
    return not card.is_buried(now)


def _card_projects(card: Card, options: QueueBuildOptions) -> set[str]:
    if card.projects:
        return set(card.projects)
    if options.project_resolver is not None:
        return set(options.project_resolver(card) or ())
    return set()


def _matches_state(card: Card, state_filter: StateFilter | None) -> bool:
    if state_filter == StateFilter.NEW:
        return card.state == CardState.NEW
    if state_filter == StateFilter.LEARNING:
        return card.is_learning
    if state_filter == StateFilter.DUE:
        return card.state == CardState.REVIEW
    return True


def _created_since(card: Card, since: datetime) -> bool:
    return card.created_at is not None and card.created_at.timestamp() >= since.timestamp()


def filter_cards(
    cards: Iterable[Card],
    options: QueueBuildOptions,
    now: datetime,
    day_boundary: DayBoundaryService,
) -> list[Card]:
    """
    Apply every option filter in sequence.

    Learning and relearning cards are never excluded by `reviewed_today`:
    they need several reviews on the same day.
    """
    filtered = [c for c in cards if _is_active(c, options, now)]

    if options.source_note_filters:
        notes = set(options.source_note_filters)
        filtered = [c for c in filtered if c.source_note_name in notes]
    elif options.source_note_filter:
        filtered = [c for c in filtered if c.source_note_name == options.source_note_filter]

    if options.file_path_filter:
        filtered = [c for c in filtered if c.file_path == options.file_path_filter]

    if options.deck_filter:
        filtered = [c for c in filtered if c.deck == options.deck_filter]

    if options.project_filters:
        wanted = set(options.project_filters)
        filtered = [c for c in filtered if _card_projects(c, options) & wanted]

    today_boundary = day_boundary.get_today_boundary(now)
    if options.created_today_only:
        filtered = [c for c in filtered if _created_since(c, today_boundary)]

    if options.created_this_week:
        week_start = today_boundary - timedelta(days=CREATED_THIS_WEEK_DAYS)
        filtered = [c for c in filtered if _created_since(c, week_start)]

    if options.weak_cards_only:
        filtered = [c for c in filtered if c.stability < WEAK_STABILITY_THRESHOLD]

    if options.state_filter is not None:
        filtered = [c for c in filtered if _matches_state(c, options.state_filter)]

    if options.reviewed_today:
        filtered = [
            c for c in filtered if c.is_learning or c.id not in options.reviewed_today
        ]

    return filtered


# ---------------------------------------------------------------------------
# Queue building
# ---------------------------------------------------------------------------


def build_queue(
    cards: Iterable[Card],
    options: QueueBuildOptions | None = None,
    now: datetime | None = None,
    *,
    engine: SchedulingEngine | None = None,
    day_boundary: DayBoundaryService | None = None,
    rng: random.Random | None = None,
) -> list[Card]:
    """
    Build the ordered study queue for one session.

    Args:
        cards: Card pool snapshot. Never mutated.
        options: Limits, filters and ordering; defaults if omitted.
        now: Reference time (defaults to current UTC time).
        engine: Selection/sort helpers; a default engine if omitted.
        day_boundary: Day cutoffs; built from options.day_start_hour if omitted.
        rng: Random source for the random orders.

    Returns:
        Duplicate-free ordered list of cards drawn from the pool.
    """
    options = options or QueueBuildOptions()
    now = now or utc_now()
    engine = engine or SchedulingEngine()
    day_boundary = day_boundary or DayBoundaryService(options.day_start_hour)
    rng = rng or random.Random()

    available = filter_cards(_dedupe(cards), options, now, day_boundary)
    if not available:
        return []

    learning = engine.get_learning_cards(available)

    if options.bypass_scheduling:
        due_learning = learning
        pending_learning: list[Card] = []
        review_cards = [c for c in available if c.state == CardState.REVIEW]
    else:
        learn_ahead = (now + timedelta(minutes=LEARN_AHEAD_LIMIT_MINUTES)).timestamp()
        due_learning = [c for c in learning if c.due.timestamp() <= learn_ahead]
        pending_learning = [c for c in learning if c.due.timestamp() > learn_ahead]
        review_cards = engine.get_review_cards(available, now, day_boundary)

    if not options.ignore_daily_limits:
        review_cards = review_cards[: options.reviews_limit]

    new_limit = None
    if not options.ignore_daily_limits:
        new_limit = max(0, options.new_cards_limit - options.new_cards_studied_today)
    new_cards = engine.get_new_cards(available, new_limit)

    new_cards = _sort_new_cards(new_cards, options.new_card_order, rng)
    review_cards = _sort_review_cards(
        review_cards, options.review_order, engine, day_boundary, now, rng
    )
    main_queue = _mix(review_cards, new_cards, options.new_review_mix)

    queue = [
        *engine.sort_by_due(due_learning),
        *main_queue,
        *engine.sort_by_due(pending_learning),
    ]

    logger.debug(
        f"Built queue of {len(queue)} cards: {len(due_learning)} learning, "
        f"{len(review_cards)} review, {len(new_cards)} new, {len(pending_learning)} pending "
        f"(bypass={options.bypass_scheduling})"
    )
    return queue
