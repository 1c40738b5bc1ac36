# Domain Cards Package
from .models import (
    LEARNING_STATES,
    Card,
    CardState,
    PreviewEntry,
    Rating,
    ReviewResult,
    SchedulingPreview,
    is_valid_rating,
)
from .ports import CardStore, RetrievabilityFunction, ScheduleFunction

__all__ = [
    "Card",
    "CardState",
    "Rating",
    "ReviewResult",
    "PreviewEntry",
    "SchedulingPreview",
    "LEARNING_STATES",
    "is_valid_rating",
    "CardStore",
    "ScheduleFunction",
    "RetrievabilityFunction",
]
