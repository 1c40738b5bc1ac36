"""
Episteme Factory
Centralizes construction of the scheduling services from an AppConfig.
"""

import logging
import sys
from typing import Any

from episteme.application.config import AppConfig
from episteme.application.day_boundary import DayBoundaryService
from episteme.application.queue_builder import QueueBuildOptions
from episteme.application.review_service import ReviewSessionService
from episteme.application.scheduling import SchedulingEngine
from episteme.domain.cards.ports import CardStore
from episteme.infrastructure.adapters.fsrs_scheduler import FsrsScheduler


def configure_logging(verbose: int = 1) -> None:
    """
    Configure root logging on stderr.

    verbose: 0 = warnings only, 1 = info, 2+ = debug.
    """
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(levelname)s:%(name)s:%(message)s",
        stream=sys.stderr,
        force=True,
    )


def create_scheduling_engine(config: AppConfig) -> SchedulingEngine:
    """Returns a SchedulingEngine backed by the fsrs library with the configured parameters."""
    scheduler = FsrsScheduler(
        weights=config.weights,
        desired_retention=config.request_retention,
        maximum_interval=config.maximum_interval,
        learning_steps=config.learning_steps,
        relearning_steps=config.relearning_steps,
        enable_fuzz=config.enable_fuzz,
    )
    return SchedulingEngine(schedule_fn=scheduler)


def create_day_boundary(config: AppConfig) -> DayBoundaryService:
    return DayBoundaryService(day_start_hour=config.day_start_hour)


def queue_options_from_config(config: AppConfig, **overrides: Any) -> QueueBuildOptions:
    """
    Queue options seeded from the configured limits and orders.

    Keyword overrides (filters, custom-study flags, daily progress) take precedence.
    """
    values: dict[str, Any] = {
        "new_cards_limit": config.new_cards_per_day,
        "reviews_limit": config.reviews_per_day,
        "new_card_order": config.new_card_order,
        "review_order": config.review_order,
        "new_review_mix": config.new_review_mix,
        "day_start_hour": config.day_start_hour,
    }
    values.update(overrides)
    return QueueBuildOptions(**values)


def create_review_service(
    config: AppConfig, store: CardStore | None = None
) -> ReviewSessionService:
    """
    Returns a ReviewSessionService wired from config, persisting through `store` if given.

    Root logging is configured from `config.verbose`.
    """
    configure_logging(config.verbose)
    return ReviewSessionService(
        engine=create_scheduling_engine(config),
        day_boundary=create_day_boundary(config),
        store=store,
    )
