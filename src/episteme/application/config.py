from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from episteme.application.queue_builder import NewCardOrder, NewReviewMix, ReviewOrder
from episteme.domain.constants import (
    DEFAULT_DAY_START_HOUR,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_RELEARNING_STEPS,
    DEFAULT_REQUEST_RETENTION,
    DEFAULT_REVIEWS_PER_DAY,
)

CONFIG_FILES = [
    Path.home() / ".config/episteme/config.toml",
    Path.home() / ".episteme.toml",
]


class AppConfig(BaseSettings):
    """
    Scheduler and study-session settings.
    Supports loading from:
    1. Environment variables (EPISTEME_*)
    2. Config file (~/.config/episteme/config.toml or ~/.episteme.toml)
    3. Manual overrides
    """

    model_config = SettingsConfigDict(
        env_prefix="EPISTEME_",
        extra="ignore",
    )

    # Day boundary
    day_start_hour: int = DEFAULT_DAY_START_HOUR

    # Daily limits
    new_cards_per_day: int = Field(default=DEFAULT_NEW_CARDS_PER_DAY, ge=0)
    reviews_per_day: int = Field(default=DEFAULT_REVIEWS_PER_DAY, ge=0)

    # Display order
    new_card_order: NewCardOrder = NewCardOrder.RANDOM
    review_order: ReviewOrder = ReviewOrder.DUE_DATE
    new_review_mix: NewReviewMix = NewReviewMix.MIX_WITH_REVIEWS

    # FSRS parameters
    request_retention: float = DEFAULT_REQUEST_RETENTION
    maximum_interval: int = Field(default=DEFAULT_MAXIMUM_INTERVAL, ge=1)
    learning_steps: list[int] = Field(default_factory=lambda: list(DEFAULT_LEARNING_STEPS))
    relearning_steps: list[int] = Field(default_factory=lambda: list(DEFAULT_RELEARNING_STEPS))
    weights: list[float] | None = None
    enable_fuzz: bool = False

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Highest priority first: overrides, then environment, then file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("day_start_hour")
    @classmethod
    def check_day_start_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("day_start_hour must be between 0 and 23")
        return v

    @field_validator("request_retention")
    @classmethod
    def check_retention(cls, v: float) -> float:
        if not 0.7 <= v <= 0.99:
            raise ValueError("request_retention must be between 0.7 and 0.99")
        return v

    @field_validator("learning_steps", "relearning_steps")
    @classmethod
    def check_steps(cls, v: list[int]) -> list[int]:
        if any(step <= 0 for step in v):
            raise ValueError("steps must be positive minute counts")
        return v


def resolve_config(overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/episteme/config.toml (if exists)
    3. Environment variables (EPISTEME_*)
    4. overrides (None values are ignored)
    """
    cleaned = {k: v for k, v in (overrides or {}).items() if v is not None}
    return AppConfig(**cleaned)
