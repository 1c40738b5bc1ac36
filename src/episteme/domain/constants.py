"""Centralized constants for Episteme scheduling.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Day Boundary ----------
DEFAULT_DAY_START_HOUR = 4

# ---------- Daily Limits ----------
DEFAULT_NEW_CARDS_PER_DAY = 20
DEFAULT_REVIEWS_PER_DAY = 200

# ---------- Queue Builder ----------
LEARN_AHEAD_LIMIT_MINUTES = 20
WEAK_STABILITY_THRESHOLD = 7.0  # days
CREATED_THIS_WEEK_DAYS = 7

# ---------- Session ----------
REQUEUE_HORIZON_MINUTES = 10
RANDOM_REQUEUE_WINDOW = 3

# ---------- Statistics ----------
MATURE_INTERVAL_DAYS = 21

# ---------- FSRS ----------
DEFAULT_REQUEST_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 36500
DEFAULT_LEARNING_STEPS = (1, 10)  # minutes
DEFAULT_RELEARNING_STEPS = (10,)  # minutes
