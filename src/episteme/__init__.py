"""Episteme: FSRS review queue scheduling and study-session state."""

from episteme.consts import VERSION

__version__ = VERSION
