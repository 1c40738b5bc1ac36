# Domain Session Package
from .models import EditModeState, RemainingByType, SessionProgress, SessionState, SessionStats

__all__ = ["SessionStats", "SessionState", "EditModeState", "SessionProgress", "RemainingByType"]
