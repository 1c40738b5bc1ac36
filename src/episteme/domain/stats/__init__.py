# Domain Stats Package
from .models import CardCounts, DailyStats, StreakInfo

__all__ = ["DailyStats", "StreakInfo", "CardCounts"]
