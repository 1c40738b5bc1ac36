"""Formatting helpers for intervals and countdowns."""


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def format_interval(minutes: float) -> str:
    """
    Format an interval in minutes for display.

    Examples: "<1m", "10m", "3h", "4d", "2mo", "1y".
    """
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{_round_half_up(minutes)}m"
    if minutes < 60 * 24:
        return f"{_round_half_up(minutes / 60)}h"
    if minutes < 60 * 24 * 30:
        return f"{_round_half_up(minutes / (60 * 24))}d"
    if minutes < 60 * 24 * 365:
        return f"{_round_half_up(minutes / (60 * 24 * 30))}mo"
    return f"{_round_half_up(minutes / (60 * 24 * 365))}y"


def format_interval_days(days: float) -> str:
    return format_interval(days * 24 * 60)


def format_countdown(ms: int) -> str:
    """Format milliseconds as MM:SS (negative values show 00:00)."""
    total_seconds = max(0, ms) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"
