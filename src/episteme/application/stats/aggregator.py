"""
Statistics derived from review results and card snapshots.

This is a pure computation module with no I/O.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta

from episteme.application.day_boundary import DayBoundaryService
from episteme.application.utils.dates import align, ms_between
from episteme.domain.cards.models import Card, CardState, Rating, ReviewResult
from episteme.domain.constants import MATURE_INTERVAL_DAYS
from episteme.domain.session.models import SessionStats
from episteme.domain.stats.models import CardCounts, DailyStats, StreakInfo


class StatsAggregator:
    """
    Session, daily and streak statistics.

    Stateless and side-effect free. Where a DayBoundaryService is optional,
    its absence means plain calendar days (boundary at midnight).
    """

    def calculate_session_stats(
        self,
        results: Sequence[ReviewResult],
        total_cards: int,
        start_time: datetime,
        now: datetime,
    ) -> SessionStats:
        """Per-rating and per-prior-state tallies plus elapsed duration."""
        return SessionStats(
            total=total_cards,
            reviewed=len(results),
            again=sum(1 for r in results if r.rating == Rating.AGAIN),
            hard=sum(1 for r in results if r.rating == Rating.HARD),
            good=sum(1 for r in results if r.rating == Rating.GOOD),
            easy=sum(1 for r in results if r.rating == Rating.EASY),
            new_cards=sum(1 for r in results if r.previous_state == CardState.NEW),
            learning_cards=sum(
                1
                for r in results
                if r.previous_state in (CardState.LEARNING, CardState.RELEARNING)
            ),
            review_cards=sum(1 for r in results if r.previous_state == CardState.REVIEW),
            duration_ms=max(0, ms_between(start_time, now)),
        )

    def calculate_daily_stats(
        self,
        cards: Iterable[Card],
        today_results: Sequence[ReviewResult],
        new_cards_per_day: int,
        now: datetime,
        day_boundary: DayBoundaryService | None = None,
    ) -> DailyStats:
        """
        Progress for the current review day.

        Args:
            cards: Card pool snapshot.
            today_results: Results already restricted to the current day.
            new_cards_per_day: Daily new-card limit.
            now: Current time.
            day_boundary: Boundary service; calendar days when omitted.
        """
        boundary = day_boundary or DayBoundaryService(day_start_hour=0)
        active = [c for c in cards if not c.suspended and not c.is_buried(now)]

        new_reviewed = sum(1 for r in today_results if r.previous_state == CardState.NEW)
        if day_boundary is not None:
            due_today = day_boundary.count_due_cards(active, now)
        else:
            # Calendar fallback: anything not new that falls due before midnight
            tomorrow = boundary.get_tomorrow_boundary(now)
            due_today = sum(
                1
                for c in active
                if c.state != CardState.NEW and align(c.due, now) < tomorrow
            )

        return DailyStats(
            new_reviewed=new_reviewed,
            reviews_completed=len(today_results),
            due_today=due_today,
            new_remaining=max(0, new_cards_per_day - new_reviewed),
            date=boundary.get_today_key(now),
        )

    def calculate_retention_rate(self, results: Sequence[ReviewResult]) -> float:
        """Fraction of results rated Good or Easy; 0 for no results."""
        if not results:
            return 0.0
        passed = sum(1 for r in results if r.rating >= Rating.GOOD)
        return passed / len(results)

    def get_streak_info(
        self,
        results: Iterable[ReviewResult],
        now: datetime,
        day_boundary: DayBoundaryService | None = None,
    ) -> StreakInfo:
        """
        Consecutive review-day streaks.

        The current streak is the run ending today or yesterday; an older
        last active day means the streak is broken (0).
        """
        boundary = day_boundary or DayBoundaryService(day_start_hour=0)
        days = sorted({date.fromisoformat(boundary.day_key(r.timestamp, now)) for r in results})
        if not days:
            return StreakInfo()

        longest = run = 1
        for previous, current in zip(days, days[1:]):
            run = run + 1 if current - previous == timedelta(days=1) else 1
            longest = max(longest, run)

        today = date.fromisoformat(boundary.get_today_key(now))
        current_streak = run if today - days[-1] <= timedelta(days=1) else 0
        return StreakInfo(current_streak=current_streak, longest_streak=longest)

    def get_card_counts(self, cards: Iterable[Card], now: datetime) -> CardCounts:
        """
        Maturity breakdown of a card pool.

        Review cards with an interval under MATURE_INTERVAL_DAYS are young.
        """
        counts = dict(total=0, new=0, learning=0, young=0, mature=0, suspended=0, buried=0)
        for card in cards:
            counts["total"] += 1
            if card.suspended:
                counts["suspended"] += 1
            elif card.is_buried(now):
                counts["buried"] += 1
            elif card.is_new:
                counts["new"] += 1
            elif card.is_learning:
                counts["learning"] += 1
            elif card.scheduled_days >= MATURE_INTERVAL_DAYS:
                counts["mature"] += 1
            else:
                counts["young"] += 1
        return CardCounts(**counts)
