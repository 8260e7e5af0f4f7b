"""
Progress calculator for deriving study insights from review logs.

This is a pure computation module with no I/O.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from mneme.domain.constants import ACCURACY_WINDOW_DAYS, PASS_RATING_THRESHOLD
from mneme.domain.study.models import ReviewLog


@dataclass
class DailyStats:
    """Reviews on one calendar day."""

    date: date
    day_name: str
    reviews: int
    correct: int  # rated Good or Easy
    accuracy: int  # percent, rounded


@dataclass
class ProgressSummary:
    streak: int
    overall_accuracy: int  # percent over the accuracy window
    total_reviews: int  # within the accuracy window
    best_day: str
    daily_stats: list[DailyStats]


class ProgressCalculator:
    """
    Computes daily review series, streaks and accuracy from raw review logs.

    Stateless and side-effect free.
    """

    def summarize(self, logs: list[ReviewLog], now: datetime, days: int) -> ProgressSummary:
        """
        Summarize the ``days`` calendar days ending today (in ``now``'s timezone).
        """
        daily = self._daily_stats(logs, now, days)
        window = daily[-ACCURACY_WINDOW_DAYS:]
        total = sum(d.reviews for d in window)
        correct = sum(d.correct for d in window)

        best = window[0] if window else None
        for d in window:
            if d.reviews > best.reviews:
                best = d

        return ProgressSummary(
            streak=self._streak(daily),
            overall_accuracy=round(correct / total * 100) if total else 0,
            total_reviews=total,
            best_day=best.day_name if best else "N/A",
            daily_stats=daily,
        )

    def _daily_stats(self, logs: list[ReviewLog], now: datetime, days: int) -> list[DailyStats]:
        today = now.date()
        start = today - timedelta(days=days - 1)

        buckets: dict[date, list[int]] = {}
        for log in logs:
            reviewed_at = log.reviewed_at.astimezone(now.tzinfo) if now.tzinfo else log.reviewed_at
            day = reviewed_at.date()
            if day < start or day > today:
                continue
            counts = buckets.setdefault(day, [0, 0])
            counts[0] += 1
            if log.rating >= PASS_RATING_THRESHOLD:
                counts[1] += 1

        stats = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            reviews, correct = buckets.get(day, (0, 0))
            stats.append(
                DailyStats(
                    date=day,
                    day_name=day.strftime("%a"),
                    reviews=reviews,
                    correct=correct,
                    accuracy=round(correct / reviews * 100) if reviews else 0,
                )
            )
        return stats

    def _streak(self, daily: list[DailyStats]) -> int:
        """
        Consecutive days with reviews, counting back from today.

        Today may still be empty (the learner has not studied yet).
        """
        streak = 0
        for i in range(len(daily) - 1, -1, -1):
            if daily[i].reviews > 0:
                streak += 1
            elif i < len(daily) - 1:
                break
        return streak
