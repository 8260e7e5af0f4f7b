"""
Study Stats Service — Application layer orchestrator.

Coordinates fetching counts and review logs from the repository and turning
them into overview and progress statistics.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from mneme.application.clock import local_day_start
from mneme.domain.constants import PROGRESS_WINDOW_DAYS
from mneme.domain.study.models import CardState
from mneme.domain.study.ports import CardRepository

from .metrics_calculator import ProgressCalculator, ProgressSummary

logger = logging.getLogger(__name__)


@dataclass
class StudyOverview:
    total_cards: int
    cards_by_state: dict[CardState, int]
    reviews_today: int  # distinct cards reviewed since local midnight
    due_now: int
    next_due_time: datetime | None


class StudyStatsService:
    """
    Application service for study statistics.

    Depends on the CardRepository abstraction, not concrete adapters.
    """

    def __init__(
        self,
        repo: CardRepository,
        calculator: ProgressCalculator | None = None,
    ):
        """
        Args:
            repo: The repository (port) for counts and review logs.
            calculator: Optional custom calculator; uses default if not provided.
        """
        self._repo = repo
        self._calc = calculator or ProgressCalculator()

    async def get_overview(
        self, user_id: str, deck: str | None = None, now: datetime | None = None
    ) -> StudyOverview:
        now = now or datetime.now(timezone.utc)
        today_start = local_day_start(now)

        by_state = await self._repo.count_by_state(user_id, deck=deck)
        logs_today = await self._repo.list_review_logs(user_id, since=today_start)

        return StudyOverview(
            total_cards=sum(by_state.values()),
            cards_by_state=by_state,
            reviews_today=len({log.card_id for log in logs_today}),
            due_now=await self._repo.count_due(user_id, now),
            next_due_time=await self._repo.next_due_time(user_id, now),
        )

    async def get_progress(
        self,
        user_id: str,
        now: datetime | None = None,
        days: int = PROGRESS_WINDOW_DAYS,
    ) -> ProgressSummary:
        """
        Daily review series for the last ``days`` days, plus streak and accuracy.
        """
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")

        now = now or datetime.now(timezone.utc)
        start = local_day_start(now) - timedelta(days=days - 1)
        logs = await self._repo.list_review_logs(user_id, since=start)
        # Days are bucketed on the server's local calendar
        return self._calc.summarize(logs, now.astimezone(), days)
