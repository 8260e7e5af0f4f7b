from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from mneme.application.stats.metrics_calculator import ProgressCalculator
from mneme.application.stats.service import StudyStatsService
from mneme.domain.study.models import CardState, Rating, ReviewLog

NOW = datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)  # a Tuesday


def _log(days_ago=0, rating=Rating.GOOD, card_id="c1", hour=9):
    reviewed_at = (NOW - timedelta(days=days_ago)).replace(hour=hour)
    return ReviewLog(
        id=f"log-{card_id}-{days_ago}-{hour}",
        card_id=card_id,
        user_id="u1",
        rating=rating,
        state=CardState.REVIEW,
        study_mode="multi",
        reviewed_at=reviewed_at,
    )


@pytest.fixture
def calculator():
    return ProgressCalculator()


@pytest.fixture
def mock_repo():
    return AsyncMock()


def test_daily_series_covers_window(calculator):
    summary = calculator.summarize([], NOW, days=30)
    assert len(summary.daily_stats) == 30
    assert summary.daily_stats[-1].date == NOW.date()
    assert summary.daily_stats[0].date == NOW.date() - timedelta(days=29)
    assert summary.streak == 0
    assert summary.overall_accuracy == 0
    assert summary.best_day == "Wed"  # first day of the 7-day window, all empty


def test_daily_counts_and_accuracy(calculator):
    logs = [
        _log(0, Rating.GOOD),
        _log(0, Rating.EASY, hour=10),
        _log(0, Rating.AGAIN, hour=11),
        _log(0, Rating.HARD, hour=12),
    ]
    today = calculator.summarize(logs, NOW, days=7).daily_stats[-1]
    assert today.reviews == 4
    assert today.correct == 2
    assert today.accuracy == 50
    assert today.day_name == "Tue"


def test_logs_outside_window_ignored(calculator):
    summary = calculator.summarize([_log(10), _log(1)], NOW, days=7)
    assert sum(d.reviews for d in summary.daily_stats) == 1


def test_streak_counts_back_from_today(calculator):
    logs = [_log(0), _log(1), _log(2), _log(4)]
    assert calculator.summarize(logs, NOW, days=30).streak == 3


def test_streak_tolerates_empty_today(calculator):
    logs = [_log(1), _log(2)]
    assert calculator.summarize(logs, NOW, days=30).streak == 2


def test_streak_broken_yesterday(calculator):
    logs = [_log(2), _log(3)]
    assert calculator.summarize(logs, NOW, days=30).streak == 0


def test_seven_day_accuracy_and_best_day(calculator):
    logs = [
        _log(0, Rating.GOOD),
        _log(1, Rating.AGAIN),
        _log(1, Rating.GOOD, hour=10),
        _log(1, Rating.EASY, hour=11),
        _log(20, Rating.AGAIN),  # outside the accuracy window
    ]
    summary = calculator.summarize(logs, NOW, days=30)
    assert summary.total_reviews == 4
    assert summary.overall_accuracy == 75
    assert summary.best_day == "Mon"


@pytest.mark.asyncio
async def test_overview_counts_distinct_cards_today(mock_repo):
    mock_repo.count_by_state.return_value = {
        CardState.NEW: 5,
        CardState.LEARNING: 2,
        CardState.REVIEW: 10,
        CardState.RELEARNING: 1,
    }
    mock_repo.list_review_logs.return_value = [
        _log(0, card_id="a"),
        _log(0, card_id="a", hour=10),
        _log(0, card_id="b"),
    ]
    mock_repo.count_due.return_value = 7
    mock_repo.next_due_time.return_value = NOW + timedelta(hours=2)

    service = StudyStatsService(mock_repo)
    overview = await service.get_overview("u1", deck="oxford", now=NOW)

    assert overview.total_cards == 18
    assert overview.reviews_today == 2
    assert overview.due_now == 7
    assert overview.next_due_time == NOW + timedelta(hours=2)
    mock_repo.count_by_state.assert_awaited_once_with("u1", deck="oxford")
    since = mock_repo.list_review_logs.call_args.kwargs["since"]
    assert since == NOW.replace(hour=0, minute=0)


@pytest.mark.asyncio
async def test_progress_fetches_window(mock_repo):
    mock_repo.list_review_logs.return_value = [_log(0), _log(1)]

    service = StudyStatsService(mock_repo)
    summary = await service.get_progress("u1", now=NOW, days=10)

    assert len(summary.daily_stats) == 10
    assert summary.streak == 2
    since = mock_repo.list_review_logs.call_args.kwargs["since"]
    assert since == datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_progress_rejects_empty_window(mock_repo):
    service = StudyStatsService(mock_repo)
    with pytest.raises(ValueError):
        await service.get_progress("u1", now=NOW, days=0)


@pytest.mark.asyncio
async def test_overview_today_starts_at_local_midnight(mock_repo, local_tz):
    local_tz("ICT-7")
    mock_repo.count_by_state.return_value = {}
    mock_repo.list_review_logs.return_value = []
    mock_repo.count_due.return_value = 0
    mock_repo.next_due_time.return_value = None

    service = StudyStatsService(mock_repo)
    await service.get_overview("u1", now=datetime(2026, 3, 10, 1, 0, tzinfo=timezone.utc))

    since = mock_repo.list_review_logs.call_args.kwargs["since"]
    assert since == datetime(2026, 3, 9, 17, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_progress_buckets_by_local_day(mock_repo, local_tz):
    local_tz("ICT-7")
    now = datetime(2026, 3, 10, 1, 0, tzinfo=timezone.utc)  # 08:00 local, Tuesday
    early = replace(_log(), reviewed_at=datetime(2026, 3, 9, 20, 0, tzinfo=timezone.utc))
    mock_repo.list_review_logs.return_value = [early]

    service = StudyStatsService(mock_repo)
    summary = await service.get_progress("u1", now=now, days=7)

    today = summary.daily_stats[-1]
    assert today.date == date(2026, 3, 10)
    assert today.reviews == 1
    assert summary.daily_stats[-2].reviews == 0
    since = mock_repo.list_review_logs.call_args.kwargs["since"]
    assert since == datetime(2026, 3, 3, 17, 0, tzinfo=timezone.utc)
