"""
FSRS Scheduler — Infrastructure adapter for the ``fsrs`` library.

Converts between the domain Card and ``fsrs.Card`` and delegates the
interval/stability/difficulty maths to ``fsrs.Scheduler``.
"""

import logging
from copy import copy
from datetime import datetime, timedelta, timezone

import fsrs

from mneme.domain.constants import DEFAULT_DESIRED_RETENTION, DEFAULT_MAXIMUM_INTERVAL
from mneme.domain.study.models import (
    Card,
    CardState,
    IntervalPreview,
    Rating,
    ScheduleResult,
)
from mneme.domain.study.ports import Scheduler

logger = logging.getLogger(__name__)


def _utc(dt: datetime | None) -> datetime | None:
    # fsrs only accepts timezone-aware UTC datetimes
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_fsrs_card(card: Card) -> fsrs.Card:
    """Build the library's card from ours. New cards start as fresh Learning cards."""
    if card.state == CardState.NEW:
        return fsrs.Card(state=fsrs.State.Learning, step=0, due=_utc(card.due))

    return fsrs.Card(
        state=fsrs.State(int(card.state)),
        step=None if card.state == CardState.REVIEW else card.learning_steps,
        stability=card.stability or None,
        difficulty=card.difficulty or None,
        due=_utc(card.due),
        last_review=_utc(card.last_review),
    )


class FsrsScheduler(Scheduler):
    """
    Scheduler port backed by ``fsrs.Scheduler``.
    """

    def __init__(
        self,
        desired_retention: float = DEFAULT_DESIRED_RETENTION,
        maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL,
        enable_fuzzing: bool = True,
    ):
        self._fsrs = fsrs.Scheduler(
            desired_retention=desired_retention,
            maximum_interval=maximum_interval,
            enable_fuzzing=enable_fuzzing,
        )

    def schedule(self, card: Card, rating: Rating, now: datetime) -> ScheduleResult:
        now = _utc(now)
        reviewed, _ = self._fsrs.review_card(
            to_fsrs_card(card), fsrs.Rating(int(rating)), review_datetime=now
        )

        elapsed_days = (now - _utc(card.last_review)).days if card.last_review else 0
        scheduled_days = max(0, (reviewed.due - now).days)
        lapsed = rating == Rating.AGAIN and card.state == CardState.REVIEW

        updated = Card(
            id=card.id,
            user_id=card.user_id,
            vocabulary_id=card.vocabulary_id,
            created_at=card.created_at,
            due=reviewed.due,
            state=CardState(reviewed.state.value),
            stability=reviewed.stability or 0.0,
            difficulty=reviewed.difficulty or 0.0,
            elapsed_days=elapsed_days,
            scheduled_days=scheduled_days,
            learning_steps=reviewed.step or 0,
            reps=card.reps + 1,
            lapses=card.lapses + (1 if lapsed else 0),
            last_review=reviewed.last_review,
        )
        logger.debug(
            f"Scheduled card {card.id}: {card.state.name} -> {updated.state.name}, "
            f"rating={rating.name}, due={updated.due.isoformat()}"
        )

        # Log data describes the memory state the review was made from
        return ScheduleResult(
            card=updated,
            stability=card.stability,
            difficulty=card.difficulty,
            elapsed_days=elapsed_days,
            scheduled_days=scheduled_days,
        )

    def preview(self, card: Card, now: datetime) -> IntervalPreview:
        now = _utc(now)
        base = to_fsrs_card(card)

        def interval(rating: fsrs.Rating) -> timedelta:
            reviewed, _ = self._fsrs.review_card(copy(base), rating, review_datetime=now)
            return reviewed.due - now

        return IntervalPreview(
            again=interval(fsrs.Rating.Again),
            hard=interval(fsrs.Rating.Hard),
            good=interval(fsrs.Rating.Good),
            easy=interval(fsrs.Rating.Easy),
        )
