"""
Queue builder for multi-mode study sessions.

Builds the session's candidate cards by:
1. Fetching due Relearning, Learning and Review cards (oldest due first)
2. Filling the New bucket up to the remaining daily quota
3. Seeding more New cards from the deck when the learner runs low
"""

import logging
from datetime import datetime, timezone

from mneme.application.clock import local_day_start
from mneme.domain.constants import (
    DEFAULT_DAILY_NEW_LIMIT,
    DEFAULT_FETCH_LIMIT,
    SEED_THRESHOLD,
)
from mneme.domain.study.models import CardState, QueueCounts, Quota, StudyQueue
from mneme.domain.study.ports import CardRepository

logger = logging.getLogger(__name__)


async def _fetch_buckets(
    repo: CardRepository,
    user_id: str,
    deck: str | None,
    daily_limit: int,
    now: datetime,
    fetch_limit: int,
    seed_threshold: int,
) -> StudyQueue:
    relearning = await repo.fetch_due_cards(
        user_id, CardState.RELEARNING, now, deck=deck, limit=fetch_limit
    )
    learning = await repo.fetch_due_cards(
        user_id, CardState.LEARNING, now, deck=deck, limit=fetch_limit
    )
    review = await repo.fetch_due_cards(
        user_id, CardState.REVIEW, now, deck=deck, limit=fetch_limit
    )

    # Quota: cards introduced since local midnight that already left the New state
    used = await repo.count_started_since(user_id, local_day_start(now))
    remaining = max(0, daily_limit - used)

    new = await repo.fetch_new_cards(user_id, deck=deck, limit=remaining) if remaining else []
    total_new = await repo.count_new_cards(user_id)
    total_by_state = await repo.count_by_state(user_id, deck=deck)

    return StudyQueue(
        relearning=relearning,
        learning=learning,
        due=review,
        new=new,
        counts=QueueCounts(
            relearning=len(relearning),
            learning=len(learning),
            due=len(review),
            new=len(new),
            total_new=total_new,
        ),
        quota=Quota(daily=daily_limit, used=used, remaining=remaining),
        total_by_state=total_by_state,
        need_more_seeds=total_new < seed_threshold,
    )


async def build_study_queue(
    repo: CardRepository,
    user_id: str,
    deck: str | None = None,
    daily_limit: int = DEFAULT_DAILY_NEW_LIMIT,
    now: datetime | None = None,
    fetch_limit: int = DEFAULT_FETCH_LIMIT,
    seed_threshold: int = SEED_THRESHOLD,
    auto_seed: bool = True,
) -> StudyQueue:
    """
    Build the study queue for a learner.

    Args:
        repo: Card repository (port).
        user_id: Learner id.
        deck: Optional deck filter (substring of the vocabulary tag).
        daily_limit: Daily new-card quota.
        now: Current time; defaults to UTC now.
        fetch_limit: Cap for each of the Relearning/Learning/Review buckets.
        seed_threshold: Below this many New cards, ask for more seeds.
        auto_seed: Seed from ``deck`` once and rebuild when the New pool is low.

    Returns:
        StudyQueue with each bucket ordered; use ``working_set()`` for the
        Relearning → Learning → Review → New concatenation.
    """
    if daily_limit < 0:
        raise ValueError(f"daily_limit must be >= 0, got {daily_limit}")
    if fetch_limit < 1:
        raise ValueError(f"fetch_limit must be >= 1, got {fetch_limit}")

    now = now or datetime.now(timezone.utc)
    queue = await _fetch_buckets(
        repo, user_id, deck, daily_limit, now, fetch_limit, seed_threshold
    )

    if queue.need_more_seeds and deck and auto_seed:
        added = await repo.seed_new_cards(user_id, deck, daily_limit, now)
        logger.info(f"Seeded {added} new cards for {user_id} from deck '{deck}'")
        if added:
            queue = await _fetch_buckets(
                repo, user_id, deck, daily_limit, now, fetch_limit, seed_threshold
            )

    logger.debug(
        f"Queue for {user_id}: relearning={queue.counts.relearning} "
        f"learning={queue.counts.learning} due={queue.counts.due} new={queue.counts.new}"
    )
    return queue
