from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from mneme.application.queue_builder import build_study_queue
from mneme.domain.study.models import CardState, Quota, Vocabulary
from mneme.domain.study.ports import CardRepository


@pytest.mark.asyncio
async def test_buckets_in_priority_order(repo, make_card, now):
    rel1 = make_card(CardState.RELEARNING, due=now - timedelta(days=1))
    rel2 = make_card(CardState.RELEARNING, due=now - timedelta(days=2))
    learn = make_card(CardState.LEARNING, due=now - timedelta(minutes=5))
    rev1 = make_card(CardState.REVIEW, due=now - timedelta(days=3))
    rev2 = make_card(CardState.REVIEW, due=now - timedelta(hours=1))
    make_card(CardState.REVIEW, due=now + timedelta(days=1))  # not due yet
    new1 = make_card(CardState.NEW, created_at=now - timedelta(days=2))
    new2 = make_card(CardState.NEW, created_at=now - timedelta(days=5))

    queue = await build_study_queue(repo, "u1", now=now, auto_seed=False)

    assert [(e.card_id, s) for e, s in queue.working_set()] == [
        (rel2.id, CardState.RELEARNING),
        (rel1.id, CardState.RELEARNING),
        (learn.id, CardState.LEARNING),
        (rev1.id, CardState.REVIEW),
        (rev2.id, CardState.REVIEW),
        (new2.id, CardState.NEW),
        (new1.id, CardState.NEW),
    ]
    assert queue.counts.relearning == 2
    assert queue.counts.learning == 1
    assert queue.counts.due == 2
    assert queue.counts.new == 2
    assert queue.counts.total_new == 2
    assert queue.total_by_state == {
        CardState.NEW: 2,
        CardState.LEARNING: 1,
        CardState.REVIEW: 3,
        CardState.RELEARNING: 2,
    }
    assert queue.need_more_seeds


@pytest.mark.asyncio
async def test_entries_carry_vocabulary(repo, make_card, now):
    make_card(CardState.REVIEW, word="serendipity")
    queue = await build_study_queue(repo, "u1", now=now, auto_seed=False)
    assert queue.due[0].vocabulary.word == "serendipity"


@pytest.mark.asyncio
async def test_fetch_limit_caps_each_bucket(repo, make_card, now):
    for days in range(5, 0, -1):
        make_card(CardState.REVIEW, due=now - timedelta(days=days))
    queue = await build_study_queue(repo, "u1", now=now, fetch_limit=3, auto_seed=False)
    assert len(queue.due) == 3
    assert [e.card.due for e in queue.due] == [now - timedelta(days=d) for d in (5, 4, 3)]


@pytest.mark.asyncio
async def test_quota_counts_cards_started_today(repo, make_card, now):
    for _ in range(3):
        make_card(
            CardState.LEARNING,
            created_at=now - timedelta(hours=1),
            due=now + timedelta(hours=1),
        )
    for _ in range(4):
        make_card(CardState.NEW)

    queue = await build_study_queue(repo, "u1", daily_limit=5, now=now, auto_seed=False)
    assert queue.quota == Quota(daily=5, used=3, remaining=2)
    assert len(queue.new) == 2


@pytest.mark.asyncio
async def test_quota_never_negative(repo, make_card, now):
    for _ in range(3):
        make_card(CardState.LEARNING, created_at=now - timedelta(hours=1))
    make_card(CardState.NEW)

    queue = await build_study_queue(repo, "u1", daily_limit=2, now=now, auto_seed=False)
    assert queue.quota == Quota(daily=2, used=3, remaining=0)
    assert queue.new == []
    # Learning cards are still served
    assert len(queue.learning) == 3


@pytest.mark.asyncio
async def test_other_users_cards_excluded(repo, make_card, now):
    make_card(CardState.REVIEW, user_id="someone-else")
    queue = await build_study_queue(repo, "u1", now=now, auto_seed=False)
    assert queue.working_set() == []


@pytest.mark.asyncio
async def test_deck_filter(repo, make_card, now):
    make_card(CardState.REVIEW, tag="oxford-3000")
    toeic = make_card(CardState.REVIEW, tag="toeic")
    queue = await build_study_queue(repo, "u1", deck="toeic", now=now, auto_seed=False)
    assert [e.card_id for e in queue.due] == [toeic.id]


@pytest.mark.asyncio
async def test_auto_seed_from_deck(repo, now):
    for i in range(1, 16):
        repo.vocabulary[i] = Vocabulary(id=i, word=f"w{i}", tag="oxford-3000")

    queue = await build_study_queue(repo, "u1", deck="oxford", daily_limit=5, now=now)

    assert len(repo.cards) == 5
    assert queue.counts.new == 5
    assert queue.counts.total_new == 5
    assert {e.vocabulary.id for e in queue.new} == {1, 2, 3, 4, 5}


@pytest.mark.asyncio
async def test_no_seeding_without_deck(repo, now):
    repo.vocabulary[1] = Vocabulary(id=1, word="w1", tag="oxford-3000")
    queue = await build_study_queue(repo, "u1", now=now)
    assert repo.cards == {}
    assert queue.need_more_seeds


@pytest.mark.asyncio
async def test_no_seeding_when_disabled(repo, now):
    repo.vocabulary[1] = Vocabulary(id=1, word="w1", tag="oxford-3000")
    await build_study_queue(repo, "u1", deck="oxford", now=now, auto_seed=False)
    assert repo.cards == {}


@pytest.mark.asyncio
async def test_seeds_once_then_rebuilds(now):
    repo = AsyncMock(spec=CardRepository)
    repo.fetch_due_cards.return_value = []
    repo.fetch_new_cards.return_value = []
    repo.count_started_since.return_value = 0
    repo.count_new_cards.return_value = 0
    repo.count_by_state.return_value = {}
    repo.seed_new_cards.return_value = 3

    await build_study_queue(repo, "u1", deck="oxford", now=now)

    repo.seed_new_cards.assert_awaited_once_with("u1", "oxford", 20, now)
    # Initial build plus one rebuild after seeding
    assert repo.count_new_cards.await_count == 2


@pytest.mark.asyncio
async def test_invalid_limits(repo, now):
    with pytest.raises(ValueError):
        await build_study_queue(repo, "u1", daily_limit=-1, now=now)
    with pytest.raises(ValueError):
        await build_study_queue(repo, "u1", fetch_limit=0, now=now)


@pytest.mark.asyncio
async def test_quota_uses_local_midnight(repo, make_card, local_tz):
    local_tz("ICT-7")
    now = datetime(2026, 3, 10, 1, 0, tzinfo=timezone.utc)  # 08:00 local
    # 06:00 local today
    make_card(CardState.LEARNING, created_at=now - timedelta(hours=2), due=now + timedelta(hours=1))
    # 23:00 local yesterday
    make_card(CardState.LEARNING, created_at=now - timedelta(hours=9), due=now + timedelta(hours=1))

    queue = await build_study_queue(repo, "u1", daily_limit=5, now=now, auto_seed=False)

    assert queue.quota == Quota(daily=5, used=1, remaining=4)
