"""
In-memory card repository.

Implements CardRepository over plain dicts. Used by tests and by the
``memory`` backend for throwaway sessions.
"""

import logging
from dataclasses import replace
from datetime import datetime

from ulid import ULID

from mneme.domain.study.models import (
    Card,
    CardState,
    QueueEntry,
    ReviewLog,
    Vocabulary,
)
from mneme.domain.study.ports import CardRepository

logger = logging.getLogger(__name__)


def _matches_deck(vocab: Vocabulary | None, deck: str | None) -> bool:
    if deck is None:
        return True
    return vocab is not None and vocab.tag is not None and deck in vocab.tag


class InMemoryCardRepository(CardRepository):
    """
    Dict-backed repository. Cards are copied on the way in and out so callers
    never share mutable instances with the store.
    """

    def __init__(self):
        self.vocabulary: dict[int, Vocabulary] = {}
        self.cards: dict[str, Card] = {}
        self.review_logs: list[ReviewLog] = []

    def _entries(self, user_id: str, deck: str | None) -> list[QueueEntry]:
        entries = []
        for card in self.cards.values():
            if card.user_id != user_id:
                continue
            vocab = self.vocabulary.get(card.vocabulary_id)
            if vocab is None or not _matches_deck(vocab, deck):
                continue
            entries.append(QueueEntry(card=replace(card), vocabulary=vocab))
        return entries

    async def fetch_due_cards(
        self,
        user_id: str,
        state: CardState,
        now: datetime,
        deck: str | None = None,
        limit: int = 50,
    ) -> list[QueueEntry]:
        entries = [
            e
            for e in self._entries(user_id, deck)
            if e.card.state == state and e.card.due <= now
        ]
        entries.sort(key=lambda e: e.card.due)
        return entries[:limit]

    async def fetch_new_cards(
        self, user_id: str, deck: str | None = None, limit: int = 20
    ) -> list[QueueEntry]:
        entries = [e for e in self._entries(user_id, deck) if e.card.state == CardState.NEW]
        entries.sort(key=lambda e: e.card.created_at)
        return entries[:limit]

    async def count_new_cards(self, user_id: str) -> int:
        return sum(
            1
            for c in self.cards.values()
            if c.user_id == user_id and c.state == CardState.NEW
        )

    async def count_started_since(self, user_id: str, since: datetime) -> int:
        return sum(
            1
            for c in self.cards.values()
            if c.user_id == user_id and c.state != CardState.NEW and c.created_at >= since
        )

    async def count_by_state(
        self, user_id: str, deck: str | None = None
    ) -> dict[CardState, int]:
        counts = {state: 0 for state in CardState}
        for entry in self._entries(user_id, deck):
            counts[entry.card.state] += 1
        return counts

    async def count_due(self, user_id: str, now: datetime) -> int:
        return sum(1 for c in self.cards.values() if c.user_id == user_id and c.due <= now)

    async def next_due_time(self, user_id: str, now: datetime) -> datetime | None:
        upcoming = [c.due for c in self.cards.values() if c.user_id == user_id and c.due > now]
        return min(upcoming) if upcoming else None

    async def seed_new_cards(
        self, user_id: str, deck: str, limit: int, now: datetime
    ) -> int:
        existing_new = await self.count_new_cards(user_id)
        if existing_new >= limit:
            return 0

        to_add = limit - existing_new
        owned = {c.vocabulary_id for c in self.cards.values() if c.user_id == user_id}
        candidates = [
            v
            for v in sorted(self.vocabulary.values(), key=lambda v: v.id)
            if v.id not in owned and _matches_deck(v, deck)
        ][:to_add]

        for vocab in candidates:
            card = Card(
                id=str(ULID()),
                user_id=user_id,
                vocabulary_id=vocab.id,
                due=now,
                created_at=now,
            )
            self.cards[card.id] = card
        return len(candidates)

    async def get_card(self, card_id: str) -> Card | None:
        card = self.cards.get(card_id)
        return replace(card) if card else None

    async def save_card(self, card: Card) -> None:
        self.cards[card.id] = replace(card)

    async def add_review_log(self, log: ReviewLog) -> None:
        self.review_logs.append(log)

    async def list_review_logs(
        self, user_id: str, since: datetime | None = None
    ) -> list[ReviewLog]:
        logs = [
            log
            for log in self.review_logs
            if log.user_id == user_id and (since is None or log.reviewed_at >= since)
        ]
        return sorted(logs, key=lambda log: log.reviewed_at)

    async def add_vocabulary(self, items: list[Vocabulary]) -> int:
        for item in items:
            if not item.id:
                item = replace(item, id=max(self.vocabulary, default=0) + 1)
            self.vocabulary[item.id] = item
        return len(items)
