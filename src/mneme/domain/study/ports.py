"""
Ports (interfaces) for the study engine's collaborators.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import (
    Card,
    CardState,
    IntervalPreview,
    QueueEntry,
    Rating,
    ReviewLog,
    ScheduleResult,
    Vocabulary,
)


class CardRepository(ABC):
    """
    Port for card, vocabulary and review-log persistence.

    Implementations:
        - SqliteCardRepository: stores everything in a SQLite file.
        - InMemoryCardRepository: dict-backed, for tests and demos.

    A ``deck`` filter is a substring match against the vocabulary tag.
    """

    @abstractmethod
    async def fetch_due_cards(
        self,
        user_id: str,
        state: CardState,
        now: datetime,
        deck: str | None = None,
        limit: int = 50,
    ) -> list[QueueEntry]:
        """
        Fetch cards in ``state`` with ``due <= now``, ordered by ascending due time.
        """
        pass

    @abstractmethod
    async def fetch_new_cards(
        self, user_id: str, deck: str | None = None, limit: int = 20
    ) -> list[QueueEntry]:
        """
        Fetch New cards ordered by creation time.
        """
        pass

    @abstractmethod
    async def count_new_cards(self, user_id: str) -> int:
        """Count all New cards of the learner, across decks."""
        pass

    @abstractmethod
    async def count_started_since(self, user_id: str, since: datetime) -> int:
        """Count cards created at/after ``since`` that have left the New state."""
        pass

    @abstractmethod
    async def count_by_state(
        self, user_id: str, deck: str | None = None
    ) -> dict[CardState, int]:
        """Count all cards per state (due or not), within the deck filter."""
        pass

    @abstractmethod
    async def count_due(self, user_id: str, now: datetime) -> int:
        pass

    @abstractmethod
    async def next_due_time(self, user_id: str, now: datetime) -> datetime | None:
        """Earliest due time strictly after ``now``."""
        pass

    @abstractmethod
    async def seed_new_cards(
        self, user_id: str, deck: str, limit: int, now: datetime
    ) -> int:
        """
        Create New cards from deck vocabulary the learner has no card for.

        Tops the learner's New pool up to ``limit``. Returns the number added.
        """
        pass

    @abstractmethod
    async def get_card(self, card_id: str) -> Card | None:
        pass

    @abstractmethod
    async def save_card(self, card: Card) -> None:
        pass

    @abstractmethod
    async def add_review_log(self, log: ReviewLog) -> None:
        pass

    @abstractmethod
    async def list_review_logs(
        self, user_id: str, since: datetime | None = None
    ) -> list[ReviewLog]:
        """Review logs sorted by ``reviewed_at`` ascending."""
        pass

    @abstractmethod
    async def add_vocabulary(self, items: list[Vocabulary]) -> int:
        """Insert vocabulary rows; returns the number stored."""
        pass


class Scheduler(ABC):
    """
    Port for the spaced-repetition algorithm. Consumed as a black box.
    """

    @abstractmethod
    def schedule(self, card: Card, rating: Rating, now: datetime) -> ScheduleResult:
        """
        Reschedule ``card`` after a review rated ``rating`` at ``now``.
        """
        pass

    @abstractmethod
    def preview(self, card: Card, now: datetime) -> IntervalPreview:
        """
        Intervals the card would get for each rating, without changing it.
        """
        pass
