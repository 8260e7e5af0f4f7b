"""
Domain models for multi-mode study sessions.

These are pure data structures with no I/O or external dependencies.
Session-scoped types are frozen: every transition produces a new value.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum


class StudyMode(str, Enum):
    """Interactive exercise types a card can be put through."""

    READING = "reading"
    TYPING = "typing"
    LISTENING = "listening"
    MULTIPLE_CHOICE = "multiple_choice"
    CLOZE = "cloze"
    SPELLING = "spelling"
    AUDIO_CHOICE = "audio_choice"


class CardState(IntEnum):
    """Maturity state of a card, numbered as the FSRS scheduler numbers them."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class Rating(IntEnum):
    """Button pressed / composite verdict (1=Again, 2=Hard, 3=Good, 4=Easy)."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


@dataclass(frozen=True)
class Vocabulary:
    """
    Display payload for a card. Opaque to the session engine.

    Attributes:
        id: Vocabulary row id.
        word: The headword.
        tag: Deck tag(s) used for deck filtering (substring match).
    """

    id: int
    word: str
    definition_th: str | None = None
    definition_en: str | None = None
    part_of_speech: str | None = None
    ipa_us: str | None = None
    ipa_uk: str | None = None
    cefr: str | None = None
    example: str | None = None
    audio_th: str | None = None
    audio_en: str | None = None
    audio_example: str | None = None
    image_url: str | None = None
    tag: str | None = None


@dataclass
class Card:
    """
    One learner's spaced-repetition state for one vocabulary item.

    FSRS fields are opaque here; they are read and written by the Scheduler.
    """

    id: str
    user_id: str
    vocabulary_id: int
    due: datetime
    created_at: datetime
    state: CardState = CardState.NEW
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    learning_steps: int = 0
    reps: int = 0
    lapses: int = 0
    last_review: datetime | None = None


@dataclass(frozen=True)
class QueueEntry:
    """A card selected for a session, together with its display payload."""

    card: Card
    vocabulary: Vocabulary

    @property
    def card_id(self) -> str:
        return self.card.id


@dataclass(frozen=True)
class QueueCounts:
    relearning: int = 0
    learning: int = 0
    due: int = 0
    new: int = 0
    total_new: int = 0


@dataclass(frozen=True)
class Quota:
    """Daily new-card quota usage."""

    daily: int
    used: int
    remaining: int


@dataclass(frozen=True)
class StudyQueue:
    """
    Result of queue building: four buckets, each already ordered.

    Review cards are exposed as ``due`` to match the bucket's usual name.
    """

    relearning: list[QueueEntry]
    learning: list[QueueEntry]
    due: list[QueueEntry]
    new: list[QueueEntry]
    counts: QueueCounts
    quota: Quota
    total_by_state: dict[CardState, int] = field(default_factory=dict)
    need_more_seeds: bool = False

    def working_set(self) -> list[tuple[QueueEntry, CardState]]:
        """Concatenate buckets in priority order Relearning → Learning → Review → New."""
        return (
            [(e, CardState.RELEARNING) for e in self.relearning]
            + [(e, CardState.LEARNING) for e in self.learning]
            + [(e, CardState.REVIEW) for e in self.due]
            + [(e, CardState.NEW) for e in self.new]
        )


@dataclass(frozen=True)
class ReviewLog:
    """
    A single persisted review entry.

    Attributes:
        state: Card state before the review.
        study_mode: Exercise mode label ("multi" for composite ratings).
        response_time_ms: Optional learner response time.
    """

    id: str
    card_id: str
    user_id: str
    rating: Rating
    state: CardState
    study_mode: str
    reviewed_at: datetime
    response_time_ms: int | None = None
    stability: float | None = None
    difficulty: float | None = None
    elapsed_days: int | None = None
    scheduled_days: int | None = None


@dataclass(frozen=True)
class ScheduleResult:
    """Output of the scheduler: the rescheduled card plus FSRS log data."""

    card: Card
    stability: float
    difficulty: float
    elapsed_days: int
    scheduled_days: int


@dataclass(frozen=True)
class IntervalPreview:
    """Time until the next review for each possible rating."""

    again: timedelta
    hard: timedelta
    good: timedelta
    easy: timedelta


@dataclass(frozen=True)
class CardStudyState:
    """
    Session-scoped progress of one card through its mode queue.

    ``mode_attempts`` is replaced, never mutated, on each transition.
    Invariant: ``is_complete`` iff ``current_mode_index >= len(mode_queue)`` and no
    retry is pending.
    """

    card_id: str
    vocabulary: Vocabulary | None
    original_state: CardState
    mode_queue: tuple[StudyMode, ...]
    current_mode_index: int = 0
    retry_queue: tuple[StudyMode, ...] = ()
    mode_attempts: dict[StudyMode, int] = field(default_factory=dict)
    used_hint: bool = False
    is_complete: bool = False


@dataclass(frozen=True)
class SessionState:
    """
    Whole-session state: the working set plus the round-robin counters.

    Attributes:
        cards: Working set in priority order.
        current_card_idx: Card currently being shown.
        current_round: Synchronization barrier; never decreases.
        completed_count: Cards that reached completion this session.
    """

    session_id: str
    user_id: str
    cards: tuple[CardStudyState, ...]
    started_at: datetime
    current_card_idx: int = 0
    current_round: int = 0
    completed_count: int = 0
    counts: QueueCounts = field(default_factory=QueueCounts)
    quota: Quota | None = None

    @property
    def total_cards(self) -> int:
        return len(self.cards)

    @property
    def is_complete(self) -> bool:
        return all(c.is_complete for c in self.cards)

    @property
    def progress_percent(self) -> float:
        if not self.cards:
            return 0.0
        done = sum(1 for c in self.cards if c.is_complete)
        return done / len(self.cards) * 100
