"""
Study Session Service — Application layer orchestrator.

Owns the live sessions, feeds learner answers to the pure orchestrator and
hands each completed card's composite rating to the scheduler.
"""

import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone

from ulid import ULID

from mneme.application import orchestrator
from mneme.application.mode_policy import ModePolicy
from mneme.application.orchestrator import AnswerOutcome
from mneme.application.queue_builder import build_study_queue
from mneme.domain.constants import (
    DEFAULT_DAILY_NEW_LIMIT,
    DEFAULT_FETCH_LIMIT,
    MULTI_MODE_LABEL,
    PASS_RATING_THRESHOLD,
    SEED_THRESHOLD,
)
from mneme.domain.study.models import (
    IntervalPreview,
    Rating,
    ReviewLog,
    ScheduleResult,
    SessionState,
    StudyMode,
    StudyQueue,
)
from mneme.domain.study.ports import CardRepository, Scheduler

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """No live session with the given id."""


class CardNotFoundError(LookupError):
    """The card is not (or no longer) in the repository."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudySessionService:
    """
    Application service for multi-mode study sessions.

    Each answer replaces the session's state in one assignment before any
    collaborator is awaited, so a failing scheduler call never leaves a
    half-applied update behind.
    """

    def __init__(
        self,
        repo: CardRepository,
        scheduler: Scheduler,
        policy: ModePolicy | None = None,
        daily_limit: int = DEFAULT_DAILY_NEW_LIMIT,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
        seed_threshold: int = SEED_THRESHOLD,
        auto_seed: bool = True,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            repo: Card repository (port).
            scheduler: Spaced-repetition scheduler (port).
            policy: Mode assignment policy; default pools if not provided.
            rng: Random source for mode draws; seed it for reproducible sessions.
            clock: Returns "now"; injectable for tests.
        """
        self._repo = repo
        self._scheduler = scheduler
        self._policy = policy or ModePolicy()
        self._daily_limit = daily_limit
        self._fetch_limit = fetch_limit
        self._seed_threshold = seed_threshold
        self._auto_seed = auto_seed
        self._rng = rng or random.Random()
        self._clock = clock or _utcnow
        self._sessions: dict[str, SessionState] = {}

    # ------------------------------------------------------------------
    # Queue / session lifecycle
    # ------------------------------------------------------------------

    async def build_queue(
        self,
        user_id: str,
        deck: str | None = None,
        daily_limit: int | None = None,
    ) -> StudyQueue:
        return await build_study_queue(
            self._repo,
            user_id,
            deck=deck,
            daily_limit=self._daily_limit if daily_limit is None else daily_limit,
            now=self._clock(),
            fetch_limit=self._fetch_limit,
            seed_threshold=self._seed_threshold,
            auto_seed=self._auto_seed,
        )

    async def start_session(
        self,
        user_id: str,
        deck: str | None = None,
        daily_limit: int | None = None,
    ) -> SessionState:
        """
        Build the queue and create a session over its working set.

        An empty queue still yields a (complete) session.
        """
        queue = await self.build_queue(user_id, deck=deck, daily_limit=daily_limit)
        session = orchestrator.start_session(
            session_id=str(ULID()),
            user_id=user_id,
            working_set=queue.working_set(),
            started_at=self._clock(),
            policy=self._policy,
            rng=self._rng,
            counts=queue.counts,
            quota=queue.quota,
        )
        self._sessions[session.session_id] = session
        logger.info(
            f"Started session {session.session_id} for {user_id}: "
            f"{session.total_cards} cards (relearning={queue.counts.relearning}, "
            f"learning={queue.counts.learning}, due={queue.counts.due}, new={queue.counts.new})"
        )
        return session

    def get_session(self, session_id: str) -> SessionState:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def abandon(self, session_id: str) -> SessionState:
        """Discard a session. Only cards already completed were persisted."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        logger.info(
            f"Session {session_id} discarded with "
            f"{session.completed_count}/{session.total_cards} cards completed"
        )
        return session

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def answer(
        self,
        session_id: str,
        passed: bool | None = None,
        rating: Rating | int | None = None,
        used_hint: bool = False,
        mode: StudyMode | str | None = None,
        response_time_ms: int | None = None,
    ) -> AnswerOutcome:
        """
        Record the learner's result for the exercise currently shown.

        Exercises report either ``passed`` directly or a 1-4 ``rating``
        (Good or better passes). When the card completes, its composite
        rating is scheduled and logged before this returns.
        """
        if passed is None:
            if rating is None:
                raise ValueError("Either passed or rating is required")
            passed = int(Rating(rating)) >= PASS_RATING_THRESHOLD

        session = self.get_session(session_id)
        outcome = orchestrator.submit_answer(
            session,
            passed=passed,
            used_hint=used_hint,
            mode=mode,
        )
        if not outcome.accepted:
            logger.warning(
                f"Ignored stale answer for session {session_id} (mode={mode}, "
                f"expected={orchestrator.current_mode(session)})"
            )
            return outcome

        self._sessions[session_id] = outcome.session

        if outcome.completed_card is not None:
            await self.submit_review(
                session.user_id,
                outcome.completed_card.card_id,
                outcome.rating,
                response_time_ms=response_time_ms,
            )
        if outcome.session.is_complete:
            logger.info(f"Session {session_id} complete ({outcome.session.completed_count} cards)")
        return outcome

    async def submit_review(
        self,
        user_id: str,
        card_id: str,
        rating: Rating,
        response_time_ms: int | None = None,
        study_mode: str = MULTI_MODE_LABEL,
    ) -> ScheduleResult:
        """
        Schedule ``card_id`` with ``rating``, save it and append a review log.
        """
        card = await self._repo.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)

        now = self._clock()
        result = self._scheduler.schedule(card, rating, now)
        await self._repo.save_card(result.card)
        await self._repo.add_review_log(
            ReviewLog(
                id=str(ULID()),
                card_id=card_id,
                user_id=user_id,
                rating=rating,
                state=card.state,
                study_mode=study_mode,
                reviewed_at=now,
                response_time_ms=response_time_ms,
                stability=result.stability,
                difficulty=result.difficulty,
                elapsed_days=result.elapsed_days,
                scheduled_days=result.scheduled_days,
            )
        )
        logger.info(
            f"Card {card_id} rated {rating.name}; next review in {result.scheduled_days} days"
        )
        return result

    async def preview_intervals(self, card_id: str) -> IntervalPreview:
        card = await self._repo.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        return self._scheduler.preview(card, self._clock())

    async def seed(self, user_id: str, deck: str, limit: int | None = None) -> int:
        limit = self._daily_limit if limit is None else limit
        added = await self._repo.seed_new_cards(user_id, deck, limit, self._clock())
        logger.info(f"Seeded {added} new cards for {user_id} from deck '{deck}'")
        return added
