"""
Session orchestrator for multi-mode study.

Interleaves cards round-robin: each card walks its mode queue one step per
round, failed modes are retried before the card may move on, and the global
round only advances once every card has cleared it. All functions are pure;
each learner response yields a new SessionState.
"""

import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime

from mneme.application.mode_policy import ModePolicy
from mneme.application.rating import aggregate_rating
from mneme.domain.study.models import (
    CardState,
    CardStudyState,
    QueueCounts,
    QueueEntry,
    Quota,
    Rating,
    SessionState,
    StudyMode,
    Vocabulary,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardOutcome:
    """Result of applying one answer to one card."""

    state: CardStudyState
    accepted: bool
    rating: Rating | None = None  # Set only on the transition into completion


@dataclass(frozen=True)
class AnswerOutcome:
    """Result of applying one answer to a whole session."""

    session: SessionState
    accepted: bool
    mode: StudyMode | None = None
    completed_card: CardStudyState | None = None
    rating: Rating | None = None


# ---------------------------------------------------------------------------
# Card level
# ---------------------------------------------------------------------------


def create_card_state(
    card_id: str,
    original_state: CardState,
    mode_queue: tuple[StudyMode, ...],
    vocabulary: Vocabulary | None = None,
) -> CardStudyState:
    """Fresh per-card state. An empty mode queue is complete from the start."""
    return CardStudyState(
        card_id=card_id,
        vocabulary=vocabulary,
        original_state=CardState(original_state),
        mode_queue=tuple(mode_queue),
        is_complete=len(mode_queue) == 0,
    )


def get_current_mode(card: CardStudyState | None, current_round: int) -> StudyMode | None:
    """
    Mode to show for ``card`` in ``current_round``, or None if there is nothing to do.

    A card that already moved past the round repeats its failed mode first;
    otherwise it may not run ahead of the round.
    """
    if card is None or card.is_complete:
        return None

    idx = card.current_mode_index
    if card.retry_queue and idx > current_round:
        return card.retry_queue[0]

    if idx <= current_round and idx < len(card.mode_queue):
        return card.mode_queue[idx]

    if idx >= len(card.mode_queue) and card.retry_queue:
        return card.retry_queue[0]

    return None


def handle_result(
    card: CardStudyState,
    mode: StudyMode,
    passed: bool,
    current_round: int,
    used_hint: bool = False,
) -> CardOutcome:
    """
    Apply one pass/fail for ``mode`` to ``card``.

    Answers for anything other than the card's current mode are stale and
    rejected without touching the state.
    """
    expected = get_current_mode(card, current_round)
    if expected is None or mode != expected:
        return CardOutcome(state=card, accepted=False)

    attempts = dict(card.mode_attempts)
    retry = list(card.retry_queue)
    used_hint = card.used_hint or used_hint

    if not passed:
        if mode not in retry:
            retry.append(mode)
        attempts[mode] = attempts.get(mode, 0) + 1
        new_state = replace(
            card, retry_queue=tuple(retry), mode_attempts=attempts, used_hint=used_hint
        )
        return CardOutcome(state=new_state, accepted=True)

    retry = [m for m in retry if m != mode]
    if mode not in attempts:
        attempts[mode] = 1

    idx = card.current_mode_index
    if not retry:
        idx += 1
    is_complete = idx >= len(card.mode_queue) and not retry

    new_state = replace(
        card,
        current_mode_index=idx,
        retry_queue=tuple(retry),
        mode_attempts=attempts,
        used_hint=used_hint,
        is_complete=is_complete,
    )
    rating = None
    if is_complete:
        rating = aggregate_rating(new_state.mode_attempts, new_state.used_hint)
        logger.debug(f"Card {card.card_id} complete: attempts={attempts} rating={rating.name}")
    return CardOutcome(state=new_state, accepted=True, rating=rating)


# ---------------------------------------------------------------------------
# Session level
# ---------------------------------------------------------------------------


def round_cleared(
    cards: tuple[CardStudyState, ...] | list[CardStudyState], current_round: int
) -> bool:
    """True when every card is complete or already past ``current_round``."""
    return all(c.is_complete or c.current_mode_index > current_round for c in cards)


def find_next_card(
    cards: tuple[CardStudyState, ...] | list[CardStudyState],
    from_idx: int,
    current_round: int,
) -> int | None:
    """
    Scan forward circularly from ``from_idx`` for the next card with work to do.

    Cards waiting for the round to close are skipped. ``from_idx`` itself is
    checked last, so a card is only repeated when nothing else is available.
    """
    n = len(cards)
    for step in range(1, n + 1):
        idx = (from_idx + step) % n
        card = cards[idx]
        if not card.is_complete and get_current_mode(card, current_round) is not None:
            return idx
    return None


def start_session(
    session_id: str,
    user_id: str,
    working_set: list[tuple[QueueEntry, CardState]],
    started_at: datetime,
    policy: ModePolicy | None = None,
    rng: random.Random | None = None,
    counts: QueueCounts | None = None,
    quota: Quota | None = None,
) -> SessionState:
    """
    Create session state from a priority-ordered working set.

    Each card's mode queue is drawn once here and fixed for the session.
    """
    policy = policy or ModePolicy()
    rng = rng or random.Random()

    cards = tuple(
        create_card_state(
            card_id=entry.card_id,
            original_state=state,
            mode_queue=policy.modes_for(state, rng),
            vocabulary=entry.vocabulary,
        )
        for entry, state in working_set
    )
    first = find_next_card(cards, len(cards) - 1, 0) if cards else None

    return SessionState(
        session_id=session_id,
        user_id=user_id,
        cards=cards,
        started_at=started_at,
        current_card_idx=first if first is not None else 0,
        counts=counts or QueueCounts(),
        quota=quota,
    )


def current_card(session: SessionState) -> CardStudyState | None:
    if not session.cards:
        return None
    card = session.cards[session.current_card_idx]
    return None if card.is_complete else card


def current_mode(session: SessionState) -> StudyMode | None:
    return get_current_mode(current_card(session), session.current_round)


def mode_for_card(session: SessionState, card_id: str) -> StudyMode | None:
    """Current mode of any card in the session; None for unknown or finished cards."""
    for card in session.cards:
        if card.card_id == card_id:
            return get_current_mode(card, session.current_round)
    return None


def is_retrying(session: SessionState) -> bool:
    card = current_card(session)
    mode = current_mode(session)
    return card is not None and mode is not None and mode in card.retry_queue


def submit_answer(
    session: SessionState,
    passed: bool,
    used_hint: bool = False,
    mode: StudyMode | str | None = None,
) -> AnswerOutcome:
    """
    Apply the learner's answer for the card on screen and move to the next card.

    ``mode`` identifies which exercise the answer belongs to; when it does not
    match the current mode, or names no known mode, the event is stale and the
    session is returned as is.
    """
    card = current_card(session)
    expected = get_current_mode(card, session.current_round)
    if card is None or expected is None:
        return AnswerOutcome(session=session, accepted=False)

    try:
        mode = expected if mode is None else StudyMode(mode)
    except ValueError:
        return AnswerOutcome(session=session, accepted=False)
    outcome = handle_result(card, mode, passed, session.current_round, used_hint)
    if not outcome.accepted:
        return AnswerOutcome(session=session, accepted=False, mode=mode)

    idx = session.current_card_idx
    cards = list(session.cards)
    cards[idx] = outcome.state

    current_round = session.current_round
    if round_cleared(cards, current_round):
        current_round += 1
        logger.debug(f"Session {session.session_id} advanced to round {current_round}")

    next_idx = find_next_card(cards, idx, current_round)
    completed = outcome.rating is not None

    new_session = replace(
        session,
        cards=tuple(cards),
        current_card_idx=idx if next_idx is None else next_idx,
        current_round=current_round,
        completed_count=session.completed_count + (1 if completed else 0),
    )
    return AnswerOutcome(
        session=new_session,
        accepted=True,
        mode=mode,
        completed_card=outcome.state if completed else None,
        rating=outcome.rating,
    )
