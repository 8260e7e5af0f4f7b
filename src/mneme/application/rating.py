"""
Rating aggregator.

Turns a card's multi-mode attempt history into the single Again/Hard/Good/Easy
rating handed to the scheduler. Pure computation, no I/O.
"""

from collections.abc import Mapping

from mneme.domain.study.models import Rating, StudyMode

HARD_MODES: frozenset[StudyMode] = frozenset(
    {StudyMode.SPELLING, StudyMode.TYPING, StudyMode.LISTENING}
)


def _fails(attempts: int) -> int:
    return max(0, attempts - 1)


def _normalize(mode_attempts: Mapping[StudyMode | str, int]) -> dict[StudyMode, int]:
    # StudyMode(...) raises ValueError for anything outside the closed set
    return {StudyMode(mode): count for mode, count in mode_attempts.items()}


def count_fails(mode_attempts: Mapping[StudyMode | str, int]) -> tuple[int, int]:
    """
    Return ``(total_fails, hard_mode_fails)``.

    Every attempt beyond the first on a mode counts as one fail.
    """
    attempts = _normalize(mode_attempts)
    total = sum(_fails(n) for n in attempts.values())
    hard = sum(_fails(n) for mode, n in attempts.items() if mode in HARD_MODES)
    return total, hard


def aggregate_rating(
    mode_attempts: Mapping[StudyMode | str, int], used_hint: bool = False
) -> Rating:
    """
    Compute the composite rating for a completed card.

    Rules, first match wins:
        1. No fails and no hint -> Easy
        2. At most one fail (or a hint) -> Good
        3. Three or more fails on hard modes -> Again
        4. Otherwise -> Hard
    """
    total_fails, hard_fails = count_fails(mode_attempts)

    if total_fails == 0 and not used_hint:
        return Rating.EASY
    if total_fails <= 1:
        return Rating.GOOD
    if hard_fails >= 3:
        return Rating.AGAIN
    return Rating.HARD
