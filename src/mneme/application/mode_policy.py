"""
Mode assignment policy.

Maps a card's maturity state to the ordered exercise modes it must pass in
one session. New cards get an introductory mode plus several active-recall
modes; mature cards get fewer, harder ones.
"""

import random
from dataclasses import dataclass

from mneme.domain.study.models import CardState, StudyMode


@dataclass(frozen=True)
class ModePool:
    """
    Modes for one maturity state.

    Attributes:
        fixed: Modes always run first, in this order.
        pool: Candidates for the shuffled part of the queue.
        pick: How many modes to draw from ``pool``.
    """

    fixed: tuple[StudyMode, ...] = ()
    pool: tuple[StudyMode, ...] = ()
    pick: int = 0

    def __post_init__(self):
        if self.pick < 0 or self.pick > len(self.pool):
            raise ValueError(
                f"Cannot pick {self.pick} modes from a pool of {len(self.pool)}"
            )
        combined = self.fixed + self.pool
        if len(set(combined)) != len(combined):
            raise ValueError(f"Duplicate modes in pool definition: {combined}")


DEFAULT_MODE_POOLS: dict[CardState, ModePool] = {
    CardState.NEW: ModePool(
        fixed=(StudyMode.READING,),
        pool=(
            StudyMode.MULTIPLE_CHOICE,
            StudyMode.AUDIO_CHOICE,
            StudyMode.CLOZE,
            StudyMode.TYPING,
        ),
        pick=3,
    ),
    CardState.LEARNING: ModePool(
        pool=(
            StudyMode.CLOZE,
            StudyMode.AUDIO_CHOICE,
            StudyMode.MULTIPLE_CHOICE,
            StudyMode.SPELLING,
        ),
        pick=3,
    ),
    CardState.REVIEW: ModePool(
        pool=(StudyMode.SPELLING, StudyMode.TYPING, StudyMode.LISTENING),
        pick=2,
    ),
    CardState.RELEARNING: ModePool(
        fixed=(StudyMode.READING,),
        pool=(StudyMode.CLOZE, StudyMode.AUDIO_CHOICE, StudyMode.MULTIPLE_CHOICE),
        pick=2,
    ),
}


class ModePolicy:
    """
    Pure state → mode-queue mapping over a configurable set of pools.

    Every CardState must have a pool; a missing one is rejected up front.
    """

    def __init__(self, pools: dict[CardState, ModePool] | None = None):
        pools = dict(DEFAULT_MODE_POOLS if pools is None else pools)
        missing = [s.name for s in CardState if s not in pools]
        if missing:
            raise ValueError(f"Mode policy has no pool for states: {missing}")
        self.pools = pools

    def modes_for(
        self, state: CardState | int, rng: random.Random | None = None
    ) -> tuple[StudyMode, ...]:
        """
        Draw the mode queue for a card in ``state``.

        The shuffled part comes from a single ``sample`` call, so the queue is
        fixed once drawn and never repeats a mode.
        """
        state = CardState(state)
        rng = rng or random.Random()
        entry = self.pools[state]
        drawn = rng.sample(entry.pool, entry.pick) if entry.pick else []
        return entry.fixed + tuple(drawn)


_default_policy = ModePolicy()


def modes_for(
    state: CardState | int, rng: random.Random | None = None
) -> tuple[StudyMode, ...]:
    """Mode queue for ``state`` under the default pools."""
    return _default_policy.modes_for(state, rng)
