import os
import random
import time
from datetime import datetime, timedelta, timezone

import pytest

from mneme.domain.study.models import Card, CardState, Vocabulary
from mneme.infrastructure.adapters.memory_repository import InMemoryCardRepository

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def rng():
    """Seeded random source so mode draws are reproducible."""
    return random.Random(42)


@pytest.fixture
def repo():
    return InMemoryCardRepository()


@pytest.fixture
def make_card(repo):
    """
    Factory that stores a vocabulary row plus a card for it in ``repo``.

    Returns the stored Card.
    """
    counter = {"n": 0}

    def _make(
        state=CardState.NEW,
        due=NOW - timedelta(hours=1),
        created_at=NOW - timedelta(days=30),
        user_id="u1",
        tag="oxford-3000",
        word=None,
        **card_fields,
    ):
        counter["n"] += 1
        n = counter["n"]
        vocab = Vocabulary(id=n, word=word or f"word{n}", definition_en=f"meaning {n}", tag=tag)
        repo.vocabulary[vocab.id] = vocab
        card = Card(
            id=f"card-{n}",
            user_id=user_id,
            vocabulary_id=vocab.id,
            due=due,
            created_at=created_at,
            state=state,
            **card_fields,
        )
        repo.cards[card.id] = card
        return card

    return _make


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def local_tz():
    """
    Pins the process-local timezone to UTC for every test.

    Yields a setter so a test can switch to another zone, e.g. ``local_tz("ICT-7")``.
    """
    previous = os.environ.get("TZ")

    def _set(name):
        os.environ["TZ"] = name
        time.tzset()

    _set("UTC")
    yield _set
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()
