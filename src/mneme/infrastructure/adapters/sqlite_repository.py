"""
SQLite Card Repository — Infrastructure adapter for a local SQLite file.

Implements CardRepository with plain SQL. Timestamps are stored as UTC ISO-8601
strings so that lexical order equals chronological order.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from ulid import ULID

from mneme.domain.study.models import (
    Card,
    CardState,
    QueueEntry,
    Rating,
    ReviewLog,
    Vocabulary,
)
from mneme.domain.study.ports import CardRepository

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS vocabulary (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word TEXT NOT NULL,
    def_th TEXT,
    def_en TEXT,
    type TEXT,
    ipa_us TEXT,
    ipa_uk TEXT,
    cefr TEXT,
    example TEXT,
    audio_th TEXT,
    audio_en TEXT,
    audio_example TEXT,
    image_url TEXT,
    tag TEXT
);

CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    vocabulary_id INTEGER NOT NULL REFERENCES vocabulary(id),
    due TEXT NOT NULL,
    stability REAL NOT NULL DEFAULT 0,
    difficulty REAL NOT NULL DEFAULT 0,
    elapsed_days INTEGER NOT NULL DEFAULT 0,
    scheduled_days INTEGER NOT NULL DEFAULT 0,
    learning_steps INTEGER NOT NULL DEFAULT 0,
    reps INTEGER NOT NULL DEFAULT 0,
    lapses INTEGER NOT NULL DEFAULT 0,
    state INTEGER NOT NULL DEFAULT 0,
    last_review TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, vocabulary_id)
);

CREATE INDEX IF NOT EXISTS idx_cards_user_state_due ON cards(user_id, state, due);

CREATE TABLE IF NOT EXISTS review_logs (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL REFERENCES cards(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    rating INTEGER NOT NULL,
    state INTEGER NOT NULL,
    study_mode TEXT NOT NULL,
    response_time INTEGER,
    stability REAL,
    difficulty REAL,
    elapsed_days INTEGER,
    scheduled_days INTEGER,
    reviewed_at TEXT NOT NULL
);
"""

_VOCAB_COLUMNS = (
    "v.id, v.word, v.def_th, v.def_en, v.type, v.ipa_us, v.ipa_uk, v.cefr, "
    "v.example, v.audio_th, v.audio_en, v.audio_example, v.image_url, v.tag"
)
_CARD_COLUMNS = (
    "c.id, c.user_id, c.vocabulary_id, c.due, c.stability, c.difficulty, "
    "c.elapsed_days, c.scheduled_days, c.learning_steps, c.reps, c.lapses, "
    "c.state, c.last_review, c.created_at"
)


def _to_db(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # Fixed-width format keeps string order equal to time order
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_db(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_card(row: sqlite3.Row) -> Card:
    return Card(
        id=row["id"],
        user_id=row["user_id"],
        vocabulary_id=row["vocabulary_id"],
        due=_from_db(row["due"]),
        stability=row["stability"],
        difficulty=row["difficulty"],
        elapsed_days=row["elapsed_days"],
        scheduled_days=row["scheduled_days"],
        learning_steps=row["learning_steps"],
        reps=row["reps"],
        lapses=row["lapses"],
        state=CardState(row["state"]),
        last_review=_from_db(row["last_review"]),
        created_at=_from_db(row["created_at"]),
    )


def _row_to_vocab(row: sqlite3.Row) -> Vocabulary:
    return Vocabulary(
        id=row["vid"],
        word=row["word"],
        definition_th=row["def_th"],
        definition_en=row["def_en"],
        part_of_speech=row["type"],
        ipa_us=row["ipa_us"],
        ipa_uk=row["ipa_uk"],
        cefr=row["cefr"],
        example=row["example"],
        audio_th=row["audio_th"],
        audio_en=row["audio_en"],
        audio_example=row["audio_example"],
        image_url=row["image_url"],
        tag=row["tag"],
    )


class SqliteCardRepository(CardRepository):
    """
    Stores vocabulary, cards and review logs in one SQLite database file.

    Each call opens its own connection; ``:memory:`` therefore only lives for
    one call and is not useful here.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _select_entries(
        self, where: str, params: list, deck: str | None, order: str, limit: int
    ) -> list[QueueEntry]:
        query = (
            f"SELECT {_CARD_COLUMNS}, "
            f"{_VOCAB_COLUMNS.replace('v.id', 'v.id AS vid')} "
            f"FROM cards c JOIN vocabulary v ON c.vocabulary_id = v.id "
            f"WHERE {where}"
        )
        if deck:
            query += " AND v.tag LIKE ?"
            params = [*params, f"%{deck}%"]
        query += f" ORDER BY {order} LIMIT ?"
        params = [*params, limit]

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [QueueEntry(card=_row_to_card(r), vocabulary=_row_to_vocab(r)) for r in rows]

    async def fetch_due_cards(
        self,
        user_id: str,
        state: CardState,
        now: datetime,
        deck: str | None = None,
        limit: int = 50,
    ) -> list[QueueEntry]:
        return self._select_entries(
            "c.user_id = ? AND c.state = ? AND c.due <= ?",
            [user_id, int(state), _to_db(now)],
            deck,
            "c.due ASC",
            limit,
        )

    async def fetch_new_cards(
        self, user_id: str, deck: str | None = None, limit: int = 20
    ) -> list[QueueEntry]:
        return self._select_entries(
            "c.user_id = ? AND c.state = ?",
            [user_id, int(CardState.NEW)],
            deck,
            "c.created_at ASC",
            limit,
        )

    async def count_new_cards(self, user_id: str) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM cards WHERE user_id = ? AND state = ?",
                (user_id, int(CardState.NEW)),
            ).fetchone()[0]

    async def count_started_since(self, user_id: str, since: datetime) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM cards WHERE user_id = ? AND state > 0 AND created_at >= ?",
                (user_id, _to_db(since)),
            ).fetchone()[0]

    async def count_by_state(
        self, user_id: str, deck: str | None = None
    ) -> dict[CardState, int]:
        query = (
            "SELECT c.state, COUNT(*) FROM cards c "
            "JOIN vocabulary v ON c.vocabulary_id = v.id WHERE c.user_id = ?"
        )
        params: list = [user_id]
        if deck:
            query += " AND v.tag LIKE ?"
            params.append(f"%{deck}%")
        query += " GROUP BY c.state"

        counts = {state: 0 for state in CardState}
        with self._connect() as conn:
            for state, count in conn.execute(query, params):
                counts[CardState(state)] = count
        return counts

    async def count_due(self, user_id: str, now: datetime) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM cards WHERE user_id = ? AND due <= ?",
                (user_id, _to_db(now)),
            ).fetchone()[0]

    async def next_due_time(self, user_id: str, now: datetime) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MIN(due) FROM cards WHERE user_id = ? AND due > ?",
                (user_id, _to_db(now)),
            ).fetchone()
        return _from_db(row[0])

    async def seed_new_cards(
        self, user_id: str, deck: str, limit: int, now: datetime
    ) -> int:
        existing_new = await self.count_new_cards(user_id)
        if existing_new >= limit:
            logger.info(f"{user_id} already has {existing_new} new cards ready to learn")
            return 0

        to_add = limit - existing_new
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT v.id FROM vocabulary v WHERE v.tag LIKE ? "
                "AND v.id NOT IN (SELECT vocabulary_id FROM cards WHERE user_id = ?) "
                "ORDER BY v.id LIMIT ?",
                (f"%{deck}%", user_id, to_add),
            ).fetchall()
            conn.executemany(
                "INSERT INTO cards (id, user_id, vocabulary_id, due, state, created_at) "
                "VALUES (?, ?, ?, ?, 0, ?)",
                [(str(ULID()), user_id, r[0], _to_db(now), _to_db(now)) for r in rows],
            )
        return len(rows)

    async def get_card(self, card_id: str) -> Card | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_CARD_COLUMNS} FROM cards c WHERE c.id = ?", (card_id,)
            ).fetchone()
        return _row_to_card(row) if row else None

    async def save_card(self, card: Card) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO cards (id, user_id, vocabulary_id, due, stability, difficulty, "
                "elapsed_days, scheduled_days, learning_steps, reps, lapses, state, "
                "last_review, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET due = excluded.due, "
                "stability = excluded.stability, difficulty = excluded.difficulty, "
                "elapsed_days = excluded.elapsed_days, scheduled_days = excluded.scheduled_days, "
                "learning_steps = excluded.learning_steps, reps = excluded.reps, "
                "lapses = excluded.lapses, state = excluded.state, "
                "last_review = excluded.last_review",
                (
                    card.id,
                    card.user_id,
                    card.vocabulary_id,
                    _to_db(card.due),
                    card.stability,
                    card.difficulty,
                    card.elapsed_days,
                    card.scheduled_days,
                    card.learning_steps,
                    card.reps,
                    card.lapses,
                    int(card.state),
                    _to_db(card.last_review),
                    _to_db(card.created_at),
                ),
            )

    async def add_review_log(self, log: ReviewLog) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO review_logs (id, card_id, user_id, rating, state, study_mode, "
                "response_time, stability, difficulty, elapsed_days, scheduled_days, "
                "reviewed_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    log.id,
                    log.card_id,
                    log.user_id,
                    int(log.rating),
                    int(log.state),
                    log.study_mode,
                    log.response_time_ms,
                    log.stability,
                    log.difficulty,
                    log.elapsed_days,
                    log.scheduled_days,
                    _to_db(log.reviewed_at),
                ),
            )

    async def list_review_logs(
        self, user_id: str, since: datetime | None = None
    ) -> list[ReviewLog]:
        query = "SELECT * FROM review_logs WHERE user_id = ?"
        params: list = [user_id]
        if since is not None:
            query += " AND reviewed_at >= ?"
            params.append(_to_db(since))
        query += " ORDER BY reviewed_at ASC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            ReviewLog(
                id=r["id"],
                card_id=r["card_id"],
                user_id=r["user_id"],
                rating=Rating(r["rating"]),
                state=CardState(r["state"]),
                study_mode=r["study_mode"],
                reviewed_at=_from_db(r["reviewed_at"]),
                response_time_ms=r["response_time"],
                stability=r["stability"],
                difficulty=r["difficulty"],
                elapsed_days=r["elapsed_days"],
                scheduled_days=r["scheduled_days"],
            )
            for r in rows
        ]

    async def add_vocabulary(self, items: list[Vocabulary]) -> int:
        rows = [
            (
                item.id or None,
                item.word,
                item.definition_th,
                item.definition_en,
                item.part_of_speech,
                item.ipa_us,
                item.ipa_uk,
                item.cefr,
                item.example,
                item.audio_th,
                item.audio_en,
                item.audio_example,
                item.image_url,
                item.tag,
            )
            for item in items
        ]
        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO vocabulary (id, word, def_th, def_en, type, ipa_us, "
                "ipa_uk, cefr, example, audio_th, audio_en, audio_example, image_url, tag) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET word = excluded.word, def_th = excluded.def_th, "
                "def_en = excluded.def_en, type = excluded.type, ipa_us = excluded.ipa_us, "
                "ipa_uk = excluded.ipa_uk, cefr = excluded.cefr, example = excluded.example, "
                "audio_th = excluded.audio_th, audio_en = excluded.audio_en, "
                "audio_example = excluded.audio_example, image_url = excluded.image_url, "
                "tag = excluded.tag",
                rows,
            )
        return len(rows)
