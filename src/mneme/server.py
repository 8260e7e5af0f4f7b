import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from mneme.application import orchestrator
from mneme.application.session_service import (
    CardNotFoundError,
    SessionNotFoundError,
    StudySessionService,
)
from mneme.application.stats import StudyStatsService
from mneme.consts import VERSION
from mneme.domain.study.models import (
    CardStudyState,
    QueueEntry,
    SessionState,
    StudyMode,
    StudyQueue,
    Vocabulary,
)

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mneme.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Mneme Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Mneme Server shutting down...")


app = FastAPI(
    title="Mneme Server",
    description="Multi-mode spaced-repetition study sessions.",
    version=VERSION,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache
def _services() -> tuple[StudySessionService, StudyStatsService]:
    from mneme.application.config import resolve_config
    from mneme.application.factory import get_repository, get_stats_service, get_study_service

    config = resolve_config()
    repo = get_repository(config)
    return get_study_service(config, repo), get_stats_service(config, repo)


def get_study_service() -> StudySessionService:
    return _services()[0]


def get_stats_service() -> StudyStatsService:
    return _services()[1]


StudyDep = Annotated[StudySessionService, Depends(get_study_service)]
StatsDep = Annotated[StudyStatsService, Depends(get_stats_service)]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class VocabularyOut(BaseModel):
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

    @classmethod
    def from_domain(cls, v: Vocabulary | None) -> "VocabularyOut | None":
        return cls(**v.__dict__) if v else None


class QueueCardOut(BaseModel):
    id: str
    state: int
    due: datetime
    vocabulary: VocabularyOut | None


class QueueResponse(BaseModel):
    relearning: list[QueueCardOut]
    learning: list[QueueCardOut]
    due: list[QueueCardOut]
    new: list[QueueCardOut]
    counts: dict[str, int]
    total_by_state: dict[str, int]
    quota: dict[str, int]
    need_more_seeds: bool


class CardProgressOut(BaseModel):
    card_id: str
    original_state: int
    mode_queue: list[StudyMode]
    current_mode_index: int
    retry_queue: list[StudyMode]
    mode_attempts: dict[str, int]
    used_hint: bool
    is_complete: bool


class SessionResponse(BaseModel):
    session_id: str
    user_id: str
    total_cards: int
    completed_count: int
    current_round: int
    progress_percent: float
    session_complete: bool
    current_card: CardProgressOut | None
    current_vocabulary: VocabularyOut | None
    current_mode: StudyMode | None
    is_retrying: bool
    counts: dict[str, int]
    quota: dict[str, int] | None


class StartSessionRequest(BaseModel):
    user_id: str
    deck: str | None = None
    daily_limit: int | None = Field(default=None, ge=0, le=500)


class AnswerRequest(BaseModel):
    # Either passed or a 1-4 rating (Good or better passes)
    passed: bool | None = None
    rating: int | None = Field(default=None, ge=1, le=4)
    used_hint: bool = False
    mode: StudyMode | None = None
    response_time_ms: int | None = Field(default=None, ge=0)


class AnswerResponse(BaseModel):
    accepted: bool
    completed_card_id: str | None = None
    rating: int | None = None
    session: SessionResponse


class PreviewResponse(BaseModel):
    again_days: float
    hard_days: float
    good_days: float
    easy_days: float


class SeedRequest(BaseModel):
    user_id: str
    deck: str
    limit: int | None = Field(default=None, ge=1, le=500)


def _card_out(card: CardStudyState) -> CardProgressOut:
    return CardProgressOut(
        card_id=card.card_id,
        original_state=int(card.original_state),
        mode_queue=list(card.mode_queue),
        current_mode_index=card.current_mode_index,
        retry_queue=list(card.retry_queue),
        mode_attempts={m.value: n for m, n in card.mode_attempts.items()},
        used_hint=card.used_hint,
        is_complete=card.is_complete,
    )


def _session_out(session: SessionState) -> SessionResponse:
    card = orchestrator.current_card(session)
    return SessionResponse(
        session_id=session.session_id,
        user_id=session.user_id,
        total_cards=session.total_cards,
        completed_count=session.completed_count,
        current_round=session.current_round,
        progress_percent=session.progress_percent,
        session_complete=session.is_complete,
        current_card=_card_out(card) if card else None,
        current_vocabulary=VocabularyOut.from_domain(card.vocabulary) if card else None,
        current_mode=orchestrator.current_mode(session),
        is_retrying=orchestrator.is_retrying(session),
        counts=session.counts.__dict__,
        quota=session.quota.__dict__ if session.quota else None,
    )


def _entries_out(entries: list[QueueEntry]) -> list[QueueCardOut]:
    return [
        QueueCardOut(
            id=e.card.id,
            state=int(e.card.state),
            due=e.card.due,
            vocabulary=VocabularyOut.from_domain(e.vocabulary),
        )
        for e in entries
    ]


def _queue_out(queue: StudyQueue) -> QueueResponse:
    return QueueResponse(
        relearning=_entries_out(queue.relearning),
        learning=_entries_out(queue.learning),
        due=_entries_out(queue.due),
        new=_entries_out(queue.new),
        counts=queue.counts.__dict__,
        total_by_state={s.name.lower(): n for s, n in queue.total_by_state.items()},
        quota=queue.quota.__dict__,
        need_more_seeds=queue.need_more_seeds,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/study/queue", response_model=QueueResponse)
async def get_queue(
    service: StudyDep,
    user_id: str,
    deck: str | None = None,
    daily_limit: Annotated[int | None, Query(ge=0, le=500)] = None,
):
    """Study queue in priority order: Relearning → Learning → Review → New."""
    try:
        queue = await service.build_queue(user_id, deck=deck, daily_limit=daily_limit)
    except Exception as e:
        logger.error(f"Queue build failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return _queue_out(queue)


@app.post("/study/sessions", response_model=SessionResponse, status_code=201)
async def start_session(req: StartSessionRequest, service: StudyDep):
    try:
        session = await service.start_session(
            req.user_id, deck=req.deck, daily_limit=req.daily_limit
        )
    except Exception as e:
        logger.error(f"Session start failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return _session_out(session)


@app.get("/study/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, service: StudyDep):
    try:
        return _session_out(service.get_session(session_id))
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found") from None


@app.post("/study/sessions/{session_id}/answer", response_model=AnswerResponse)
async def answer(session_id: str, req: AnswerRequest, service: StudyDep):
    """
    Record the result of the exercise currently shown.

    Stale answers (wrong mode, finished card) come back with ``accepted=false``.
    """
    if req.passed is None and req.rating is None:
        raise HTTPException(status_code=422, detail="Either 'passed' or 'rating' is required")

    try:
        outcome = await service.answer(
            session_id,
            passed=req.passed,
            rating=req.rating,
            used_hint=req.used_hint,
            mode=req.mode,
            response_time_ms=req.response_time_ms,
        )
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found") from None
    except CardNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"Card not found: {e}") from e
    except Exception as e:
        logger.error(f"Answer failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

    return AnswerResponse(
        accepted=outcome.accepted,
        completed_card_id=outcome.completed_card.card_id if outcome.completed_card else None,
        rating=int(outcome.rating) if outcome.rating else None,
        session=_session_out(outcome.session),
    )


@app.delete("/study/sessions/{session_id}")
async def abandon_session(session_id: str, service: StudyDep):
    try:
        session = service.abandon(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found") from None
    return {"abandoned": True, "completed_count": session.completed_count}


@app.get("/study/cards/{card_id}/preview", response_model=PreviewResponse)
async def preview_card(card_id: str, service: StudyDep):
    """Next interval for each rating, for display only."""
    try:
        preview = await service.preview_intervals(card_id)
    except CardNotFoundError:
        raise HTTPException(status_code=404, detail="Card not found") from None

    day = 86400.0
    return PreviewResponse(
        again_days=preview.again.total_seconds() / day,
        hard_days=preview.hard.total_seconds() / day,
        good_days=preview.good.total_seconds() / day,
        easy_days=preview.easy.total_seconds() / day,
    )


@app.post("/study/seed")
async def seed_cards(req: SeedRequest, service: StudyDep):
    """Add New cards from a deck, topping the learner's pool up to the limit."""
    try:
        added = await service.seed(req.user_id, req.deck, req.limit)
    except Exception as e:
        logger.error(f"Seeding failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"added": added}


@app.get("/study/stats")
async def get_stats(stats: StatsDep, user_id: str, deck: str | None = None):
    overview = await stats.get_overview(user_id, deck=deck)
    return {
        "total_cards": overview.total_cards,
        "cards_by_state": {s.name.lower(): n for s, n in overview.cards_by_state.items()},
        "reviews_today": overview.reviews_today,
        "due_now": overview.due_now,
        "next_due_time": overview.next_due_time.isoformat() if overview.next_due_time else None,
    }


@app.get("/study/stats/progress")
async def get_progress(
    stats: StatsDep,
    user_id: str,
    days: Annotated[int, Query(ge=1, le=366)] = 270,
):
    summary = await stats.get_progress(user_id, days=days)
    return {
        "streak": summary.streak,
        "overall_accuracy": summary.overall_accuracy,
        "total_reviews": summary.total_reviews,
        "best_day": summary.best_day,
        "daily_stats": [
            {
                "date": d.date.isoformat(),
                "day_name": d.day_name,
                "reviews": d.reviews,
                "correct": d.correct,
                "accuracy": d.accuracy,
            }
            for d in summary.daily_stats
        ],
    }
