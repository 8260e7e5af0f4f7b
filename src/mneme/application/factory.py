"""
Service Factory
Centralizes the logic for selecting the repository and scheduler adapters.
"""

import logging

from mneme.application.config import AppConfig
from mneme.application.session_service import StudySessionService
from mneme.application.stats import StudyStatsService
from mneme.domain.study.ports import CardRepository, Scheduler
from mneme.infrastructure.adapters.fsrs_scheduler import FsrsScheduler
from mneme.infrastructure.adapters.memory_repository import InMemoryCardRepository
from mneme.infrastructure.adapters.sqlite_repository import SqliteCardRepository

logger = logging.getLogger(__name__)


def get_repository(config: AppConfig) -> CardRepository:
    """
    Returns the CardRepository implementation selected by ``config.backend``.
    """
    if config.backend == "memory":
        logger.info("Backend: in-memory (nothing will be persisted)")
        return InMemoryCardRepository()

    logger.debug(f"Backend: SQLite at {config.db_path}")
    return SqliteCardRepository(config.db_path)


def get_scheduler(config: AppConfig) -> Scheduler:
    return FsrsScheduler(
        desired_retention=config.desired_retention,
        maximum_interval=config.maximum_interval,
        enable_fuzzing=config.enable_fuzzing,
    )


def get_study_service(
    config: AppConfig, repo: CardRepository | None = None
) -> StudySessionService:
    return StudySessionService(
        repo=repo or get_repository(config),
        scheduler=get_scheduler(config),
        policy=config.build_mode_policy(),
        daily_limit=config.daily_new_limit,
        fetch_limit=config.fetch_limit,
        seed_threshold=config.seed_threshold,
        auto_seed=config.auto_seed,
    )


def get_stats_service(
    config: AppConfig, repo: CardRepository | None = None
) -> StudyStatsService:
    return StudyStatsService(repo or get_repository(config))
