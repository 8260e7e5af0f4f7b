# Domain Study Package
from .models import (
    Card,
    CardState,
    CardStudyState,
    IntervalPreview,
    QueueCounts,
    QueueEntry,
    Quota,
    Rating,
    ReviewLog,
    ScheduleResult,
    SessionState,
    StudyMode,
    StudyQueue,
    Vocabulary,
)
from .ports import CardRepository, Scheduler

__all__ = [
    "Card",
    "CardState",
    "CardStudyState",
    "IntervalPreview",
    "QueueCounts",
    "QueueEntry",
    "Quota",
    "Rating",
    "ReviewLog",
    "ScheduleResult",
    "SessionState",
    "StudyMode",
    "StudyQueue",
    "Vocabulary",
    "CardRepository",
    "Scheduler",
]
