# Application Stats Package
from .metrics_calculator import DailyStats, ProgressCalculator, ProgressSummary
from .service import StudyOverview, StudyStatsService

__all__ = [
    "DailyStats",
    "ProgressCalculator",
    "ProgressSummary",
    "StudyOverview",
    "StudyStatsService",
]
