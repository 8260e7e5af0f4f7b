# Infrastructure Adapters Package
from .fsrs_scheduler import FsrsScheduler
from .memory_repository import InMemoryCardRepository
from .sqlite_repository import SqliteCardRepository

__all__ = ["FsrsScheduler", "InMemoryCardRepository", "SqliteCardRepository"]
