# Infrastructure Adapters Package
from .fsrs_scheduler import FsrsScheduler
from .memory_store import InMemoryCardStore

__all__ = ["FsrsScheduler", "InMemoryCardStore"]
