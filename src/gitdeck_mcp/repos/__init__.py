"""Repository registry."""

from .models import RepositoryRecord, RepositoryStatus
from .store import RepositoryLoadError, RepositoryNotFoundError, RepositoryStore

__all__ = [
    "RepositoryLoadError",
    "RepositoryNotFoundError",
    "RepositoryRecord",
    "RepositoryStatus",
    "RepositoryStore",
]
