from .models import JobStatus, TranslationJob, can_transition
from .store import JobStore, RedisJobStore

__all__ = [
    "JobStatus",
    "TranslationJob",
    "can_transition",
    "JobStore",
    "RedisJobStore",
]
