from enum import Enum


class JobKeys(str, Enum):
    """
    Redis key suffixes for the job record store.

    Every key is namespaced by the store prefix, see `job_key`.
    """

    JOB = "job"  # HASH  → one translation record per request id
    BY_CREATED = "jobs:by_created"  # ZSET  → request ids scored by created_at
    BY_UPDATED = "jobs:by_updated"  # ZSET  → request ids scored by updated_at
    STATUS = "jobs:status"  # SET   → request ids per status


def job_key(prefix: str, kind: JobKeys, suffix: str = "") -> str:
    key = f"{prefix}:{kind.value}"
    return f"{key}:{suffix}" if suffix else key
