from enum import Enum


class QueueKeys(str, Enum):
    """
    Centralized Redis key suffixes for a named queue.

    This file is the single source of truth for all queue structures.
    """

    PENDING = "pending"  # LIST  → messages ready for delivery
    PROCESSING = "processing"  # LIST  → delivered, not yet acked
    LEASES = "leases"  # HASH  → raw message → delivery time
    DELAYED = "delayed"  # ZSET  → raw message scored by ready time
    SEEN = "seen"  # STRING per dedup key, expires with the message TTL
    HEARTBEAT = "heartbeat"  # STRING per delivery held by a live consumer


def queue_key(queue_name: str, kind: QueueKeys, suffix: str = "") -> str:
    key = f"{queue_name}:{kind.value}"
    return f"{key}:{suffix}" if suffix else key
