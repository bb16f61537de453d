from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Type

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError


class TranslationQueueError(Exception):
    """Base exception for every error raised by the translation pipeline."""

    retryable = False


class InvalidRequestError(TranslationQueueError):
    """Malformed or disallowed input. Never retried."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


class ConflictError(TranslationQueueError):
    """The request clashes with the current state of a job."""

    pass


class DuplicateKeyError(ConflictError):
    """A job with the same request id already exists."""

    def __init__(self, request_id: str):
        super().__init__(f"Translation request {request_id} already exists")
        self.request_id = request_id


class InvalidTransitionError(ConflictError):
    """Raised when a status update would break the job lifecycle."""

    def __init__(self, request_id: str, current: str, requested: str):
        super().__init__(
            f"Cannot move translation {request_id} from '{current}' to '{requested}'"
        )
        self.request_id = request_id
        self.current = current
        self.requested = requested


class JobNotCancellableError(ConflictError):
    """Only queued jobs can be cancelled."""

    def __init__(self, request_id: str, status: str):
        super().__init__(
            f"Translation {request_id} cannot be cancelled while '{status}'"
        )
        self.request_id = request_id
        self.status = status


class JobNotFoundError(TranslationQueueError):
    def __init__(self, request_id: str):
        super().__init__(f"Translation {request_id} not found")
        self.request_id = request_id


class BrokerUnavailableError(TranslationQueueError):
    """Transient broker fault. Callers may retry the whole operation."""

    retryable = True


class PrefetchLimitError(TranslationQueueError):
    """A consumer asked for more deliveries than its prefetch allows."""

    pass


class StoreUnavailableError(TranslationQueueError):
    """Transient record store fault."""

    retryable = True


class TranslationError(TranslationQueueError):
    """
    The external translate operation failed.

    The message is shown to users on the failed job record, so it must not
    carry raw internal details.
    """

    retryable = True


@contextmanager
def redis_errors_as(
    exc_cls: Type[TranslationQueueError], action: str
) -> Iterator[None]:
    """Re-raise Redis connectivity faults as the owning layer's error."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        raise exc_cls(f"{action} failed: {e}") from e
