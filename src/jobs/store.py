import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from redis import Redis

from src.core.exceptions import (
    DuplicateKeyError,
    InvalidTransitionError,
    JobNotFoundError,
    StoreUnavailableError,
    redis_errors_as,
)

from .models import JobStatus, TranslationJob, can_transition
from .redis_keys import JobKeys, job_key

logger = logging.getLogger(__name__)

SORT_FIELDS = ("created_at", "updated_at", "status")
SORT_ORDERS = ("ASC", "DESC")


class JobStore(ABC):
    """
    Durable mapping from request id to translation job state.
    """

    @abstractmethod
    def create(self, job: TranslationJob) -> TranslationJob:
        """
        Persist a new job.

        Raises:
            DuplicateKeyError: If the request id is already stored.
        """
        pass

    @abstractmethod
    def find_by_request_id(self, request_id: str) -> TranslationJob:
        """
        Raises:
            JobNotFoundError: If the request id is unknown.
        """
        pass

    @abstractmethod
    def update_status(
        self,
        request_id: str,
        status: JobStatus,
        translated_text: Optional[str] = None,
        error_message: Optional[str] = None,
        attempts: Optional[int] = None,
        expected_status: Optional[JobStatus] = None,
    ) -> TranslationJob:
        """
        Atomically move a job to `status`.

        Raises:
            JobNotFoundError: If the request id is unknown.
            InvalidTransitionError: If the move breaks the lifecycle or the
                job is not in `expected_status`.
        """
        pass

    @abstractmethod
    def list(
        self,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
        sort_by: str = "created_at",
        sort_order: str = "DESC",
    ) -> Tuple[List[TranslationJob], int]:
        """Return one page of jobs and the total number matching the filter."""
        pass

    @abstractmethod
    def count_by_status(self) -> Dict[str, int]:
        pass

    @abstractmethod
    def ping(self) -> bool:
        """
        Raises:
            StoreUnavailableError: If the backing store cannot be reached.
        """
        pass


class RedisJobStore(JobStore):
    """
    Redis-backed job record store.

    Design rules:
    - One HASH per job, secondary indexes kept in the same transaction
    - Every write is a WATCH/MULTI transaction on the job hash
    - Records are never deleted, only moved forward
    """

    def __init__(self, redis_client: Redis, prefix: str = "translation"):
        self.redis = redis_client
        self.prefix = prefix

    def close(self) -> None:
        self.redis.close()

    def ping(self) -> bool:
        with redis_errors_as(StoreUnavailableError, "Pinging translation store"):
            return bool(self.redis.ping())

    # ------------------------------------------------------------------
    # KEYS
    # ------------------------------------------------------------------

    def _job_key(self, request_id: str) -> str:
        return job_key(self.prefix, JobKeys.JOB, request_id)

    def _status_key(self, status: JobStatus) -> str:
        return job_key(self.prefix, JobKeys.STATUS, status.value)

    @property
    def _by_created(self) -> str:
        return job_key(self.prefix, JobKeys.BY_CREATED)

    @property
    def _by_updated(self) -> str:
        return job_key(self.prefix, JobKeys.BY_UPDATED)

    # ------------------------------------------------------------------
    # CREATE
    # ------------------------------------------------------------------

    def create(self, job: TranslationJob) -> TranslationJob:
        key = self._job_key(job.request_id)

        def _create(pipe) -> TranslationJob:
            if pipe.exists(key):
                raise DuplicateKeyError(job.request_id)

            pipe.multi()
            pipe.hset(key, mapping=job.to_hash())
            pipe.sadd(self._status_key(job.status), job.request_id)
            pipe.zadd(self._by_created, {job.request_id: job.created_at.timestamp()})
            pipe.zadd(self._by_updated, {job.request_id: job.updated_at.timestamp()})
            return job

        with redis_errors_as(StoreUnavailableError, "Creating translation record"):
            created = self.redis.transaction(_create, key, value_from_callable=True)

        logger.debug(f"Store: Created job {job.request_id}")
        return created

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------

    def find_by_request_id(self, request_id: str) -> TranslationJob:
        with redis_errors_as(StoreUnavailableError, "Reading translation record"):
            raw = self.redis.hgetall(self._job_key(request_id))

        if not raw:
            raise JobNotFoundError(request_id)
        return TranslationJob.from_hash(raw)

    def list(
        self,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
        sort_by: str = "created_at",
        sort_order: str = "DESC",
    ) -> Tuple[List[TranslationJob], int]:
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"Unsupported sort field: {sort_by}")
        descending = sort_order.upper() == "DESC"

        with redis_errors_as(StoreUnavailableError, "Listing translation records"):
            index = self._by_updated if sort_by == "updated_at" else self._by_created
            ids = self.redis.zrange(index, 0, -1)

            if status is not None:
                members = self.redis.smembers(self._status_key(JobStatus(status)))
                ids = [i for i in ids if i in members]

            if sort_by == "status":
                # Stable sort keeps created_at ascending inside each status
                jobs = self._load(ids)
                jobs.sort(key=lambda j: j.status.value, reverse=descending)
                total = len(jobs)
                return jobs[offset : offset + limit], total

            if descending:
                ids.reverse()

            total = len(ids)
            return self._load(ids[offset : offset + limit]), total

    def _load(self, request_ids: List[str]) -> List[TranslationJob]:
        if not request_ids:
            return []

        pipe = self.redis.pipeline(transaction=False)
        for request_id in request_ids:
            pipe.hgetall(self._job_key(request_id))

        return [TranslationJob.from_hash(raw) for raw in pipe.execute() if raw]

    def count_by_status(self) -> Dict[str, int]:
        with redis_errors_as(StoreUnavailableError, "Counting translation records"):
            pipe = self.redis.pipeline(transaction=False)
            for status in JobStatus:
                pipe.scard(self._status_key(status))
            counts = pipe.execute()

        stats = {status.value: count for status, count in zip(JobStatus, counts)}
        stats["total"] = sum(counts)
        return stats

    # ------------------------------------------------------------------
    # UPDATE
    # ------------------------------------------------------------------

    def update_status(
        self,
        request_id: str,
        status: JobStatus,
        translated_text: Optional[str] = None,
        error_message: Optional[str] = None,
        attempts: Optional[int] = None,
        expected_status: Optional[JobStatus] = None,
    ) -> TranslationJob:
        status = JobStatus(status)
        key = self._job_key(request_id)

        def _update(pipe) -> TranslationJob:
            raw = pipe.hgetall(key)
            if not raw:
                raise JobNotFoundError(request_id)

            job = TranslationJob.from_hash(raw)

            if expected_status is not None and job.status != expected_status:
                raise InvalidTransitionError(request_id, job.status.value, status.value)

            # Redelivered messages re-apply the same terminal state
            if job.status == status and status.is_terminal:
                return job

            if not can_transition(job.status, status):
                raise InvalidTransitionError(request_id, job.status.value, status.value)

            updated = job.with_status(
                status,
                translated_text=translated_text,
                error_message=error_message,
                attempts=attempts,
            )

            pipe.multi()
            pipe.hset(key, mapping=updated.to_hash())
            if updated.translated_text is None:
                pipe.hdel(key, "translatedText")
            if updated.error_message is None:
                pipe.hdel(key, "errorMessage")
            if job.status != status:
                pipe.srem(self._status_key(job.status), request_id)
                pipe.sadd(self._status_key(status), request_id)
            pipe.zadd(self._by_updated, {request_id: updated.updated_at.timestamp()})
            return updated

        with redis_errors_as(StoreUnavailableError, "Updating translation record"):
            result = self.redis.transaction(_update, key, value_from_callable=True)

        logger.debug(f"Store: Job {request_id} is now {result.status.value}")
        return result
