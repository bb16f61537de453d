import logging
from typing import Any, Dict, Optional

from src.core.exceptions import (
    BrokerUnavailableError,
    InvalidTransitionError,
    JobNotCancellableError,
    StoreUnavailableError,
)
from src.jobs.models import JobStatus
from src.jobs.store import JobStore
from src.translation_queue.broker import RedisBroker

from .producer import TranslationProducer
from .validation import DEFAULT_LIST_LIMIT, validate_list_params

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled by user"


class TranslationService:
    """
    Submit / query / cancel surface consumed by the outer layers (CLI, HTTP).
    """

    def __init__(self, store: JobStore, broker: RedisBroker, producer: TranslationProducer):
        self.store = store
        self.broker = broker
        self.producer = producer

    def submit(
        self,
        source_text: str,
        source_language: str,
        target_language: str,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.producer.submit(
            source_text, source_language, target_language, request_id=request_id
        )

    def get(self, request_id: str) -> Dict[str, Any]:
        """
        Raises:
            JobNotFoundError: Unknown request id.
        """
        return self.store.find_by_request_id(request_id).to_dict()

    def list_translations(
        self,
        status: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
        sort_by: str = "created_at",
        sort_order: str = "DESC",
    ) -> Dict[str, Any]:
        params = validate_list_params(
            status=status, limit=limit, offset=offset, sort_by=sort_by, sort_order=sort_order
        )
        jobs, total = self.store.list(**params)

        return {
            "translations": [job.to_dict() for job in jobs],
            "total": total,
            "limit": params["limit"],
            "offset": params["offset"],
            "hasMore": params["offset"] + params["limit"] < total,
        }

    def cancel(self, request_id: str) -> Dict[str, Any]:
        """
        Force a QUEUED job to FAILED.

        The job's message may still be in the queue; the worker sees the
        terminal status and acks it without translating.

        Raises:
            JobNotFoundError: Unknown request id.
            JobNotCancellableError: The job already left QUEUED.
        """
        try:
            job = self.store.update_status(
                request_id,
                JobStatus.FAILED,
                error_message=CANCELLED_MESSAGE,
                expected_status=JobStatus.QUEUED,
            )
        except InvalidTransitionError as e:
            raise JobNotCancellableError(request_id, e.current) from e

        logger.info(f"Service: Cancelled {request_id}")
        return job.to_dict()

    def stats(self) -> Dict[str, Any]:
        return {
            "jobs": self.store.count_by_status(),
            "queue": self.broker.stats(),
        }

    def reconcile(self, older_than: float) -> int:
        return self.producer.republish_orphans(older_than)

    def health(self) -> Dict[str, Any]:
        """
        Check connectivity to the record store and the broker.

        Both checks always run. The overall status is "ok" only when both pass.
        """
        checks = {
            "store": self._check(self.store.ping),
            "broker": self._check(self.broker.ping),
        }
        healthy = all(check["status"] == "ok" for check in checks.values())

        return {"status": "ok" if healthy else "error", "checks": checks}

    def _check(self, ping) -> Dict[str, str]:
        try:
            ping()
        except (StoreUnavailableError, BrokerUnavailableError) as e:
            logger.error(f"Service: Health check failed: {e}")
            return {"status": "error", "message": str(e)}
        return {"status": "ok", "message": "connection is healthy"}
