import logging
import time
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from src.jobs.models import JobStatus, TranslationJob, utcnow
from src.jobs.store import JobStore
from src.translation_queue.broker import DEFAULT_MESSAGE_TTL, RedisBroker
from src.translation_queue.models import DEFAULT_MAX_ATTEMPTS, QueueMessage

from .validation import DEFAULT_MAX_TEXT_LENGTH, validate_translation_request

logger = logging.getLogger(__name__)

RECONCILE_BATCH = 100


class TranslationProducer:
    """
    Accepts translation requests and hands them to the workers.

    Responsibilities:
    - Validate the request before anything is persisted
    - Persist a QUEUED record keyed by request id
    - Publish the job message (attempts=0)
    - Return immediately; translation never runs on this path
    """

    def __init__(
        self,
        store: JobStore,
        broker: RedisBroker,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        message_ttl: int = DEFAULT_MESSAGE_TTL,
        max_text_length: int = DEFAULT_MAX_TEXT_LENGTH,
    ):
        self.store = store
        self.broker = broker
        self.max_attempts = max_attempts
        self.message_ttl = message_ttl
        self.max_text_length = max_text_length

    def submit(
        self,
        source_text: str,
        source_language: str,
        target_language: str,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Submit a translation request.

        Args:
            request_id: Optional client-supplied idempotency key (UUID).

        Returns:
            {"requestId": ..., "status": "queued"}

        Raises:
            InvalidRequestError: Bad text or language pair.
            DuplicateKeyError: request_id already exists.
            BrokerUnavailableError: The record was stored but the message
                could not be published; reconciliation will republish it.
        """
        validate_translation_request(
            source_text,
            source_language,
            target_language,
            request_id=request_id,
            max_text_length=self.max_text_length,
        )

        job = TranslationJob(
            request_id=request_id or str(uuid.uuid4()),
            source_text=source_text,
            source_language=source_language,
            target_language=target_language,
        )
        self.store.create(job)

        message = self._message_for(job)
        try:
            self.broker.publish(message, dedup_key=message.dedup_key)
        except Exception:
            logger.error(
                f"Producer: Job {job.request_id} stored but not published; "
                f"left QUEUED for reconciliation"
            )
            raise

        logger.info(
            f"Producer: Queued {job.request_id} "
            f"({job.source_language} → {job.target_language}, {len(job.source_text)} chars)"
        )
        return {"requestId": job.request_id, "status": JobStatus.QUEUED.value}

    def republish_orphans(self, older_than: float) -> int:
        """
        Reconciliation sweep.

        Republishes QUEUED jobs untouched for `older_than` seconds. Jobs whose
        first message is still waiting are skipped by the dedup key.

        Returns:
            Number of messages actually republished.
        """
        cutoff = utcnow() - timedelta(seconds=older_than)
        republished = 0
        offset = 0

        while True:
            jobs, total = self.store.list(
                status=JobStatus.QUEUED,
                limit=RECONCILE_BATCH,
                offset=offset,
                sort_by="updated_at",
                sort_order="ASC",
            )

            for job in jobs:
                if job.updated_at > cutoff:
                    # Sorted by updated_at: everything after this is newer
                    return republished

                message = self._message_for(job)
                if self.broker.publish(message, dedup_key=message.dedup_key):
                    logger.warning(f"Producer: Republished orphaned job {job.request_id}")
                    republished += 1

            offset += len(jobs)
            if not jobs or offset >= total:
                return republished

    def _message_for(self, job: TranslationJob) -> QueueMessage:
        now = time.time()
        return QueueMessage(
            request_id=job.request_id,
            source_text=job.source_text,
            source_language=job.source_language,
            target_language=job.target_language,
            attempts=0,
            max_attempts=self.max_attempts,
            timestamp=now,
            expires_at=now + self.message_ttl,
        )
