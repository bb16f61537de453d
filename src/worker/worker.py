import logging
import signal
import time
from typing import Optional

from src.core.exceptions import (
    BrokerUnavailableError,
    InvalidTransitionError,
    JobNotFoundError,
    StoreUnavailableError,
    TranslationError,
)
from src.jobs.models import JobStatus
from src.jobs.store import JobStore
from src.translation_queue.broker import Delivery, RedisBroker
from src.translation_queue.retry_policy import Retry, RetryPolicy
from src.worker.heartbeat import LeaseHeartbeat
from src.worker.translator import Translator

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "translation request expired before processing"


class TranslationWorker:
    """
    Translation queue worker.

    Responsibilities:
    - Pull one message at a time from the broker (prefetch=1)
    - Drive the job record QUEUED → PROCESSING → COMPLETED | FAILED
    - Retry failed translations with backoff until max_attempts
    - Never ack a message whose status update was not stored
    - Keep the delivery's lease alive while translate() runs
    - Gracefully handle shutdown signals
    """

    def __init__(
        self,
        broker: RedisBroker,
        store: JobStore,
        translator: Translator,
        policy: Optional[RetryPolicy] = None,
        poll_interval: float = 0.1,
        store_retry_delay: float = 5.0,
        visibility_timeout: float = 300.0,
        stale_check_interval: float = 30.0,
        heartbeat_interval: Optional[float] = None,
        handle_signals: bool = True,
    ):
        """
        Initialize the Worker.

        Args:
            broker (RedisBroker): Owned broker handle to pull deliveries from.
            store (JobStore): Job record store updated on every transition.
            translator (Translator): The external translate operation.
            policy (RetryPolicy): Backoff and terminal-failure decisions.
            poll_interval (float): Sleep duration when the queue is empty.
            store_retry_delay (float): Delay before a message whose status
                update failed is delivered again.
            visibility_timeout (float): Age after which unacked deliveries
                from crashed workers are requeued.
            stale_check_interval (float): How often to look for them.
            heartbeat_interval (float): How often the lease of the delivery
                being translated is renewed. Defaults to a third of the
                visibility timeout.
        """
        self.broker = broker
        self.store = store
        self.translator = translator
        self.policy = policy or RetryPolicy()
        self.poll_interval = poll_interval
        self.store_retry_delay = store_retry_delay
        self.visibility_timeout = visibility_timeout
        self.stale_check_interval = stale_check_interval
        self.heartbeat_interval = heartbeat_interval or visibility_timeout / 3

        self._running = False
        self._shutdown_requested = False
        self._last_stale_check = 0.0

        if handle_signals:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info(f"Signal {signum} received. Stopping worker gracefully...")
        self.stop()

    def start(self, timeout: Optional[float] = None) -> None:
        """
        Start the Worker loop.

        Args:
            timeout (Optional[float]): Max duration to run the worker (seconds). None = infinite.
        """
        self._running = True
        self._shutdown_requested = False
        start_time = time.time()
        logger.info(f"Worker started. Consuming '{self.broker.queue_name}'...")

        while self._running:
            if timeout and (time.time() - start_time > timeout):
                logger.info("Worker timeout reached. Stopping.")
                break

            if self._shutdown_requested:
                break

            try:
                self._maybe_requeue_stale()

                if not self.process_next(timeout=1):
                    time.sleep(self.poll_interval)

            except BrokerUnavailableError as e:
                logger.error(f"Broker unavailable: {e}. Retrying shortly.")
                time.sleep(1)

            except Exception as e:
                logger.error(f"Unexpected error in worker loop: {e}", exc_info=True)
                time.sleep(1)

        logger.info("Worker stopped.")
        self._running = False

    def stop(self) -> None:
        """
        Request a graceful stop. The in-flight job, if any, finishes first.
        """
        logger.info("Stopping worker...")
        self._shutdown_requested = True
        self._running = False

    def process_next(self, timeout: float = 0) -> bool:
        """
        Pull and fully process at most one message.

        Returns:
            True if a message was delivered.
        """
        delivery = self.broker.get(timeout=timeout)
        if delivery is None:
            return False

        try:
            self._process_delivery(delivery)
        except Exception:
            # Leave the message to lease recovery rather than blocking prefetch
            if self.broker.in_flight:
                self.broker.abandon(delivery)
            raise

        return True

    def _maybe_requeue_stale(self) -> None:
        now = time.time()
        if now - self._last_stale_check < self.stale_check_interval:
            return
        self._last_stale_check = now
        self.broker.requeue_stale(self.visibility_timeout)

    # ------------------------------------------------------------------
    # PER-MESSAGE STATE MACHINE
    # ------------------------------------------------------------------

    def _process_delivery(self, delivery: Delivery) -> None:
        message = delivery.message
        request_id = message.request_id
        attempt = message.attempts + 1

        logger.info(f"Starting job {request_id} (attempt {attempt}/{message.max_attempts})")

        try:
            job = self.store.find_by_request_id(request_id)

            if job.status.is_terminal:
                # Redelivery after a crash, or a cancelled job
                logger.info(f"Job {request_id} already {job.status.value}; acking duplicate")
                self.broker.ack(delivery)
                return

            self.store.update_status(request_id, JobStatus.PROCESSING, attempts=attempt)

            if message.is_expired():
                self.store.update_status(
                    request_id, JobStatus.FAILED, error_message=EXPIRED_MESSAGE, attempts=attempt
                )
                logger.warning(f"Job {request_id} expired before processing")
                self.broker.ack(delivery)
                return

        except JobNotFoundError:
            logger.error(f"Job {request_id} has no record; dropping message")
            self.broker.ack(delivery)
            return

        except InvalidTransitionError as e:
            # Cancelled between the read and the PROCESSING update
            logger.info(f"Job {request_id} skipped: {e}")
            self.broker.ack(delivery)
            return

        except StoreUnavailableError as e:
            self._withhold_ack(delivery, e)
            return

        try:
            with LeaseHeartbeat(
                self.broker,
                delivery,
                interval=self.heartbeat_interval,
                hold_for=self.visibility_timeout,
            ):
                translated = self.translator.translate(
                    message.source_text, message.source_language, message.target_language
                )
        except Exception as e:
            self._handle_failure(delivery, e)
            return

        try:
            self.store.update_status(
                request_id, JobStatus.COMPLETED, translated_text=translated, attempts=attempt
            )
        except StoreUnavailableError as e:
            # translate() will run again on redelivery
            self._withhold_ack(delivery, e)
            return
        except InvalidTransitionError as e:
            # A competing redelivery already settled the job
            logger.info(f"Job {request_id} already settled: {e}")
            self.broker.ack(delivery)
            return

        self.broker.ack(delivery)
        logger.info(f"Job {request_id} succeeded")

    def _handle_failure(self, delivery: Delivery, error: Exception) -> None:
        message = delivery.message
        attempts = message.attempts + 1

        if isinstance(error, TranslationError):
            logger.warning(f"Job {message.request_id} failed attempt {attempts}: {error}")
            reason = str(error)
        else:
            logger.error(
                f"Job {message.request_id} failed attempt {attempts}: {error}", exc_info=True
            )
            reason = "unexpected processing error"

        decision = self.policy.decide(attempts, message.max_attempts)

        if isinstance(decision, Retry):
            retry = message.next_attempt()
            # Republish first: a crash in between duplicates, never loses
            self.broker.publish(retry, dedup_key=retry.dedup_key, delay=decision.delay)
            self.broker.ack(delivery)
            logger.info(
                f"Job {message.request_id} scheduled for retry in {decision.delay:.1f}s "
                f"({attempts}/{message.max_attempts} attempts used)"
            )
            return

        try:
            self.store.update_status(
                message.request_id,
                JobStatus.FAILED,
                error_message=f"Translation failed after {attempts} attempts: {reason}",
                attempts=attempts,
            )
        except StoreUnavailableError as e:
            self._withhold_ack(delivery, e)
            return
        except InvalidTransitionError as e:
            logger.info(f"Job {message.request_id} already settled: {e}")

        self.broker.ack(delivery)
        logger.error(f"Job {message.request_id} permanently failed after {attempts} attempts")

    def _withhold_ack(self, delivery: Delivery, error: StoreUnavailableError) -> None:
        """
        Give the message back without counting an attempt.
        """
        logger.error(
            f"Job {delivery.message.request_id}: record store unavailable ({error}); "
            f"not acknowledging"
        )
        try:
            self.broker.nack(delivery, requeue=True, delay=self.store_retry_delay)
        except BrokerUnavailableError:
            self.broker.abandon(delivery)
