import time

import pytest

from src.core.exceptions import JobNotCancellableError, StoreUnavailableError
from src.jobs.models import JobStatus, TranslationJob
from src.translation_queue.broker import RedisBroker
from src.translation_queue.models import QueueMessage
from src.translation_queue.retry_policy import RetryPolicy
from src.worker.translator import Translator
from src.worker.worker import EXPIRED_MESSAGE

from .conftest import FlakyTranslator


def _drain(worker, limit=10):
    processed = 0
    while processed < limit and worker.process_next(timeout=0):
        processed += 1
    return processed


def _queue_is_empty(broker):
    return broker.stats() == {"pending": 0, "delayed": 0, "processing": 0}


def test_round_trip_completes(service, broker, make_worker):
    request_id = service.submit("hello", "en", "pt")["requestId"]

    assert _drain(make_worker()) == 1

    job = service.get(request_id)
    assert job["status"] == "completed"
    assert job["translatedText"] == "olá"
    assert job["sourceLanguage"] == "en"
    assert job["targetLanguage"] == "pt"
    assert job["attempts"] == 1
    assert "errorMessage" not in job
    assert _queue_is_empty(broker)


def test_two_failures_then_success_completes(service, broker, make_worker):
    translator = FlakyTranslator(failures=2)
    request_id = service.submit("hello", "en", "es")["requestId"]

    assert _drain(make_worker(translator)) == 3

    job = service.get(request_id)
    assert job["status"] == "completed"
    assert job["translatedText"] == "hola"
    assert job["attempts"] == 3
    assert translator.calls == 3
    assert _queue_is_empty(broker)


def test_exhausted_retries_fail_terminally(service, broker, make_worker):
    translator = FlakyTranslator(failures=100)
    request_id = service.submit("hello", "en", "pt")["requestId"]

    assert _drain(make_worker(translator)) == 3

    job = service.get(request_id)
    assert job["status"] == "failed"
    assert job["attempts"] == 3
    assert job["errorMessage"] == (
        "Translation failed after 3 attempts: Translation service unavailable"
    )
    assert "translatedText" not in job
    assert translator.calls == 3
    assert _queue_is_empty(broker)


def test_unexpected_errors_are_not_shown_to_users(service, make_worker):
    translator = FlakyTranslator(failures=100, error=KeyError("internal detail"))
    request_id = service.submit("hello", "en", "pt")["requestId"]

    _drain(make_worker(translator))

    message = service.get(request_id)["errorMessage"]
    assert "internal detail" not in message
    assert message.endswith("unexpected processing error")


def test_retry_is_delayed_by_backoff(service, broker, make_worker):
    worker = make_worker(
        FlakyTranslator(failures=1), policy=RetryPolicy(strategy="fixed", base_delay=30)
    )
    request_id = service.submit("hello", "en", "pt")["requestId"]

    assert worker.process_next(timeout=0) is True
    assert broker.stats() == {"pending": 0, "delayed": 1, "processing": 0}
    assert service.get(request_id)["status"] == "processing"

    assert worker.process_next(timeout=0) is False

    broker.promote_due(now=time.time() + 31)
    assert worker.process_next(timeout=0) is True
    assert service.get(request_id)["status"] == "completed"


def test_retry_counter_travels_in_message_body(service, broker, make_worker):
    service.submit("hello", "en", "pt")
    make_worker(FlakyTranslator(failures=1)).process_next(timeout=0)

    delivery = broker.get(timeout=0)

    assert delivery.message.attempts == 1
    assert delivery.message.max_attempts == 3


def test_max_attempts_comes_from_the_message(store, broker, make_worker):
    job = store.create(TranslationJob("hello", "en", "pt"))
    broker.publish(
        QueueMessage(job.request_id, "hello", "en", "pt", attempts=0, max_attempts=1)
    )

    _drain(make_worker(FlakyTranslator(failures=100)))

    assert store.find_by_request_id(job.request_id).status == JobStatus.FAILED


def test_redelivery_after_crash_does_not_translate_twice(service, broker, store, make_worker):
    translator = FlakyTranslator()
    worker = make_worker(translator)
    request_id = service.submit("hello", "en", "pt")["requestId"]

    # Crash after the status update but before the ack
    unacked = []
    broker.ack = unacked.append
    worker.process_next(timeout=0)
    del broker.ack
    broker.abandon(unacked[0])

    assert broker.requeue_stale(0, now=time.time() + 1) == 1
    assert worker.process_next(timeout=0) is True

    job = service.get(request_id)
    assert job["status"] == "completed"
    assert translator.calls == 1
    assert store.count_by_status()["completed"] == 1
    assert _queue_is_empty(broker)


def test_crash_before_completion_is_retried(service, broker, make_worker):
    request_id = service.submit("hello", "en", "pt")["requestId"]

    # Consumer dies right after receiving the message
    broker.abandon(broker.get(timeout=0))
    broker.requeue_stale(0, now=time.time() + 1)

    assert _drain(make_worker()) == 1
    assert service.get(request_id)["status"] == "completed"


def test_cancelled_job_is_skipped(service, broker, make_worker):
    translator = FlakyTranslator()
    request_id = service.submit("hello", "en", "pt")["requestId"]

    cancelled = service.cancel(request_id)
    assert cancelled["status"] == "failed"
    assert cancelled["errorMessage"] == "cancelled by user"

    assert _drain(make_worker(translator)) == 1

    assert translator.calls == 0
    assert service.get(request_id)["errorMessage"] == "cancelled by user"
    assert _queue_is_empty(broker)


def test_processing_job_cannot_be_cancelled(service, store):
    request_id = service.submit("hello", "en", "pt")["requestId"]
    store.update_status(request_id, JobStatus.PROCESSING)

    with pytest.raises(JobNotCancellableError):
        service.cancel(request_id)

    assert service.get(request_id)["status"] == "processing"


class CompletionOutageStore:
    """Delegates to a real store but fails the first COMPLETED write."""

    def __init__(self, store):
        self._store = store
        self.failed = False

    def __getattr__(self, name):
        return getattr(self._store, name)

    def update_status(self, request_id, status, **kwargs):
        if status == JobStatus.COMPLETED and not self.failed:
            self.failed = True
            raise StoreUnavailableError("Updating translation record failed: down")
        return self._store.update_status(request_id, status, **kwargs)


def test_store_outage_withholds_ack(service, broker, store, make_worker):
    translator = FlakyTranslator()
    worker = make_worker(translator, store=CompletionOutageStore(store))
    request_id = service.submit("hello", "en", "pt")["requestId"]

    assert worker.process_next(timeout=0) is True

    assert service.get(request_id)["status"] == "processing"
    assert broker.stats() == {"pending": 1, "delayed": 0, "processing": 0}
    assert broker.in_flight == 0

    assert worker.process_next(timeout=0) is True

    job = service.get(request_id)
    assert job["status"] == "completed"
    # The outage was not counted as a failed attempt
    assert job["attempts"] == 1
    assert translator.calls == 2


def test_expired_message_fails_job(store, broker, make_worker):
    translator = FlakyTranslator()
    job = store.create(TranslationJob("hello", "en", "pt"))
    broker.publish(
        QueueMessage(job.request_id, "hello", "en", "pt", expires_at=time.time() - 1)
    )

    assert make_worker(translator).process_next(timeout=0) is True

    failed = store.find_by_request_id(job.request_id)
    assert failed.status == JobStatus.FAILED
    assert failed.error_message == EXPIRED_MESSAGE
    assert translator.calls == 0


def test_message_without_record_is_dropped(broker, make_worker):
    broker.publish(QueueMessage("ghost", "hello", "en", "pt"))

    assert make_worker().process_next(timeout=0) is True
    assert _queue_is_empty(broker)


def test_start_runs_until_timeout(service, make_worker):
    request_id = service.submit("good morning", "en", "pt")["requestId"]
    worker = make_worker()

    worker.start(timeout=0.2)

    assert service.get(request_id)["translatedText"] == "bom dia"


class ContendedTranslator(Translator):
    """While translating, lets a second consumer sweep and poll the queue."""

    def __init__(self, rival):
        self.rival = rival
        self.seen = []

    def translate(self, text, source_language, target_language):
        self.rival.requeue_stale(300, now=time.time() + 301)
        self.seen.append(self.rival.get(timeout=0))
        return "olá"


def test_long_translation_is_not_redelivered(service, broker, redis_client, make_worker):
    rival = RedisBroker(redis_client, queue_name="test_queue", poll_interval=0.01)
    translator = ContendedTranslator(rival)
    request_id = service.submit("hello", "en", "pt")["requestId"]

    assert make_worker(translator, visibility_timeout=300).process_next(timeout=0) is True

    assert translator.seen == [None]
    assert service.get(request_id)["status"] == "completed"
    assert _queue_is_empty(broker)


def test_completion_after_competing_failure_is_acked(service, broker, store, make_worker):
    request_id = service.submit("hello", "en", "pt")["requestId"]

    class SettledElsewhere(Translator):
        def translate(self, text, source_language, target_language):
            # A redelivered copy already gave up on the job
            store.update_status(request_id, JobStatus.FAILED, error_message="gave up")
            return "olá"

    worker = make_worker(SettledElsewhere())

    assert worker.process_next(timeout=0) is True

    job = service.get(request_id)
    assert job["status"] == "failed"
    assert job["errorMessage"] == "gave up"
    assert broker.in_flight == 0
    assert _queue_is_empty(broker)
