import fakeredis
import pytest

from src.core.exceptions import TranslationError
from src.jobs.store import RedisJobStore
from src.producer.producer import TranslationProducer
from src.producer.service import TranslationService
from src.translation_queue.broker import RedisBroker
from src.translation_queue.retry_policy import RetryPolicy
from src.worker.translator import DictionaryTranslator, Translator
from src.worker.worker import TranslationWorker


class FlakyTranslator(Translator):
    """Fails `failures` times, then delegates to the dictionary translator."""

    def __init__(self, failures: int = 0, error: Exception = None):
        self.failures = failures
        self.error = error or TranslationError("Translation service unavailable")
        self.calls = 0
        self._delegate = DictionaryTranslator()

    def translate(self, text, source_language, target_language):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self._delegate.translate(text, source_language, target_language)


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def store(redis_client):
    return RedisJobStore(redis_client, prefix="test")


@pytest.fixture
def broker(redis_client):
    return RedisBroker(redis_client, queue_name="test_queue", poll_interval=0.01)


@pytest.fixture
def policy():
    # No waiting between attempts so retries are immediately deliverable
    return RetryPolicy(strategy="fixed", base_delay=0, max_delay=0)


@pytest.fixture
def producer(store, broker):
    return TranslationProducer(store, broker, max_attempts=3, message_ttl=3600)


@pytest.fixture
def service(store, broker, producer):
    return TranslationService(store, broker, producer)


@pytest.fixture
def make_worker(broker, store, policy):
    def _make(translator=None, **kwargs):
        kwargs.setdefault("policy", policy)
        kwargs.setdefault("store_retry_delay", 0)
        kwargs.setdefault("poll_interval", 0.01)
        return TranslationWorker(
            kwargs.pop("broker", broker),
            kwargs.pop("store", store),
            translator or FlakyTranslator(),
            handle_signals=False,
            **kwargs,
        )

    return _make
