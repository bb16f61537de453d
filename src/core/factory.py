import logging

from redis import Redis

from src.core.config import Settings
from src.jobs.store import RedisJobStore
from src.producer.producer import TranslationProducer
from src.producer.service import TranslationService
from src.translation_queue.broker import RedisBroker
from src.translation_queue.retry_policy import RetryPolicy
from src.worker.http_translator import HttpTranslator
from src.worker.translator import DictionaryTranslator, Translator
from src.worker.worker import TranslationWorker

logger = logging.getLogger(__name__)


def create_redis(url: str) -> Redis:
    return Redis.from_url(url, decode_responses=True)


def build_broker(settings: Settings) -> RedisBroker:
    return RedisBroker(
        create_redis(settings.REDIS_URL),
        queue_name=settings.QUEUE_NAME,
        message_ttl=settings.MESSAGE_TTL_SECONDS,
        prefetch=1,
        poll_interval=settings.POLL_INTERVAL,
    )


def build_store(settings: Settings) -> RedisJobStore:
    return RedisJobStore(create_redis(settings.store_redis_url), prefix=settings.STORE_KEY_PREFIX)


def build_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        strategy=settings.RETRY_STRATEGY,
        base_delay=settings.RETRY_BASE_DELAY,
        max_delay=settings.RETRY_MAX_DELAY,
    )


def build_translator(settings: Settings) -> Translator:
    if settings.TRANSLATOR_BACKEND == "http":
        logger.info(f"Using HTTP translator at {settings.TRANSLATOR_URL}")
        return HttpTranslator(
            base_url=settings.TRANSLATOR_URL,
            api_key=settings.TRANSLATOR_API_KEY,
            timeout=settings.TRANSLATOR_TIMEOUT,
        )
    return DictionaryTranslator(simulated_delay=settings.SIMULATED_DELAY)


def build_service(settings: Settings, store: RedisJobStore, broker: RedisBroker) -> TranslationService:
    producer = TranslationProducer(
        store,
        broker,
        max_attempts=settings.MAX_ATTEMPTS,
        message_ttl=settings.MESSAGE_TTL_SECONDS,
        max_text_length=settings.MAX_TEXT_LENGTH,
    )
    return TranslationService(store, broker, producer)


def build_worker(
    settings: Settings,
    store: RedisJobStore,
    broker: RedisBroker,
    handle_signals: bool = True,
) -> TranslationWorker:
    return TranslationWorker(
        broker,
        store,
        build_translator(settings),
        policy=build_policy(settings),
        poll_interval=settings.POLL_INTERVAL,
        store_retry_delay=settings.STORE_RETRY_DELAY,
        visibility_timeout=settings.VISIBILITY_TIMEOUT,
        stale_check_interval=settings.STALE_CHECK_INTERVAL,
        handle_signals=handle_signals,
    )
