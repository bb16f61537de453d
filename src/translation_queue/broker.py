import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from redis import Redis

from src.core.exceptions import (
    BrokerUnavailableError,
    PrefetchLimitError,
    redis_errors_as,
)

from .models import QueueMessage
from .redis_keys import QueueKeys, queue_key

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_NAME = "translation_queue"
DEFAULT_MESSAGE_TTL = 24 * 60 * 60
POLL_INTERVAL = 0.1


@dataclass
class Delivery:
    """A message handed to this consumer and not yet settled."""

    message: QueueMessage
    raw: str
    delivered_at: float


class RedisBroker:
    """
    Redis-backed durable message broker.

    Design rules:
    - Owns DELIVERY, not job state
    - Guarantees at-least-once delivery (PENDING → PROCESSING is atomic)
    - At most `prefetch` unsettled deliveries per broker instance
    - Messages are never lost: unacked deliveries are recovered by
      requeue_stale after the visibility timeout
    - A delivery kept alive with touch() is never recovered while its
      consumer keeps touching it
    """

    def __init__(
        self,
        redis_client: Redis,
        queue_name: str = DEFAULT_QUEUE_NAME,
        message_ttl: int = DEFAULT_MESSAGE_TTL,
        prefetch: int = 1,
        poll_interval: float = POLL_INTERVAL,
    ):
        if prefetch < 1:
            raise ValueError("prefetch must be at least 1")

        self.redis = redis_client
        self.queue_name = queue_name
        self.message_ttl = message_ttl
        self.prefetch = prefetch
        self.poll_interval = poll_interval

        self._inflight: Dict[str, Delivery] = {}

        self._pending = queue_key(queue_name, QueueKeys.PENDING)
        self._processing = queue_key(queue_name, QueueKeys.PROCESSING)
        self._leases = queue_key(queue_name, QueueKeys.LEASES)
        self._delayed = queue_key(queue_name, QueueKeys.DELAYED)

    def __enter__(self) -> "RedisBroker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def _heartbeat_key(self, raw: str) -> str:
        digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()
        return queue_key(self.queue_name, QueueKeys.HEARTBEAT, digest)

    def ping(self) -> bool:
        """
        Raises:
            BrokerUnavailableError: If Redis cannot be reached.
        """
        with redis_errors_as(BrokerUnavailableError, "Pinging translation queue"):
            return bool(self.redis.ping())

    # ------------------------------------------------------------------
    # PUBLISH
    # ------------------------------------------------------------------

    def publish(
        self,
        message: QueueMessage,
        dedup_key: Optional[str] = None,
        delay: float = 0.0,
    ) -> bool:
        """
        Publish a message, optionally delayed.

        Returns:
            True  -> message enqueued
            False -> duplicate of a message published within the TTL

        Raises:
            BrokerUnavailableError: If Redis cannot be reached.
        """
        raw = message.to_json()
        seen = queue_key(self.queue_name, QueueKeys.SEEN, dedup_key) if dedup_key else None

        def _publish(pipe) -> bool:
            if seen and pipe.exists(seen):
                return False

            pipe.multi()
            if seen:
                pipe.set(seen, 1, ex=self.message_ttl)
            if delay > 0:
                pipe.zadd(self._delayed, {raw: time.time() + delay})
            else:
                pipe.lpush(self._pending, raw)
            return True

        watches = (seen,) if seen else ()

        with redis_errors_as(BrokerUnavailableError, "Publishing translation job"):
            published = self.redis.transaction(_publish, *watches, value_from_callable=True)

        if published:
            logger.info(
                f"Broker: Published {message.request_id} "
                f"(attempt {message.attempts}/{message.max_attempts}, delay {delay:.1f}s)"
            )
        else:
            logger.info(f"Broker: Duplicate publish ignored for {dedup_key}")

        return published

    # ------------------------------------------------------------------
    # CONSUME
    # ------------------------------------------------------------------

    def get(self, timeout: float = 1.0) -> Optional[Delivery]:
        """
        Pull the next message, waiting up to `timeout` seconds.

        Raises:
            PrefetchLimitError: If this consumer already holds `prefetch`
                unsettled deliveries.
            BrokerUnavailableError: If Redis cannot be reached.
        """
        if len(self._inflight) >= self.prefetch:
            raise PrefetchLimitError(
                f"Prefetch limit of {self.prefetch} reached: settle the in-flight delivery first"
            )

        deadline = time.time() + timeout

        while True:
            delivery = self._get_once()
            if delivery:
                return delivery

            if time.time() >= deadline:
                return None

            time.sleep(self.poll_interval)

    def _get_once(self) -> Optional[Delivery]:
        """
        Single atomic delivery attempt.
        """
        with redis_errors_as(BrokerUnavailableError, "Fetching translation job"):
            self.promote_due()

            raw = self.redis.lmove(self._pending, self._processing, "RIGHT", "LEFT")
            if raw is None:
                return None

            delivered_at = time.time()
            self.redis.hset(self._leases, raw, delivered_at)

        try:
            message = QueueMessage.from_json(raw)
        except ValueError as e:
            logger.error(f"Broker: Dropping malformed message: {e}")
            with redis_errors_as(BrokerUnavailableError, "Dropping malformed message"):
                self._settle(raw, requeue=False)
            return None

        delivery = Delivery(message=message, raw=raw, delivered_at=delivered_at)
        self._inflight[raw] = delivery
        return delivery

    def consume(
        self,
        handler: Callable[[Delivery], None],
        max_messages: Optional[int] = None,
        idle_timeout: float = 1.0,
        stop_when_idle: bool = False,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> int:
        """
        Pull loop: fetch one message, hand it to `handler`, then fetch the next.

        The handler may ack/nack the delivery itself. A delivery left
        unsettled is acked when the handler returns and requeued when
        it raises.

        Returns:
            Number of messages handed to the handler.
        """
        handled = 0

        while not (should_stop and should_stop()):
            if max_messages is not None and handled >= max_messages:
                break

            delivery = self.get(timeout=idle_timeout)
            if delivery is None:
                if stop_when_idle:
                    break
                continue

            handled += 1
            try:
                handler(delivery)
            except Exception as e:
                logger.error(
                    f"Broker: Handler failed for {delivery.message.request_id}: {e}",
                    exc_info=True,
                )
                if delivery.raw in self._inflight:
                    self.nack(delivery, requeue=True)
                continue

            if delivery.raw in self._inflight:
                self.ack(delivery)

        return handled

    # ------------------------------------------------------------------
    # ACKNOWLEDGEMENT
    # ------------------------------------------------------------------

    def ack(self, delivery: Delivery) -> None:
        """
        Remove the message from the queue permanently.
        """
        with redis_errors_as(BrokerUnavailableError, "Acknowledging translation job"):
            self._settle(delivery.raw, requeue=False)

        self._inflight.pop(delivery.raw, None)
        logger.debug(f"Broker: Acked {delivery.message.request_id}")

    def nack(self, delivery: Delivery, requeue: bool = True, delay: float = 0.0) -> None:
        """
        Return the message to the queue unchanged (or drop it if requeue=False).

        The body, including its attempts counter, is not modified.
        """
        with redis_errors_as(BrokerUnavailableError, "Requeueing translation job"):
            self._settle(delivery.raw, requeue=requeue, delay=delay)

        self._inflight.pop(delivery.raw, None)
        logger.info(
            f"Broker: Nacked {delivery.message.request_id} "
            f"({'requeued' if requeue else 'dropped'}, delay {delay:.1f}s)"
        )

    def abandon(self, delivery: Delivery) -> None:
        """
        Forget a delivery locally without touching Redis.

        Used when Redis itself is unreachable; the message stays in
        PROCESSING and requeue_stale returns it after the visibility timeout.
        """
        self._inflight.pop(delivery.raw, None)
        logger.warning(
            f"Broker: Abandoned {delivery.message.request_id}, "
            f"it will be recovered after the visibility timeout"
        )

    # ------------------------------------------------------------------
    # LEASE RENEWAL
    # ------------------------------------------------------------------

    def touch(self, delivery: Delivery, hold_for: float) -> bool:
        """
        Renew the lease on an in-flight delivery.

        Rewrites the lease timestamp and marks the delivery as held for the
        next `hold_for` seconds. requeue_stale skips held deliveries, so a
        consumer calling this more often than `hold_for` keeps its message
        however long processing takes.

        Returns:
            False if the delivery was already settled or recovered.
        """
        with redis_errors_as(BrokerUnavailableError, "Renewing translation job lease"):
            if not self.redis.hexists(self._leases, delivery.raw):
                return False

            pipe = self.redis.pipeline()
            pipe.hset(self._leases, delivery.raw, time.time())
            pipe.set(self._heartbeat_key(delivery.raw), 1, px=max(1, int(hold_for * 1000)))
            pipe.execute()

        logger.debug(f"Broker: Renewed lease on {delivery.message.request_id}")
        return True

    def release(self, delivery: Delivery) -> None:
        """
        Stop holding a delivery. From here on only its lease age counts.
        """
        with redis_errors_as(BrokerUnavailableError, "Releasing translation job lease"):
            self.redis.delete(self._heartbeat_key(delivery.raw))

    def _settle(self, raw: str, requeue: bool, delay: float = 0.0) -> bool:
        """
        Atomically take `raw` out of PROCESSING, optionally putting it back.

        Returns False if another consumer already recovered the message.
        """

        def _move(pipe) -> bool:
            held = raw in pipe.lrange(self._processing, 0, -1)

            pipe.multi()
            pipe.hdel(self._leases, raw)
            pipe.delete(self._heartbeat_key(raw))
            if not held:
                return False

            pipe.lrem(self._processing, 1, raw)
            if requeue and delay > 0:
                pipe.zadd(self._delayed, {raw: time.time() + delay})
            elif requeue:
                pipe.rpush(self._pending, raw)
            return True

        return self.redis.transaction(_move, self._processing, value_from_callable=True)

    # ------------------------------------------------------------------
    # DELAYED + STALE REQUEUE
    # ------------------------------------------------------------------

    def promote_due(self, now: Optional[float] = None) -> int:
        """
        Move delayed messages whose ready time has passed into PENDING.
        """
        now = now if now is not None else time.time()
        moved = 0

        with redis_errors_as(BrokerUnavailableError, "Promoting delayed translation jobs"):
            for raw in self.redis.zrangebyscore(self._delayed, "-inf", now):

                def _promote(pipe, raw=raw) -> bool:
                    if pipe.zscore(self._delayed, raw) is None:
                        return False
                    pipe.multi()
                    pipe.zrem(self._delayed, raw)
                    pipe.lpush(self._pending, raw)
                    return True

                if self.redis.transaction(_promote, self._delayed, value_from_callable=True):
                    moved += 1

        return moved

    def requeue_stale(self, visibility_timeout: float, now: Optional[float] = None) -> int:
        """
        Requeue deliveries held longer than `visibility_timeout`.

        Covers consumers that crashed before acking. Deliveries still held
        through touch() are skipped whatever their lease age. The attempts
        counter is left untouched: a crash is not a translation failure.
        """
        now = now if now is not None else time.time()
        moved = 0

        with redis_errors_as(BrokerUnavailableError, "Requeueing stale translation jobs"):
            leases = self.redis.hgetall(self._leases)

            # A crash between LMOVE and HSET leaves a message without a lease
            for raw in self.redis.lrange(self._processing, 0, -1):
                if raw not in leases:
                    self.redis.hsetnx(self._leases, raw, now)

            for raw, started in leases.items():
                if now - float(started) <= visibility_timeout:
                    continue

                if self.redis.exists(self._heartbeat_key(raw)):
                    logger.debug("Broker: Skipping stale-looking delivery with a live holder")
                    continue

                if self._settle(raw, requeue=True):
                    moved += 1
                    self._inflight.pop(raw, None)

        if moved:
            logger.warning(f"Broker: Requeued {moved} stale deliveries")
        return moved

    # ------------------------------------------------------------------
    # STATS
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        """Return current queue stats."""
        with redis_errors_as(BrokerUnavailableError, "Reading queue stats"):
            pipe = self.redis.pipeline()
            pipe.llen(self._pending)
            pipe.zcard(self._delayed)
            pipe.llen(self._processing)
            pending, delayed, processing = pipe.execute()

        return {
            "pending": pending,
            "delayed": delayed,
            "processing": processing,
        }

    def purge(self) -> int:
        """
        Drop every message waiting for delivery. In-flight messages are kept.
        """
        with redis_errors_as(BrokerUnavailableError, "Purging translation queue"):
            pipe = self.redis.pipeline()
            pipe.llen(self._pending)
            pipe.zcard(self._delayed)
            pipe.delete(self._pending, self._delayed)
            pending, delayed, _ = pipe.execute()

        removed = pending + delayed
        logger.warning(f"Broker: Purged {removed} messages from {self.queue_name}")
        return removed

    def close(self) -> None:
        if self._inflight:
            logger.warning(
                f"Broker: Closing with {len(self._inflight)} unsettled deliveries; "
                f"they will be redelivered"
            )
            self._inflight.clear()
        self.redis.close()
