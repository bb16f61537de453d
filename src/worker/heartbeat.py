import logging
import threading

from src.core.exceptions import BrokerUnavailableError
from src.translation_queue.broker import Delivery, RedisBroker

logger = logging.getLogger(__name__)


class LeaseHeartbeat:
    """
    Keeps a delivery's lease alive while it is being processed.

    Usage:
        with LeaseHeartbeat(broker, delivery, interval=100, hold_for=300):
            translator.translate(...)

    The lease is renewed once on entry and then every `interval` seconds
    from a background thread. On exit the thread is stopped and the hold
    released, so a consumer that dies mid-translation is recovered
    `hold_for` seconds after its last renewal.
    """

    def __init__(self, broker: RedisBroker, delivery: Delivery, interval: float, hold_for: float):
        if interval >= hold_for:
            raise ValueError("heartbeat interval must be shorter than the hold period")

        self.broker = broker
        self.delivery = delivery
        self.interval = interval
        self.hold_for = hold_for

        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"lease-{delivery.message.request_id}",
            daemon=True,
        )

    def __enter__(self) -> "LeaseHeartbeat":
        self._touch()
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._stopped.set()
        self._thread.join()

        try:
            self.broker.release(self.delivery)
        except BrokerUnavailableError as e:
            logger.warning(f"Heartbeat: Could not release {self.delivery.message.request_id}: {e}")

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            self._touch()

    def _touch(self) -> None:
        try:
            if not self.broker.touch(self.delivery, self.hold_for):
                logger.warning(
                    f"Heartbeat: Lease on {self.delivery.message.request_id} already lost"
                )
        except BrokerUnavailableError as e:
            # Next beat tries again; the hold expires on its own if Redis stays down
            logger.warning(f"Heartbeat: Renewal failed for {self.delivery.message.request_id}: {e}")
