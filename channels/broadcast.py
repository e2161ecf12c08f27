import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BroadcastMessage:
    topic: str
    data: Dict[str, Any]
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Subscription:
    """
    One subscriber's bounded queue. When full, the oldest message is dropped
    to make room; `dropped` counts how many were lost.
    """

    def __init__(self, maxsize: int) -> None:
        self.queue: queue.Queue[BroadcastMessage] = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, message: BroadcastMessage) -> None:
        while True:
            try:
                self.queue.put_nowait(message)
                return
            except queue.Full:
                try:
                    self.queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> BroadcastMessage | None:
        try:
            return self.queue.get(timeout=timeout) if timeout else self.queue.get_nowait()
        except queue.Empty:
            return None


class Broadcaster:
    """Fan-out of engine notifications (e.g. execution.completed) to dashboards."""

    def __init__(self, queue_size: int = 500) -> None:
        self._lock = threading.Lock()
        self._queue_size = queue_size
        self._subscribers: Set[Subscription] = set()

    def subscribe(self) -> Subscription:
        subscription = Subscription(self._queue_size)
        with self._lock:
            self._subscribers.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)

    def publish(self, topic: str, data: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return
        message = BroadcastMessage(topic=topic, data=data)
        for subscription in subscribers:
            before = subscription.dropped
            subscription.offer(message)
            if subscription.dropped != before:
                logger.debug("Subscriber queue full, dropped oldest message on %s", topic)
