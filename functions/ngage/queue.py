"""
Delivery queue used between the notification services and the worker.

Each entry carries the delivery id and the number of attempts already made,
so the worker can retry without reading the delivery back from the database.
Entries that run out of attempts are parked on a dead-letter list where an
operator can inspect or replay them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_KEY = "ngage:deliveries"


@dataclass
class QueuedDelivery:
    delivery_id: str
    attempt: int = 0
    last_error: Optional[str] = None
    dead_lettered_at: Optional[str] = None

    def encode(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def decode(cls, raw: bytes | str) -> "QueuedDelivery":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            # Bare ids pushed by older producers.
            return cls(delivery_id=raw)
        return cls(
            delivery_id=data["delivery_id"],
            attempt=int(data.get("attempt", 0)),
            last_error=data.get("last_error"),
            dead_lettered_at=data.get("dead_lettered_at"),
        )

    def next_attempt(self, error: Optional[str] = None) -> "QueuedDelivery":
        return QueuedDelivery(self.delivery_id, self.attempt + 1, error)


class DeliveryQueue(Protocol):
    def enqueue(self, delivery_id: str) -> None:
        ...

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueuedDelivery]:
        ...

    def requeue(self, entry: QueuedDelivery) -> None:
        ...

    def dead_letter(self, entry: QueuedDelivery) -> None:
        ...

    def dead_letters(self, limit: int = 100) -> List[QueuedDelivery]:
        ...

    def replay_dead_letters(self) -> int:
        ...


def _stamp(entry: QueuedDelivery) -> QueuedDelivery:
    entry.dead_lettered_at = datetime.now(timezone.utc).isoformat()
    return entry


@dataclass
class InMemoryDeliveryQueue:
    """FIFO queue for tests and local runs."""

    entries: list[QueuedDelivery] = field(default_factory=list)
    dead: list[QueuedDelivery] = field(default_factory=list)

    @property
    def items(self) -> list[str]:
        """Pending delivery ids, oldest first."""
        return [e.delivery_id for e in self.entries]

    def enqueue(self, delivery_id: str) -> None:
        self.entries.append(QueuedDelivery(delivery_id))

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueuedDelivery]:
        if not self.entries:
            return None
        return self.entries.pop(0)

    def requeue(self, entry: QueuedDelivery) -> None:
        self.entries.append(entry)

    def dead_letter(self, entry: QueuedDelivery) -> None:
        self.dead.append(_stamp(entry))

    def dead_letters(self, limit: int = 100) -> List[QueuedDelivery]:
        return list(reversed(self.dead))[:limit]

    def replay_dead_letters(self) -> int:
        replayed = [QueuedDelivery(e.delivery_id) for e in self.dead]
        self.entries.extend(replayed)
        self.dead.clear()
        return len(replayed)


@dataclass
class RedisDeliveryQueue:
    """
    Redis lists: producers RPUSH onto ``queue_key`` and the worker pops from
    the head. Exhausted entries are LPUSHed onto ``<queue_key>:dead`` so the
    newest failure is read first.
    """

    url: str
    queue_key: str = DEFAULT_QUEUE_KEY
    dead_letter_key: Optional[str] = None

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)
        if self.dead_letter_key is None:
            self.dead_letter_key = f"{self.queue_key}:dead"

    def enqueue(self, delivery_id: str) -> None:
        self.client.rpush(self.queue_key, QueuedDelivery(delivery_id).encode())

    def requeue(self, entry: QueuedDelivery) -> None:
        self.client.rpush(self.queue_key, entry.encode())

    def dead_letter(self, entry: QueuedDelivery) -> None:
        self.client.lpush(self.dead_letter_key, _stamp(entry).encode())

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueuedDelivery]:
        try:
            if block:
                popped = self.client.blpop(self.queue_key, timeout=timeout or 0)
                raw = popped[1] if popped else None
            else:
                raw = self.client.lpop(self.queue_key)
        except redis_exceptions.ConnectionError:
            logger.warning("Lost connection to Redis; reconnecting")
            self.client = redis.Redis.from_url(self.url)
            return None
        return QueuedDelivery.decode(raw) if raw is not None else None

    def dead_letters(self, limit: int = 100) -> List[QueuedDelivery]:
        raw_entries = self.client.lrange(self.dead_letter_key, 0, limit - 1)
        return [QueuedDelivery.decode(raw) for raw in raw_entries]

    def replay_dead_letters(self) -> int:
        replayed = 0
        while True:
            raw = self.client.rpop(self.dead_letter_key)
            if raw is None:
                return replayed
            entry = QueuedDelivery.decode(raw)
            self.enqueue(entry.delivery_id)
            replayed += 1
