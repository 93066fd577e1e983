"""In-process event bus for reservation lifecycle events.

Events are published after the reservation transaction commits. Handlers are
best-effort: a failing handler is retried, then dead-lettered, and never
affects the committed reservation.
"""
import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import settings


logger = logging.getLogger("roomkeeper.events")

RESERVATION_CONFIRMED = "reservation.confirmed"
RESERVATION_CANCELLED = "reservation.cancelled"


@dataclass(frozen=True)
class EventEnvelope:
    version: str
    source: str
    type: str
    idempotency_key: str
    timestamp: int
    correlation_id: str
    payload: Dict[str, Any]

    def __post_init__(self) -> None:
        if self.version != "v1":
            raise ValueError("Unsupported envelope version")
        if not self.source or not self.type:
            raise ValueError("Envelope requires source and type")
        if not self.idempotency_key:
            raise ValueError("Envelope requires idempotency_key")
        if not self.correlation_id:
            raise ValueError("Envelope requires correlation_id")


@dataclass
class PublishResult:
    status: str
    correlation_id: str
    envelope: EventEnvelope


def reservation_envelope(event_type: str, reservation_id: int, payload: Dict[str, Any]) -> EventEnvelope:
    """Build the envelope for a reservation event.

    The idempotency key is the event type plus the reservation id, so each
    lifecycle transition is delivered once.
    """
    return EventEnvelope(
        version="v1",
        source="reservations",
        type=event_type,
        idempotency_key=f"{event_type}:{reservation_id}",
        timestamp=int(time.time()),
        correlation_id=str(uuid.uuid4()),
        payload=payload,
    )


class EventBus:
    def __init__(self, ttl_seconds: Optional[int] = None, max_attempts: int = 3) -> None:
        self._handlers: Dict[str, List[Callable[[EventEnvelope], Any]]] = {}
        self._idempotency: Dict[str, float] = {}
        self._deadletters: List[Dict[str, Any]] = []
        self._ttl_seconds = ttl_seconds or settings.IDEMPOTENCY_TTL_SECONDS
        self._max_attempts = max_attempts
        self._max_deadletters = 200

    def subscribe(self, event_type: str, handler: Callable[[EventEnvelope], Any]) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    async def publish(self, envelope: EventEnvelope) -> PublishResult:
        self._purge_expired()

        if self._is_duplicate(envelope.idempotency_key):
            return PublishResult(status="duplicate", correlation_id=envelope.correlation_id, envelope=envelope)

        self._mark_processed(envelope.idempotency_key)

        failures = []
        for handler in self._handlers.get(envelope.type, []):
            success, error = await self._dispatch_with_retry(handler, envelope)
            if not success:
                failures.append(error)
                self._record_deadletter(envelope, handler, error)

        status = "failed" if failures else "processed"
        return PublishResult(status=status, correlation_id=envelope.correlation_id, envelope=envelope)

    def get_deadletters(self) -> List[Dict[str, Any]]:
        return list(self._deadletters)

    def _purge_expired(self) -> None:
        now = time.time()
        expired_keys = [key for key, exp in self._idempotency.items() if exp <= now]
        for key in expired_keys:
            self._idempotency.pop(key, None)

    def _is_duplicate(self, key: str) -> bool:
        exp = self._idempotency.get(key)
        return exp is not None and exp > time.time()

    def _mark_processed(self, key: str) -> None:
        self._idempotency[key] = time.time() + self._ttl_seconds

    async def _dispatch_with_retry(self, handler: Callable[[EventEnvelope], Any], envelope: EventEnvelope) -> tuple[bool, Optional[Exception]]:
        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(envelope)
                else:
                    handler(envelope)
                return True, None
            except Exception as exc:  # pylint: disable=broad-except
                last_error = exc
                logger.warning(
                    "Event handler failed",
                    extra={"event_type": envelope.type, "attempt": attempt, "error": str(exc)}
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(0.1 * (2 ** (attempt - 1)))
        return False, last_error

    def _record_deadletter(self, envelope: EventEnvelope, handler: Callable[[EventEnvelope], Any], error: Optional[Exception]) -> None:
        entry = {
            "envelope": envelope,
            "handler": getattr(handler, "__name__", "handler"),
            "error": str(error),
            "timestamp": int(time.time()),
        }
        self._deadletters.append(entry)
        if len(self._deadletters) > self._max_deadletters:
            self._deadletters = self._deadletters[-self._max_deadletters :]


def log_reservation_event(envelope: EventEnvelope) -> None:
    """Default subscriber: record the lifecycle event in the log."""
    logger.info("EVENT %s", envelope.type, extra={"payload": envelope.payload})


bus = EventBus()
bus.subscribe(RESERVATION_CONFIRMED, log_reservation_event)
bus.subscribe(RESERVATION_CANCELLED, log_reservation_event)
