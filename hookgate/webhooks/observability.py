"""Webhook lifecycle observation.

Provides:
- Observation event types (one frozen dataclass per lifecycle stage)
- WebhookObserver: no-op base class with one ``on_<type>`` slot per event
- ObservationEmitter: ordered fan-out to observers that never fails
- AuditLogObserver: one WEBHOOK_AUDIT log line per completed request

Observers are synchronous and must be cheap; they run inline on the request
path.  Anything an observer raises is swallowed by the emitter: observability
never changes or aborts request processing.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Observation events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class ObservationEvent:
    """Fields shared by every observation event."""

    type: ClassVar[str] = "observation"

    provider: str
    raw_body_bytes: int
    start_time: float  # time.perf_counter() at request start
    received_at: datetime
    event_type: str | None = None
    delivery_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class RequestReceivedEvent(ObservationEvent):
    type: ClassVar[str] = "request_received"


@dataclass(frozen=True, kw_only=True)
class BodyTooLargeEvent(ObservationEvent):
    type: ClassVar[str] = "body_too_large"

    max_body_bytes: int


@dataclass(frozen=True, kw_only=True)
class JsonParseFailedEvent(ObservationEvent):
    type: ClassVar[str] = "json_parse_failed"

    error: str


@dataclass(frozen=True, kw_only=True)
class EventUnhandledEvent(ObservationEvent):
    type: ClassVar[str] = "event_unhandled"

    reason: str  # "missing_event_type" | "no_handlers"


@dataclass(frozen=True, kw_only=True)
class VerificationSucceededEvent(ObservationEvent):
    type: ClassVar[str] = "verification_succeeded"

    verify_duration_ms: float


@dataclass(frozen=True, kw_only=True)
class VerificationFailedEvent(ObservationEvent):
    type: ClassVar[str] = "verification_failed"

    reason: str
    verify_duration_ms: float


@dataclass(frozen=True, kw_only=True)
class ReplayDuplicateEvent(ObservationEvent):
    type: ClassVar[str] = "replay_duplicate"

    replay_key: str


@dataclass(frozen=True, kw_only=True)
class SchemaValidationSucceededEvent(ObservationEvent):
    type: ClassVar[str] = "schema_validation_succeeded"

    validate_duration_ms: float


@dataclass(frozen=True, kw_only=True)
class SchemaValidationFailedEvent(ObservationEvent):
    type: ClassVar[str] = "schema_validation_failed"

    error: BaseException
    validate_duration_ms: float


@dataclass(frozen=True, kw_only=True)
class HandlerStartedEvent(ObservationEvent):
    type: ClassVar[str] = "handler_started"

    handler_index: int
    handler_count: int


@dataclass(frozen=True, kw_only=True)
class HandlerSucceededEvent(ObservationEvent):
    type: ClassVar[str] = "handler_succeeded"

    handler_index: int
    handler_count: int
    handler_duration_ms: float


@dataclass(frozen=True, kw_only=True)
class HandlerFailedEvent(ObservationEvent):
    type: ClassVar[str] = "handler_failed"

    handler_index: int
    handler_count: int
    handler_duration_ms: float
    error: BaseException


@dataclass(frozen=True, kw_only=True)
class CompletedEvent(ObservationEvent):
    type: ClassVar[str] = "completed"

    status: int
    duration_ms: float
    success: bool


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------


class WebhookObserver:
    """Base observer.  Override only the slots you care about."""

    def on_request_received(self, event: RequestReceivedEvent) -> None:
        pass

    def on_body_too_large(self, event: BodyTooLargeEvent) -> None:
        pass

    def on_json_parse_failed(self, event: JsonParseFailedEvent) -> None:
        pass

    def on_event_unhandled(self, event: EventUnhandledEvent) -> None:
        pass

    def on_verification_succeeded(self, event: VerificationSucceededEvent) -> None:
        pass

    def on_verification_failed(self, event: VerificationFailedEvent) -> None:
        pass

    def on_replay_duplicate(self, event: ReplayDuplicateEvent) -> None:
        pass

    def on_schema_validation_succeeded(self, event: SchemaValidationSucceededEvent) -> None:
        pass

    def on_schema_validation_failed(self, event: SchemaValidationFailedEvent) -> None:
        pass

    def on_handler_started(self, event: HandlerStartedEvent) -> None:
        pass

    def on_handler_succeeded(self, event: HandlerSucceededEvent) -> None:
        pass

    def on_handler_failed(self, event: HandlerFailedEvent) -> None:
        pass

    def on_completed(self, event: CompletedEvent) -> None:
        pass


class ObservationEmitter:
    """Fan out observation events to observers, in registration order.

    An observer may be any object with ``on_<type>`` methods, or a mapping of
    slot name to callable (``{"on_completed": fn}``).
    """

    def __init__(self, observers: Iterable[Any] = ()) -> None:
        self._observers = tuple(observers)

    def __bool__(self) -> bool:
        return bool(self._observers)

    @staticmethod
    def _callback(observer: Any, slot: str) -> Any:
        if isinstance(observer, Mapping):
            return observer.get(slot)
        return getattr(observer, slot, None)

    def emit(self, event: ObservationEvent) -> None:
        slot = f"on_{event.type}"
        for observer in self._observers:
            callback = self._callback(observer, slot)
            if callback is None:
                continue
            try:
                result = callback(event)
                if inspect.iscoroutine(result):
                    # Observers are synchronous; never leave a coroutine unawaited
                    result.close()
                    logger.debug("Async observer callback %s ignored", slot)
            except Exception:
                logger.debug("Observer %r raised in %s", observer, slot, exc_info=True)


class AuditLogObserver(WebhookObserver):
    """Audit log for webhook activity: one line per completed request."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._log = log or logger
        self._level = level

    def on_completed(self, event: CompletedEvent) -> None:
        self._log.log(
            self._level,
            "WEBHOOK_AUDIT provider=%s event=%s id=%s status=%d duration_ms=%.1f",
            event.provider,
            event.event_type or "unknown",
            event.delivery_id or "",
            event.status,
            event.duration_ms,
        )

    def on_verification_failed(self, event: VerificationFailedEvent) -> None:
        self._log.warning(
            "Webhook signature rejected: provider=%s event=%s reason=%s",
            event.provider,
            event.event_type,
            event.reason,
        )
