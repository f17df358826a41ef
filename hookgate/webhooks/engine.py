"""Webhook processing engine: the per-request state machine.

Each request walks a fixed sequence of stages.  A stage either names the next
stage or returns the terminal ``ProcessResult``; the driver loop in
``WebhookEngine.process`` is the only place a result leaves the engine and the
only place ``completed`` is emitted, so every call yields exactly one result
and exactly one ``completed`` observation.

Stage order (security checks before business logic):

    NORMALIZE -> SIZE_GUARD -> DECODE -> CLASSIFY -> RESOLVE_SECRET -> VERIFY
    -> REPLAY_CHECK -> UNWRAP -> VALIDATE -> DISPATCH -> COMMIT -> COMPLETE

CLASSIFY runs before VERIFY: requests for event types without handlers answer
204 without their signature being checked.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Union

from hookgate.config import resolve_env_secret
from hookgate.webhooks.errors import HandlerTimeoutError, SchemaValidationError
from hookgate.webhooks.models import (
    ErrorContext,
    HandlerContext,
    ProcessResult,
    WebhookRequest,
    body_bytes,
    body_text,
    normalize_headers,
)
from hookgate.webhooks.observability import (
    BodyTooLargeEvent,
    CompletedEvent,
    EventUnhandledEvent,
    HandlerFailedEvent,
    HandlerStartedEvent,
    HandlerSucceededEvent,
    JsonParseFailedEvent,
    ObservationEmitter,
    ObservationEvent,
    ReplayDuplicateEvent,
    RequestReceivedEvent,
    SchemaValidationFailedEvent,
    SchemaValidationSucceededEvent,
    VerificationFailedEvent,
    VerificationSucceededEvent,
)
from hookgate.webhooks.provider import provider_payload, provider_replay_key

if TYPE_CHECKING:
    from hookgate.webhooks.builder import WebhookConfig

logger = logging.getLogger(__name__)

# Client-facing error messages; never include details of the failure
ERROR_PAYLOAD_TOO_LARGE = "Payload too large"
ERROR_INVALID_JSON = "Invalid JSON body"
ERROR_SIGNATURE = "Signature verification failed"
ERROR_DUPLICATE = "Duplicate delivery"
ERROR_REPLAY_UNAVAILABLE = "Replay protection unavailable"
ERROR_SCHEMA = "Schema validation failed"
ERROR_HANDLER = "Handler execution failed"
ERROR_INTERNAL = "Internal server error"

REASON_MISSING_SECRET = "Missing webhook secret"
REASON_VERIFY_RAISED = "Signature verification raised an error"


class Stage(StrEnum):
    NORMALIZE = "normalize"
    SIZE_GUARD = "size_guard"
    DECODE = "decode"
    CLASSIFY = "classify"
    RESOLVE_SECRET = "resolve_secret"
    VERIFY = "verify"
    REPLAY_CHECK = "replay_check"
    UNWRAP = "unwrap"
    VALIDATE = "validate"
    DISPATCH = "dispatch"
    COMMIT = "commit"
    COMPLETE = "complete"


StageOutcome = Union[Stage, ProcessResult]


def _elapsed_ms(since: float) -> float:
    return (time.perf_counter() - since) * 1000


def _failure(status: int, error: str, event_type: str | None = None) -> ProcessResult:
    return ProcessResult(status=status, event_type=event_type, body={"ok": False, "error": error})


@dataclass
class _Run:
    """Mutable state of one ``process()`` call.  Never shared between calls."""

    request: WebhookRequest
    start_time: float
    received_at: datetime
    headers: dict[str, str] = field(default_factory=dict)
    raw_body_bytes: int = 0
    body: Any = None
    event_type: str | None = None
    delivery_id: str | None = None
    secret: str | None = None
    replay_key: str | None = None
    payload: Any = None


async def _call_side_effect(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a user side-effect (sync or async); its failures never propagate."""
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning("Webhook side-effect %r raised, ignoring", callback, exc_info=True)


class WebhookEngine:
    """Runs the processing state machine for one immutable configuration.

    The engine holds no per-request state; many ``process()`` calls may run
    concurrently against the same instance.
    """

    def __init__(self, config: WebhookConfig) -> None:
        self._config = config
        self._provider = config.provider
        self._emitter = ObservationEmitter(config.observers)
        self._stages: Mapping[Stage, Callable[[_Run], Awaitable[StageOutcome]]] = {
            Stage.NORMALIZE: self._normalize,
            Stage.SIZE_GUARD: self._size_guard,
            Stage.DECODE: self._decode,
            Stage.CLASSIFY: self._classify,
            Stage.RESOLVE_SECRET: self._resolve_secret,
            Stage.VERIFY: self._verify,
            Stage.REPLAY_CHECK: self._replay_check,
            Stage.UNWRAP: self._unwrap,
            Stage.VALIDATE: self._validate,
            Stage.DISPATCH: self._dispatch,
            Stage.COMMIT: self._commit,
            Stage.COMPLETE: self._complete,
        }

    # -- driver ---------------------------------------------------------------

    async def process(self, request: WebhookRequest) -> ProcessResult:
        run = _Run(
            request=request,
            start_time=time.perf_counter(),
            received_at=datetime.now(timezone.utc),
        )
        stage: Stage = Stage.NORMALIZE
        try:
            while True:
                outcome = await self._stages[stage](run)
                if isinstance(outcome, ProcessResult):
                    result = outcome
                    break
                stage = outcome
        except Exception:
            logger.exception(
                "Webhook processing failed in stage %s (provider=%s event=%s)",
                stage,
                self._provider.name,
                run.event_type,
            )
            self._release(run)
            result = _failure(500, ERROR_INTERNAL, run.event_type)

        self._emit(
            run,
            CompletedEvent,
            status=result.status,
            duration_ms=_elapsed_ms(run.start_time),
            success=result.status == 200,
        )
        return result

    def _emit(self, run: _Run, event_cls: type[ObservationEvent], **fields: Any) -> None:
        if not self._emitter:
            return
        self._emitter.emit(
            event_cls(
                provider=self._provider.name,
                event_type=run.event_type,
                delivery_id=run.delivery_id,
                raw_body_bytes=run.raw_body_bytes,
                start_time=run.start_time,
                received_at=run.received_at,
                **fields,
            )
        )

    # -- stages ---------------------------------------------------------------

    async def _normalize(self, run: _Run) -> StageOutcome:
        run.headers = normalize_headers(run.request.headers)
        run.raw_body_bytes = len(body_bytes(run.request.raw_body))
        self._emit(run, RequestReceivedEvent)
        return Stage.SIZE_GUARD

    async def _size_guard(self, run: _Run) -> StageOutcome:
        limit = run.request.max_body_bytes
        if limit is None:
            limit = self._config.max_body_bytes
        if limit is not None and run.raw_body_bytes > limit:
            self._emit(run, BodyTooLargeEvent, max_body_bytes=limit)
            return _failure(413, ERROR_PAYLOAD_TOO_LARGE)
        return Stage.DECODE

    async def _decode(self, run: _Run) -> StageOutcome:
        try:
            run.body = json.loads(body_text(run.request.raw_body))
        except (ValueError, RecursionError) as exc:
            # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized
            # integer literals; RecursionError covers pathological nesting
            self._emit(run, JsonParseFailedEvent, error=str(exc))
            return _failure(400, ERROR_INVALID_JSON)
        return Stage.CLASSIFY

    async def _classify(self, run: _Run) -> StageOutcome:
        run.event_type = self._provider.get_event_type(run.headers, run.body)
        run.delivery_id = self._provider.get_delivery_id(run.headers)
        if not run.event_type:
            run.event_type = None
            self._emit(run, EventUnhandledEvent, reason="missing_event_type")
            return ProcessResult(status=204)
        if not self._config.handlers.get(run.event_type):
            self._emit(run, EventUnhandledEvent, reason="no_handlers")
            return ProcessResult(status=204, event_type=run.event_type)
        return Stage.RESOLVE_SECRET

    async def _resolve_secret(self, run: _Run) -> StageOutcome:
        if getattr(self._provider, "verification", "required") == "disabled":
            return Stage.REPLAY_CHECK
        run.secret = (
            run.request.secret
            or self._provider.secret
            or resolve_env_secret(self._provider.name)
        )
        if not run.secret:
            return await self._reject_signature(run, REASON_MISSING_SECRET, 0.0)
        return Stage.VERIFY

    async def _verify(self, run: _Run) -> StageOutcome:
        started = time.perf_counter()
        try:
            outcome = self._provider.verify(run.request.raw_body, run.headers, run.secret)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            # Only a literal True passes; anything else fails closed
            valid = outcome is True
            reason = ERROR_SIGNATURE
        except Exception:
            logger.warning("Provider %s verify() raised, rejecting", self._provider.name, exc_info=True)
            valid, reason = False, REASON_VERIFY_RAISED
        duration_ms = _elapsed_ms(started)
        if not valid:
            return await self._reject_signature(run, reason, duration_ms)
        self._emit(run, VerificationSucceededEvent, verify_duration_ms=duration_ms)
        return Stage.REPLAY_CHECK

    async def _reject_signature(self, run: _Run, reason: str, duration_ms: float) -> ProcessResult:
        self._emit(run, VerificationFailedEvent, reason=reason, verify_duration_ms=duration_ms)
        await _call_side_effect(self._config.verification_failed_handler, reason, dict(run.headers))
        return _failure(401, ERROR_SIGNATURE, run.event_type)

    async def _replay_check(self, run: _Run) -> StageOutcome:
        protection = self._config.replay
        if protection is None:
            return Stage.UNWRAP
        replay_key = provider_replay_key(self._provider, run.headers, run.body)
        if not replay_key:
            # No delivery id or nonce: cannot deduplicate, allow through
            return Stage.UNWRAP
        key = protection.key_for(self._provider.name, replay_key)
        try:
            reserved = protection.store.reserve(key)
        except Exception:
            logger.warning("Replay store reserve failed for %s", key, exc_info=True)
            return _failure(500, ERROR_REPLAY_UNAVAILABLE, run.event_type)
        if not reserved:
            self._emit(run, ReplayDuplicateEvent, replay_key=key)
            return _failure(409, ERROR_DUPLICATE, run.event_type)
        run.replay_key = key
        return Stage.UNWRAP

    async def _unwrap(self, run: _Run) -> StageOutcome:
        run.payload = provider_payload(self._provider, run.body)
        return Stage.VALIDATE

    async def _validate(self, run: _Run) -> StageOutcome:
        schema = self._config.schema_for(run.event_type)
        started = time.perf_counter()
        outcome = self._config.validator.validate(schema, run.payload)
        duration_ms = _elapsed_ms(started)
        if not outcome.ok:
            error = SchemaValidationError(run.event_type, outcome.errors)
            self._emit(run, SchemaValidationFailedEvent, error=error, validate_duration_ms=duration_ms)
            await _call_side_effect(
                self._config.error_handler,
                error,
                ErrorContext(event_type=run.event_type, delivery_id=run.delivery_id, payload=run.payload),
            )
            self._release(run)
            return _failure(400, ERROR_SCHEMA, run.event_type)
        run.payload = outcome.value
        self._emit(run, SchemaValidationSucceededEvent, validate_duration_ms=duration_ms)
        return Stage.DISPATCH

    async def _dispatch(self, run: _Run) -> StageOutcome:
        handlers = self._config.handlers[run.event_type]
        context = HandlerContext(
            event_type=run.event_type,
            provider=self._provider.name,
            delivery_id=run.delivery_id,
            headers=run.headers,
            raw_body=body_text(run.request.raw_body),
            received_at=run.received_at,
        )
        count = len(handlers)
        for index, handler in enumerate(handlers):
            self._emit(run, HandlerStartedEvent, handler_index=index, handler_count=count)
            started = time.perf_counter()
            try:
                await self._invoke(handler, index, run.payload, context)
            except Exception as exc:
                self._emit(
                    run,
                    HandlerFailedEvent,
                    handler_index=index,
                    handler_count=count,
                    handler_duration_ms=_elapsed_ms(started),
                    error=exc,
                )
                logger.warning(
                    "Webhook handler %d/%d failed: %s/%s",
                    index + 1,
                    count,
                    self._provider.name,
                    run.event_type,
                    exc_info=True,
                )
                await _call_side_effect(
                    self._config.error_handler,
                    exc,
                    ErrorContext(event_type=run.event_type, delivery_id=run.delivery_id, payload=run.payload),
                )
                self._release(run)
                return _failure(500, ERROR_HANDLER, run.event_type)
            self._emit(
                run,
                HandlerSucceededEvent,
                handler_index=index,
                handler_count=count,
                handler_duration_ms=_elapsed_ms(started),
            )
        return Stage.COMMIT

    async def _invoke(self, handler: Callable[..., Any], index: int, payload: Any, context: HandlerContext) -> None:
        result = handler(payload, context)
        if not inspect.isawaitable(result):
            return
        timeout = self._config.handler_timeout
        if timeout is None:
            await result
            return
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                await result
        except TimeoutError as exc:
            # A TimeoutError raised by the handler itself is a plain handler failure
            if deadline.expired():
                raise HandlerTimeoutError(timeout, index) from exc
            raise

    async def _commit(self, run: _Run) -> StageOutcome:
        if run.replay_key is not None and self._config.replay is not None:
            try:
                self._config.replay.store.commit(run.replay_key)
            except Exception:
                logger.warning("Replay store commit failed for %s", run.replay_key, exc_info=True)
        return Stage.COMPLETE

    async def _complete(self, run: _Run) -> StageOutcome:
        return ProcessResult(status=200, event_type=run.event_type, body={"ok": True})

    # -- helpers --------------------------------------------------------------

    def _release(self, run: _Run) -> None:
        if run.replay_key is None or self._config.replay is None:
            return
        key, run.replay_key = run.replay_key, None
        try:
            self._config.replay.store.release(key)
        except Exception:
            logger.warning("Replay store release failed for %s", key, exc_info=True)
