"""Fluent, immutable webhook builder.

Every configuration call returns a new builder; the receiver is never
modified.  A partially configured builder can therefore be shared and
specialised without the branches interfering:

    base = github(secret=SECRET).observe(stats.observer)
    deploys = base.event("push", on_push)
    reviews = base.event("pull_request", on_pr)    # ``base`` still has no handlers
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any

from hookgate.config import settings
from hookgate.webhooks.engine import WebhookEngine
from hookgate.webhooks.events import EventDefinition
from hookgate.webhooks.models import (
    ErrorHandler,
    EventHandler,
    ProcessResult,
    RawBody,
    RawHeaders,
    VerificationFailedHandler,
    WebhookRequest,
)
from hookgate.webhooks.provider import Provider, create_provider
from hookgate.webhooks.replay import ReplayProtection, ReplayStore
from hookgate.webhooks.validation import SchemaValidator, default_validator

logger = logging.getLogger(__name__)


def _frozen_map(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class WebhookConfig:
    """Immutable configuration consumed by ``WebhookEngine``."""

    provider: Provider
    handlers: Mapping[str, tuple[EventHandler, ...]] = field(default_factory=dict)
    event_schemas: Mapping[str, Any] = field(default_factory=dict)
    error_handler: ErrorHandler | None = None
    verification_failed_handler: VerificationFailedHandler | None = None
    observers: tuple[Any, ...] = ()
    replay: ReplayProtection | None = None
    max_body_bytes: int | None = None
    handler_timeout: float | None = None
    validator: SchemaValidator = default_validator

    def __post_init__(self) -> None:
        object.__setattr__(self, "handlers", _frozen_map(self.handlers))
        object.__setattr__(self, "event_schemas", _frozen_map(self.event_schemas))

    def schema_for(self, event_type: str) -> Any:
        """Schema from a registered event definition, else the provider's map."""
        if event_type in self.event_schemas:
            return self.event_schemas[event_type]
        return self.provider.schemas.get(event_type)


class WebhookBuilder:
    """Register handlers for one provider and process its requests."""

    def __init__(self, provider: Provider, *, config: WebhookConfig | None = None) -> None:
        if config is None:
            config = WebhookConfig(
                provider=provider,
                max_body_bytes=settings.max_body_bytes,
                handler_timeout=settings.handler_timeout_seconds,
            )
        self._config = config

    def _derive(self, **changes: Any) -> WebhookBuilder:
        return WebhookBuilder(self._config.provider, config=dataclasses.replace(self._config, **changes))

    @property
    def provider(self) -> Provider:
        return self._config.provider

    @property
    def config(self) -> WebhookConfig:
        return self._config

    @cached_property
    def _engine(self) -> WebhookEngine:
        return WebhookEngine(self._config)

    # -- configuration ----------------------------------------------------------

    def event(self, event: str | EventDefinition, handler: EventHandler) -> WebhookBuilder:
        """Register *handler* for an event name or ``EventDefinition``.

        Handlers for the same event run in registration order.  Registering a
        definition makes its schema the one the payload is validated against.
        """
        if not callable(handler):
            raise TypeError("handler must be callable")

        schemas = dict(self._config.event_schemas)
        if isinstance(event, EventDefinition):
            if event.provider is not None and event.provider != self.provider.name:
                raise ValueError(
                    f"Event {event.name!r} belongs to provider {event.provider!r}, "
                    f"not {self.provider.name!r}"
                )
            event_type = event.name
            if event.schema is not None:
                schemas[event_type] = event.schema
        else:
            event_type = event
        if not event_type:
            raise ValueError("Event type must not be empty")

        handlers = dict(self._config.handlers)
        handlers[event_type] = (*handlers.get(event_type, ()), handler)
        return self._derive(handlers=handlers, event_schemas=schemas)

    def on_error(self, handler: ErrorHandler) -> WebhookBuilder:
        """Side-effect for schema validation failures and handler exceptions."""
        return self._derive(error_handler=handler)

    def on_verification_failed(self, handler: VerificationFailedHandler) -> WebhookBuilder:
        """Side-effect for rejected signatures; receives ``(reason, headers)``."""
        return self._derive(verification_failed_handler=handler)

    def observe(self, observer: Any | Iterable[Any]) -> WebhookBuilder:
        """Append one observer, or a list of observers, to the observer chain."""
        if isinstance(observer, (list, tuple)):
            added = tuple(observer)
        else:
            added = (observer,)
        return self._derive(observers=self._config.observers + added)

    def with_replay_protection(
        self,
        store: ReplayStore,
        *,
        key_prefix: str | None = None,
    ) -> WebhookBuilder:
        """Reject a second delivery carrying an already-processed replay key (409)."""
        return self._derive(replay=ReplayProtection(store=store, key_prefix=key_prefix))

    def max_body_bytes(self, limit: int | None) -> WebhookBuilder:
        if limit is not None and limit < 0:
            raise ValueError("max_body_bytes must be >= 0")
        return self._derive(max_body_bytes=limit)

    def handler_timeout(self, seconds: float | None) -> WebhookBuilder:
        """Deadline for each awaitable handler; a timeout counts as a handler failure."""
        if seconds is not None and seconds <= 0:
            raise ValueError("handler timeout must be > 0")
        return self._derive(handler_timeout=seconds)

    def with_validator(self, validator: SchemaValidator) -> WebhookBuilder:
        return self._derive(validator=validator)

    # -- processing -------------------------------------------------------------

    async def process(self, request: WebhookRequest) -> ProcessResult:
        """Process one webhook request.  Never raises for request-level failures."""
        return await self._engine.process(request)

    async def handle(
        self,
        headers: RawHeaders,
        raw_body: RawBody,
        *,
        secret: str | None = None,
        max_body_bytes: int | None = None,
    ) -> ProcessResult:
        """Keyword convenience wrapper around ``process``."""
        return await self.process(
            WebhookRequest(headers=headers, raw_body=raw_body, secret=secret, max_body_bytes=max_body_bytes)
        )


def create_webhook(provider: Provider) -> WebhookBuilder:
    """Create a webhook builder for *provider*."""
    return WebhookBuilder(provider)


def custom_webhook(**provider_config: Any) -> WebhookBuilder:
    """Create a provider from keyword configuration and wrap it in a builder.

    Accepts the keyword arguments of ``create_provider``.
    """
    return WebhookBuilder(create_provider(**provider_config))
