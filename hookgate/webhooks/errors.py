"""Exceptions raised by the webhook engine and its collaborators."""

from __future__ import annotations

from typing import Any


class WebhookError(Exception):
    """Base class for hookgate errors."""


class ProviderConfigError(WebhookError, ValueError):
    """A provider was constructed with an invalid configuration."""


class ReplayStoreError(WebhookError):
    """The replay store could not complete an operation."""


class HandlerTimeoutError(WebhookError, TimeoutError):
    """A handler did not finish within the configured deadline."""

    def __init__(self, timeout: float, handler_index: int) -> None:
        super().__init__(f"Handler {handler_index} timed out after {timeout:g}s")
        self.timeout = timeout
        self.handler_index = handler_index


class SchemaValidationError(WebhookError):
    """A payload did not match the schema registered for its event type.

    ``errors`` carries the validator's structured error list (pydantic's
    ``ValidationError.errors()`` shape for the default validator).
    """

    def __init__(self, event_type: str, errors: list[dict[str, Any]]) -> None:
        super().__init__(f"Payload for {event_type!r} failed schema validation ({len(errors)} errors)")
        self.event_type = event_type
        self.errors = errors
