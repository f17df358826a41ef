"""Webhook ingestion: verification, replay protection, validation and dispatch.

Each inbound request is signature-verified, optionally deduplicated,
schema-validated and dispatched to handlers in registration order.
"""

from hookgate.webhooks.builder import WebhookBuilder, WebhookConfig, create_webhook, custom_webhook
from hookgate.webhooks.errors import (
    HandlerTimeoutError,
    ProviderConfigError,
    ReplayStoreError,
    SchemaValidationError,
    WebhookError,
)
from hookgate.webhooks.events import EventDefinition, define_event
from hookgate.webhooks.models import (
    ErrorContext,
    HandlerContext,
    ProcessResult,
    WebhookRequest,
    normalize_headers,
)
from hookgate.webhooks.observability import AuditLogObserver, ObservationEmitter, WebhookObserver
from hookgate.webhooks.provider import Provider, WebhookProvider, create_provider, unwrap_envelope
from hookgate.webhooks.replay import InMemoryReplayStore, RedisReplayStore, ReplayStore
from hookgate.webhooks.stats import WebhookStats
from hookgate.webhooks.validation import PydanticValidator, SchemaValidator, ValidationOutcome
from hookgate.webhooks.verification import create_hmac_verifier, secure_compare, verify_hmac

__all__ = [
    "AuditLogObserver",
    "ErrorContext",
    "EventDefinition",
    "HandlerContext",
    "HandlerTimeoutError",
    "InMemoryReplayStore",
    "ObservationEmitter",
    "ProcessResult",
    "Provider",
    "ProviderConfigError",
    "PydanticValidator",
    "RedisReplayStore",
    "ReplayStore",
    "ReplayStoreError",
    "SchemaValidationError",
    "SchemaValidator",
    "ValidationOutcome",
    "WebhookBuilder",
    "WebhookConfig",
    "WebhookError",
    "WebhookObserver",
    "WebhookProvider",
    "WebhookRequest",
    "WebhookStats",
    "create_hmac_verifier",
    "create_provider",
    "create_webhook",
    "custom_webhook",
    "define_event",
    "normalize_headers",
    "secure_compare",
    "unwrap_envelope",
    "verify_hmac",
]
