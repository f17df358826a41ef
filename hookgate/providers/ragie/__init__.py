"""Ragie webhooks.

Ragie wraps every event in an envelope ``{"type", "payload", "nonce"}`` and
signs the raw body with HMAC-SHA256 (hex) in ``X-Signature``.  The envelope is
unwrapped before validation, with the nonce merged onto the payload; the nonce
is also the replay key.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from hookgate.providers.ragie.schemas import RAGIE_SCHEMAS
from hookgate.webhooks.builder import WebhookBuilder
from hookgate.webhooks.provider import WebhookProvider, create_provider, unwrap_envelope
from hookgate.webhooks.verification import create_hmac_verifier

PROVIDER_NAME = "ragie"

verify_ragie = create_hmac_verifier(algorithm="sha256", signature_header="x-signature")


def _event_type(headers: Mapping[str, str], body: Any = None) -> str | None:
    if isinstance(body, dict) and isinstance(body.get("type"), str):
        return body["type"]
    return None


def _delivery_id(headers: Mapping[str, str]) -> str | None:
    return headers.get("x-ragie-delivery")


def _replay_key(headers: Mapping[str, str], body: Any = None) -> str | None:
    if isinstance(body, dict) and isinstance(body.get("nonce"), str):
        return body["nonce"]
    return _delivery_id(headers)


def ragie_provider(secret: str | None = None) -> WebhookProvider:
    """Create the Ragie provider (falls back to ``RAGIE_WEBHOOK_SECRET``)."""
    return create_provider(
        name=PROVIDER_NAME,
        schemas=RAGIE_SCHEMAS,
        secret=secret,
        get_event_type=_event_type,
        get_delivery_id=_delivery_id,
        verify=verify_ragie,
        get_payload=unwrap_envelope,
        get_replay_key=_replay_key,
    )


def ragie(secret: str | None = None) -> WebhookBuilder:
    """Create a Ragie webhook builder."""
    return WebhookBuilder(ragie_provider(secret))


__all__ = ["RAGIE_SCHEMAS", "ragie", "ragie_provider", "verify_ragie"]
