"""Recall.ai webhooks.

Recall signs deliveries Svix-style:

- ``webhook-id`` / ``webhook-timestamp`` / ``webhook-signature`` headers
  (``svix-*`` accepted as fallbacks)
- signed content is ``{id}.{timestamp}.{body}``
- key is the base64 part of the ``whsec_``-prefixed workspace secret
- ``webhook-signature`` holds space-separated ``v1,<base64 HMAC-SHA256>`` entries
- timestamps older or newer than 5 minutes are rejected

The event name is the body's ``event`` field; handlers receive ``body["data"]``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Mapping
from typing import Any

from hookgate.providers.recall.schemas import RECALL_SCHEMAS
from hookgate.webhooks.builder import WebhookBuilder
from hookgate.webhooks.models import RawBody, body_text
from hookgate.webhooks.provider import WebhookProvider, create_provider
from hookgate.webhooks.verification import compute_hmac, decode_signature, digests_match

logger = logging.getLogger(__name__)

PROVIDER_NAME = "recall"
SECRET_PREFIX = "whsec_"
TIMESTAMP_TOLERANCE_SECONDS = 300


def _header(headers: Mapping[str, str], name: str) -> str | None:
    return headers.get(f"webhook-{name}") or headers.get(f"svix-{name}")


def decode_recall_secret(secret: str) -> bytes | None:
    """Return the signing key encoded in a ``whsec_`` secret, or None if malformed."""
    if not secret.startswith(SECRET_PREFIX):
        return None
    try:
        key = base64.b64decode(secret[len(SECRET_PREFIX):], validate=True)
    except (ValueError, binascii.Error):
        return None
    return key or None


def verify_recall(raw_body: RawBody, headers: Mapping[str, str], secret: str) -> bool:
    """Verify a Recall.ai (Svix-style) webhook signature."""
    message_id = _header(headers, "id")
    timestamp = _header(headers, "timestamp")
    signature_header = _header(headers, "signature")
    if not message_id or not timestamp or not signature_header:
        return False

    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    if sent_at <= 0:
        return False

    # Check timestamp tolerance (replay window)
    if abs(int(time.time()) - sent_at) > TIMESTAMP_TOLERANCE_SECONDS:
        logger.warning("Recall webhook timestamp outside tolerance: %s", sent_at)
        return False

    key = decode_recall_secret(secret)
    if key is None:
        logger.warning("Recall webhook secret is not a valid whsec_ secret, rejecting webhook")
        return False

    signed_content = f"{message_id}.{timestamp}.{body_text(raw_body)}"
    expected = compute_hmac("sha256", key, signed_content)

    # Several signatures may be present during key rotation
    for versioned in signature_header.split(" "):
        version, _, signature = versioned.partition(",")
        if version != "v1" or not signature:
            continue
        if digests_match(expected, decode_signature(signature, "base64")):
            return True
    return False


def _event_type(headers: Mapping[str, str], body: Any = None) -> str | None:
    if isinstance(body, dict) and isinstance(body.get("event"), str):
        return body["event"]
    return None


def _delivery_id(headers: Mapping[str, str]) -> str | None:
    return _header(headers, "id")


def _payload(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def recall_provider(secret: str | None = None) -> WebhookProvider:
    """Create the Recall.ai provider (falls back to ``RECALL_WEBHOOK_SECRET``)."""
    return create_provider(
        name=PROVIDER_NAME,
        schemas=RECALL_SCHEMAS,
        secret=secret,
        get_event_type=_event_type,
        get_delivery_id=_delivery_id,
        verify=verify_recall,
        get_payload=_payload,
    )


def recall(secret: str | None = None) -> WebhookBuilder:
    """Create a Recall.ai webhook builder."""
    return WebhookBuilder(recall_provider(secret))


__all__ = [
    "RECALL_SCHEMAS",
    "decode_recall_secret",
    "recall",
    "recall_provider",
    "verify_recall",
]
