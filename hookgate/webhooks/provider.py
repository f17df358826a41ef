"""Provider abstraction: the capability bundle for one webhook source.

A provider knows where the event type lives (header or body), how deliveries
are identified, how signatures are checked and whether the payload arrives
wrapped in an envelope.  Providers are plain values: build them with
``create_provider`` (or any object satisfying ``Provider``) rather than by
subclassing.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Protocol, runtime_checkable

from hookgate.webhooks.errors import ProviderConfigError
from hookgate.webhooks.models import RawBody

VerificationMode = Literal["required", "disabled"]

EventTypeExtractor = Callable[[Mapping[str, str], Any], "str | None"]
DeliveryIdExtractor = Callable[[Mapping[str, str]], "str | None"]
PayloadExtractor = Callable[[Any], Any]
ReplayKeyExtractor = Callable[[Mapping[str, str], Any], "str | None"]
# May be async; the engine awaits the result and accepts only ``True``
VerifyFunction = Callable[[RawBody, Mapping[str, str], str], "bool | Awaitable[bool]"]


@runtime_checkable
class Provider(Protocol):
    """Capability interface consumed by the processing engine.

    ``get_payload`` and ``get_replay_key`` are optional; the engine falls back
    to the decoded body and the delivery id when a provider lacks them.
    """

    name: str
    schemas: Mapping[str, Any]
    secret: str | None
    verification: VerificationMode

    def get_event_type(self, headers: Mapping[str, str], body: Any = None) -> str | None:
        ...

    def get_delivery_id(self, headers: Mapping[str, str]) -> str | None:
        ...

    def verify(self, raw_body: RawBody, headers: Mapping[str, str], secret: str) -> bool | Awaitable[bool]:
        ...


def _no_delivery_id(headers: Mapping[str, str]) -> str | None:
    return None


def _skip_verification(raw_body: RawBody, headers: Mapping[str, str], secret: str) -> bool:
    return True


@dataclass(frozen=True)
class WebhookProvider:
    """Concrete provider assembled from functions.  Never mutated after construction."""

    name: str
    event_type_extractor: EventTypeExtractor
    schemas: Mapping[str, Any] = field(default_factory=dict)
    secret: str | None = None
    verification: VerificationMode = "required"
    delivery_id_extractor: DeliveryIdExtractor = _no_delivery_id
    verifier: VerifyFunction = _skip_verification
    payload_extractor: PayloadExtractor | None = None
    replay_key_extractor: ReplayKeyExtractor | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "schemas", MappingProxyType(dict(self.schemas)))

    def get_event_type(self, headers: Mapping[str, str], body: Any = None) -> str | None:
        return self.event_type_extractor(headers, body)

    def get_delivery_id(self, headers: Mapping[str, str]) -> str | None:
        return self.delivery_id_extractor(headers)

    def verify(self, raw_body: RawBody, headers: Mapping[str, str], secret: str) -> bool | Awaitable[bool]:
        return self.verifier(raw_body, headers, secret)

    def get_payload(self, body: Any) -> Any:
        if self.payload_extractor is None:
            return body
        return self.payload_extractor(body)

    def get_replay_key(self, headers: Mapping[str, str], body: Any = None) -> str | None:
        if self.replay_key_extractor is None:
            return self.get_delivery_id(headers)
        return self.replay_key_extractor(headers, body)


def create_provider(
    *,
    name: str,
    get_event_type: EventTypeExtractor,
    schemas: Mapping[str, Any] | None = None,
    secret: str | None = None,
    get_delivery_id: DeliveryIdExtractor | None = None,
    verify: VerifyFunction | None = None,
    get_payload: PayloadExtractor | None = None,
    get_replay_key: ReplayKeyExtractor | None = None,
    verification: VerificationMode = "required",
) -> WebhookProvider:
    """Create a custom webhook provider.

    >>> from hookgate.webhooks.verification import create_hmac_verifier
    >>> shop = create_provider(
    ...     name="my-shop",
    ...     get_event_type=lambda headers, body: headers.get("x-event-type"),
    ...     get_delivery_id=lambda headers: headers.get("x-delivery-id"),
    ...     verify=create_hmac_verifier(algorithm="sha256", signature_header="x-signature"),
    ... )

    Raises:
        ProviderConfigError: verification is required but no ``verify`` was given,
            or the name/verification mode is invalid
    """
    if not name:
        raise ProviderConfigError("Provider name must not be empty.")
    if verification not in ("required", "disabled"):
        raise ProviderConfigError(f"Unknown verification mode: {verification!r}")
    if verify is None and verification == "required":
        raise ProviderConfigError(
            'Webhook verification is required. Provide a verify function or set verification="disabled".'
        )

    return WebhookProvider(
        name=name,
        event_type_extractor=get_event_type,
        schemas=schemas or {},
        secret=secret,
        verification=verification,
        delivery_id_extractor=get_delivery_id or _no_delivery_id,
        verifier=verify or _skip_verification,
        payload_extractor=get_payload,
        replay_key_extractor=get_replay_key,
    )


def provider_payload(provider: Any, body: Any) -> Any:
    """Unwrap *body* with the provider's optional ``get_payload``."""
    get_payload = getattr(provider, "get_payload", None)
    if get_payload is None:
        return body
    return get_payload(body)


def provider_replay_key(provider: Any, headers: Mapping[str, str], body: Any) -> str | None:
    """Replay key from the provider's optional ``get_replay_key``, else the delivery id."""
    get_replay_key = getattr(provider, "get_replay_key", None)
    if get_replay_key is None:
        return provider.get_delivery_id(headers)
    return get_replay_key(headers, body)


def unwrap_envelope(body: Any) -> Any:
    """Unwrap a ``{type, payload, nonce}`` envelope.

    The nonce, when present, is merged onto the payload so handlers can use it
    for idempotency.  Bodies that are not envelopes are returned unchanged.
    """
    if not isinstance(body, dict) or "payload" not in body:
        return body
    payload = body["payload"]
    nonce = body.get("nonce")
    if nonce is not None and isinstance(payload, dict):
        return {**payload, "nonce": nonce}
    return payload
