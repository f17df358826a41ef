"""Request, result and context types shared by the engine and adapters."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Union

# Normalized headers: lower-case keys, one value per key
Headers = Mapping[str, str]

RawHeaders = Mapping[str, Union[str, list[str], tuple[str, ...], None]]

RawBody = Union[bytes, str]


def normalize_headers(headers: RawHeaders) -> dict[str, str]:
    """Lower-case header keys and coalesce multi-valued headers to their first value.

    Headers whose value is ``None`` (or an empty list) are dropped.
    """
    normalized: dict[str, str] = {}
    for key, value in headers.items():
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None:
            continue
        normalized[str(key).lower()] = str(value)
    return normalized


def body_bytes(raw_body: RawBody) -> bytes:
    """Return the raw body as bytes (strings are UTF-8 encoded)."""
    if isinstance(raw_body, str):
        return raw_body.encode("utf-8")
    return bytes(raw_body)


def body_text(raw_body: RawBody) -> str:
    """Return the raw body as text (bytes are UTF-8 decoded)."""
    if isinstance(raw_body, str):
        return raw_body
    return bytes(raw_body).decode("utf-8")


@dataclass(frozen=True)
class WebhookRequest:
    """One inbound webhook delivery, as handed over by an adapter.

    ``raw_body`` must be the exact bytes received on the wire; signatures are
    computed over it.
    """

    headers: RawHeaders
    raw_body: RawBody
    secret: str | None = None
    max_body_bytes: int | None = None


@dataclass(frozen=True)
class ProcessResult:
    """Terminal outcome of processing one webhook request."""

    status: int
    event_type: str | None = None
    body: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == 200

    def to_dict(self) -> dict[str, Any]:
        """JSON body for adapters (``body`` when set, else ``{ok, eventType}``)."""
        if self.body is not None:
            return dict(self.body)
        payload: dict[str, Any] = {"ok": self.ok}
        if self.event_type is not None:
            payload["eventType"] = self.event_type
        return payload


@dataclass(frozen=True)
class HandlerContext:
    """Metadata about the request, passed read-only to every handler."""

    event_type: str
    provider: str
    headers: Mapping[str, str]
    raw_body: str
    received_at: datetime
    delivery_id: str | None = None

    def __post_init__(self) -> None:
        # Handlers share one context; keep the headers read-only
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


@dataclass(frozen=True)
class ErrorContext:
    """Context passed to the error side-effect."""

    event_type: str
    payload: Any
    delivery_id: str | None = None


EventHandler = Callable[[Any, HandlerContext], Union[Awaitable[None], None]]
ErrorHandler = Callable[[BaseException, ErrorContext], Union[Awaitable[None], None]]
VerificationFailedHandler = Callable[[str, Mapping[str, str]], Union[Awaitable[None], None]]

