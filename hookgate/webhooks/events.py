"""Typed event definitions.

An ``EventDefinition`` bundles an event name with the schema its payload must
satisfy.  Registering a handler with a definition (instead of a bare name)
makes the engine validate against the definition's schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class EventDefinition:
    """An event name, its payload schema and (optionally) the owning provider."""

    name: str
    schema: Any = None
    provider: str | None = None


def define_event(name: str, schema: Any = None, provider: str | None = None) -> EventDefinition:
    """Define a webhook event.

    >>> from pydantic import BaseModel
    >>> class OrderCreated(BaseModel):
    ...     order_id: str
    >>> order_created = define_event("order.created", OrderCreated, provider="my-shop")
    """
    if not name:
        raise ValueError("Event name must not be empty")
    return EventDefinition(name=name, schema=schema, provider=provider)
