"""Schema validation capability.

The engine asks a ``SchemaValidator`` to turn a decoded JSON value into a typed
value.  The default validator uses pydantic: schemas may be ``BaseModel``
subclasses or any type pydantic's ``TypeAdapter`` accepts (``dict[str, Any]``,
``TypedDict``, dataclasses, ``Annotated`` unions ...).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, TypeAdapter, ValidationError


@dataclass(frozen=True)
class ValidationOutcome:
    """Either a typed ``value`` (ok) or a structured ``errors`` list."""

    ok: bool
    value: Any = None
    errors: list[dict[str, Any]] = field(default_factory=list)


@runtime_checkable
class SchemaValidator(Protocol):
    def validate(self, schema: Any, value: Any) -> ValidationOutcome:
        ...


class PydanticValidator:
    """Validate payloads with pydantic v2.

    ``TypeAdapter`` instances are cached per schema; building one is the
    expensive part of validation.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._adapters: dict[Any, TypeAdapter] = {}

    def _adapter(self, schema: Any) -> TypeAdapter:
        try:
            with self._lock:
                adapter = self._adapters.get(schema)
                if adapter is None:
                    adapter = TypeAdapter(schema)
                    self._adapters[schema] = adapter
                return adapter
        except TypeError:
            # Unhashable schema objects (e.g. Annotated with unhashable metadata)
            return TypeAdapter(schema)

    def validate(self, schema: Any, value: Any) -> ValidationOutcome:
        if schema is None:
            return ValidationOutcome(ok=True, value=value)
        try:
            if isinstance(schema, type) and issubclass(schema, BaseModel):
                typed = schema.model_validate(value)
            else:
                typed = self._adapter(schema).validate_python(value)
        except ValidationError as exc:
            return ValidationOutcome(
                ok=False,
                errors=exc.errors(include_url=False, include_context=False),
            )
        return ValidationOutcome(ok=True, value=typed)


default_validator = PydanticValidator()
