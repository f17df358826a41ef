"""Shared fixtures for the hookgate test suite."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

import pytest
from pydantic import BaseModel

from hookgate.webhooks import create_provider, define_event

SECRET_ENV_VARS = (
    "WEBHOOK_SECRET",
    "TEST_WEBHOOK_SECRET",
    "GITHUB_WEBHOOK_SECRET",
    "RAGIE_WEBHOOK_SECRET",
    "RECALL_WEBHOOK_SECRET",
)


@pytest.fixture(autouse=True)
def _clean_secret_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer secrets in the environment out of the tests."""
    for name in SECRET_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class OrderPayload(BaseModel):
    action: str
    id: int


order_created = define_event("order.created", OrderPayload, provider="test")
order_updated = define_event("order.updated", OrderPayload, provider="test")

VALID_PAYLOAD = {"action": "created", "id": 1}


def make_test_provider(
    *,
    secret: str | None = None,
    verify_result: bool = True,
    verification: str = "required",
    **overrides: Any,
):
    """Provider reading ``x-test-event`` / ``x-test-delivery-id`` with a fixed verify result."""
    options: dict[str, Any] = {
        "name": "test",
        "secret": secret,
        "verification": verification,
        "get_event_type": lambda headers, body: headers.get("x-test-event"),
        "get_delivery_id": lambda headers: headers.get("x-test-delivery-id"),
        "verify": lambda raw_body, headers, secret: verify_result,
    }
    options.update(overrides)
    return create_provider(**options)


def github_signature(body: bytes, secret: str) -> str:
    """``X-Hub-Signature-256`` value for *body*."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def github_push_payload(**overrides: Any) -> dict[str, Any]:
    """A schema-conformant GitHub push payload."""
    commit = {
        "id": "a" * 40,
        "message": "Fix build",
        "timestamp": "2024-01-01T00:00:00Z",
        "url": "https://github.com/octocat/hello-world/commit/" + "a" * 40,
        "author": {"name": "Octo Cat", "email": "octo@example.com", "username": "octocat"},
        "committer": {"name": "Octo Cat", "email": "octo@example.com"},
        "added": [],
        "removed": [],
        "modified": ["README.md"],
    }
    payload = {
        "ref": "refs/heads/main",
        "before": "0" * 40,
        "after": "a" * 40,
        "created": False,
        "deleted": False,
        "forced": False,
        "base_ref": None,
        "compare": "https://github.com/octocat/hello-world/compare/000000...aaaaaa",
        "commits": [commit],
        "head_commit": commit,
        "repository": {"id": 1, "name": "hello-world", "full_name": "octocat/hello-world", "private": False},
        "pusher": {"name": "octocat", "email": "octo@example.com"},
        "sender": {"login": "octocat", "id": 1, "type": "User"},
    }
    payload.update(overrides)
    return payload


def encode(payload: Any) -> bytes:
    return json.dumps(payload).encode()
