"""GitHub webhooks.

GitHub sends the event name in ``X-GitHub-Event``, a delivery GUID in
``X-GitHub-Delivery`` and ``X-Hub-Signature-256: sha256=<hex HMAC-SHA256>``.
See https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from hookgate.providers.github.schemas import (
    GITHUB_SCHEMAS,
    InstallationEvent,
    InstallationRepositoriesEvent,
    IssuesEvent,
    PullRequestEvent,
    PushEvent,
)
from hookgate.webhooks.builder import WebhookBuilder
from hookgate.webhooks.events import define_event
from hookgate.webhooks.models import RawBody
from hookgate.webhooks.provider import WebhookProvider, create_provider
from hookgate.webhooks.verification import verify_hmac

PROVIDER_NAME = "github"
SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="

push = define_event("push", PushEvent, provider=PROVIDER_NAME)
pull_request = define_event("pull_request", PullRequestEvent, provider=PROVIDER_NAME)
issues = define_event("issues", IssuesEvent, provider=PROVIDER_NAME)
installation = define_event("installation", InstallationEvent, provider=PROVIDER_NAME)
installation_repositories = define_event(
    "installation_repositories", InstallationRepositoriesEvent, provider=PROVIDER_NAME
)


def _normalize_secret(secret: str | None) -> str | None:
    # Secrets are sometimes pasted with the signature prefix attached
    if secret and secret.startswith(SIGNATURE_PREFIX):
        return secret[len(SIGNATURE_PREFIX):]
    return secret


def _event_type(headers: Mapping[str, str], body: Any = None) -> str | None:
    return headers.get("x-github-event")


def _delivery_id(headers: Mapping[str, str]) -> str | None:
    return headers.get("x-github-delivery")


def verify_github(raw_body: RawBody, headers: Mapping[str, str], secret: str) -> bool:
    """Verify ``X-Hub-Signature-256`` (``sha256=`` + hex HMAC-SHA256 of the body)."""
    return verify_hmac(
        algorithm="sha256",
        raw_body=raw_body,
        secret=_normalize_secret(secret) or "",
        signature=headers.get(SIGNATURE_HEADER),
        signature_prefix=SIGNATURE_PREFIX,
        signature_encoding="hex",
    )


def github_provider(secret: str | None = None) -> WebhookProvider:
    """Create the GitHub provider (falls back to ``GITHUB_WEBHOOK_SECRET``)."""
    return create_provider(
        name=PROVIDER_NAME,
        schemas=GITHUB_SCHEMAS,
        secret=_normalize_secret(secret),
        get_event_type=_event_type,
        get_delivery_id=_delivery_id,
        verify=verify_github,
    )


def github(secret: str | None = None) -> WebhookBuilder:
    """Create a GitHub webhook builder.

    >>> webhook = github(secret="s3cr3t").event(push, handle_push)  # doctest: +SKIP
    """
    return WebhookBuilder(github_provider(secret))


__all__ = [
    "GITHUB_SCHEMAS",
    "github",
    "github_provider",
    "installation",
    "installation_repositories",
    "issues",
    "pull_request",
    "push",
    "verify_github",
]
