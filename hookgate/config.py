"""hookgate configuration."""

from __future__ import annotations

import os
import re

from pydantic_settings import BaseSettings

# Shared secret consulted when no provider-specific variable is set
GENERIC_SECRET_ENV = "WEBHOOK_SECRET"


class Settings(BaseSettings):
    """Environment-driven settings for the webhook engine."""

    # Request bodies larger than this are rejected with 413 (None = unlimited)
    max_body_bytes: int | None = None
    # Deadline for a single awaitable handler (None = no deadline)
    handler_timeout_seconds: float | None = None

    # Replay protection (Redis store)
    redis_url: str = "redis://localhost:6379/0"
    replay_ttl_seconds: int = 86400  # 24 hours
    replay_reservation_ttl_seconds: int = 300

    model_config = {"env_prefix": "HOOKGATE_", "env_file": ".env", "extra": "ignore"}


settings = Settings()


def secret_env_var(provider_name: str) -> str:
    """Return the environment variable holding *provider_name*'s secret.

    ``"github"`` -> ``GITHUB_WEBHOOK_SECRET``; characters that cannot appear in
    a variable name become underscores (``"my-shop"`` -> ``MY_SHOP_WEBHOOK_SECRET``).
    """
    stem = re.sub(r"[^A-Z0-9]", "_", provider_name.upper())
    return f"{stem}_WEBHOOK_SECRET"


def resolve_env_secret(provider_name: str) -> str | None:
    """Look up a provider secret in the environment at call time.

    Falls back to the generic ``WEBHOOK_SECRET`` variable.  Empty values are
    treated as unset.
    """
    return (
        os.environ.get(secret_env_var(provider_name))
        or os.environ.get(GENERIC_SECRET_ENV)
        or None
    )
