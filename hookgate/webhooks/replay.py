"""Replay protection: reserve / commit / release of delivery keys.

Security contract:
- reserve() is atomic: exactly one concurrent caller wins a given key
- A reservation becomes permanent only after every handler succeeded (commit)
- Failed deliveries release their key so the sender's retry is processed
- Key pattern (Redis): hookgate:replay:{provider}:{replay_key}

The in-memory store is atomic within one process.  Multi-instance deployments
need a shared store with compare-and-set semantics, such as ``RedisReplayStore``
(``SET NX`` plus a token-checked release).
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from hookgate.config import settings
from hookgate.webhooks.errors import ReplayStoreError

if TYPE_CHECKING:
    import redis

logger = logging.getLogger(__name__)

_KEY_PREFIX = "hookgate:replay"

_RESERVED = "reserved"
_COMMITTED = "committed"

# Compare-and-delete: drop the key only while it holds the caller's token
_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


@runtime_checkable
class ReplayStore(Protocol):
    """Atomic key reservation used for duplicate-delivery suppression."""

    def reserve(self, key: str) -> bool:
        """Claim *key*.  True if this caller now owns it, False if already taken."""
        ...

    def commit(self, key: str) -> None:
        """Mark a reservation permanent."""
        ...

    def release(self, key: str) -> None:
        """Free a reservation so a later delivery with the same key may retry."""
        ...


class InMemoryReplayStore:
    """Thread-safe in-memory replay store.

    Suitable for tests and single-process deployments.  Committed keys expire
    after *ttl_seconds* (None keeps them forever); reservations that are never
    committed or released expire after *reservation_ttl_seconds*.  Expired
    entries are swept every *purge_interval* reservations.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        reservation_ttl_seconds: float | None = None,
        purge_interval: int = 256,
    ) -> None:
        if purge_interval < 1:
            raise ValueError("purge_interval must be >= 1")
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._ttl = ttl_seconds
        self._reservation_ttl = reservation_ttl_seconds
        self._purge_interval = purge_interval
        self._reserves_since_purge = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = time.monotonic()
        expired = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired replay keys", len(expired))

    @staticmethod
    def _expiry(ttl: float | None) -> float | None:
        return None if ttl is None else time.monotonic() + ttl

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return entry

    def reserve(self, key: str) -> bool:
        with self._lock:
            self._reserves_since_purge += 1
            if self._reserves_since_purge >= self._purge_interval:
                self._reserves_since_purge = 0
                self._purge_expired()
            if self._live(key) is not None:
                return False
            self._entries[key] = (_RESERVED, self._expiry(self._reservation_ttl))
            return True

    def commit(self, key: str) -> None:
        with self._lock:
            self._entries[key] = (_COMMITTED, self._expiry(self._ttl))

    def release(self, key: str) -> None:
        with self._lock:
            entry = self._entries.get(key)
            # Committed deliveries stay committed
            if entry is not None and entry[0] == _RESERVED:
                del self._entries[key]

    def state(self, key: str) -> str | None:
        """Return ``"reserved"``, ``"committed"`` or None (for diagnostics and tests)."""
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def clear(self) -> None:
        """Drop all keys (for test isolation)."""
        with self._lock:
            self._entries.clear()


class RedisReplayStore:
    """Redis-backed replay store shared by every instance of a deployment.

    Uses ``SET NX EX`` (set-if-not-exists) for the atomic reservation.  Each
    reservation stores a random token; release() deletes the key only while it
    still holds this caller's token (one Lua script), so a late release never
    drops a reservation another worker took after ours expired.

    When *fail_open* is true and Redis is unreachable, reserve() lets the
    delivery through (availability over deduplication) and logs a warning;
    otherwise it raises ``ReplayStoreError``.
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        *,
        redis_url: str | None = None,
        ttl_seconds: int | None = None,
        reservation_ttl_seconds: int | None = None,
        key_prefix: str = _KEY_PREFIX,
        fail_open: bool = False,
    ) -> None:
        self._client = client
        self._redis_url = redis_url or settings.redis_url
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.replay_ttl_seconds
        self._reservation_ttl = (
            reservation_ttl_seconds
            if reservation_ttl_seconds is not None
            else settings.replay_reservation_ttl_seconds
        )
        self._key_prefix = key_prefix
        self._fail_open = fail_open
        self._tokens_lock = threading.Lock()
        self._tokens: dict[str, str] = {}

    def _get_redis(self) -> redis.Redis:
        if self._client is None:
            import redis as redis_lib

            self._client = redis_lib.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def reserve(self, key: str) -> bool:
        full_key = self._key(key)
        value = f"{_RESERVED}:{secrets.token_hex(16)}"
        try:
            # SET NX returns True if the key was set (new), None if it already existed
            was_set = self._get_redis().set(full_key, value, nx=True, ex=self._reservation_ttl)
        except Exception as exc:
            if self._fail_open:
                logger.warning(
                    "Redis unavailable for replay protection, allowing %s",
                    key,
                    exc_info=True,
                )
                return True
            raise ReplayStoreError(f"Could not reserve replay key {key!r}") from exc
        if not was_set:
            logger.info("Duplicate webhook delivery rejected: %s", key)
            return False
        with self._tokens_lock:
            self._tokens[key] = value
        return True

    def commit(self, key: str) -> None:
        with self._tokens_lock:
            self._tokens.pop(key, None)
        try:
            self._get_redis().set(self._key(key), _COMMITTED, ex=self._ttl)
        except Exception as exc:
            raise ReplayStoreError(f"Could not commit replay key {key!r}") from exc

    def release(self, key: str) -> None:
        with self._tokens_lock:
            value = self._tokens.pop(key, None)
        if value is None:
            # Not reserved by this store (fail-open pass, or already committed)
            return
        try:
            self._get_redis().eval(_RELEASE_SCRIPT, 1, self._key(key), value)
        except Exception as exc:
            raise ReplayStoreError(f"Could not release replay key {key!r}") from exc


@dataclass(frozen=True)
class ReplayProtection:
    """Replay protection settings attached to a webhook builder."""

    store: ReplayStore
    key_prefix: str | None = None

    def key_for(self, provider_name: str, replay_key: str) -> str:
        namespace = self.key_prefix or provider_name
        return f"{namespace}:{replay_key}"
