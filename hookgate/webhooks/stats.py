"""In-process webhook statistics, reduced from the ``completed`` event stream."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from hookgate.webhooks.observability import CompletedEvent, WebhookObserver


@dataclass
class Counts:
    total: int = 0
    success: int = 0
    error: int = 0

    def record(self, success: bool) -> None:
        self.total += 1
        if success:
            self.success += 1
        else:
            self.error += 1


@dataclass
class StatsSnapshot:
    """Point-in-time copy of the aggregated statistics."""

    total_requests: int = 0
    success_count: int = 0
    error_count: int = 0
    avg_duration_ms: float = 0.0
    by_provider: dict[str, Counts] = field(default_factory=dict)
    by_event_type: dict[str, Counts] = field(default_factory=dict)


class _StatsObserver(WebhookObserver):
    def __init__(self, stats: WebhookStats) -> None:
        self._stats = stats

    def on_completed(self, event: CompletedEvent) -> None:
        self._stats.record(event)


class WebhookStats:
    """Running totals of completed webhook requests.

    Attach ``stats.observer`` to a builder with ``.observe(stats.observer)``
    and read ``stats.snapshot()`` from a status endpoint.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._success = 0
        self._error = 0
        self._total_duration_ms = 0.0
        self._by_provider: dict[str, Counts] = {}
        self._by_event_type: dict[str, Counts] = {}
        self.observer = _StatsObserver(self)

    def record(self, event: CompletedEvent) -> None:
        with self._lock:
            self._total += 1
            if event.success:
                self._success += 1
            else:
                self._error += 1
            self._total_duration_ms += event.duration_ms
            self._by_provider.setdefault(event.provider, Counts()).record(event.success)
            if event.event_type:
                self._by_event_type.setdefault(event.event_type, Counts()).record(event.success)

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                total_requests=self._total,
                success_count=self._success,
                error_count=self._error,
                avg_duration_ms=self._total_duration_ms / self._total if self._total else 0.0,
                by_provider={k: Counts(v.total, v.success, v.error) for k, v in self._by_provider.items()},
                by_event_type={
                    k: Counts(v.total, v.success, v.error) for k, v in self._by_event_type.items()
                },
            )

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._success = 0
            self._error = 0
            self._total_duration_ms = 0.0
            self._by_provider.clear()
            self._by_event_type.clear()
