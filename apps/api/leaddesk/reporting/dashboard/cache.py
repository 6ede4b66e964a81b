from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeVar

from leaddesk.core.config import get_settings
from leaddesk.core.events import InProcessEventBus, InternalEvent
from leaddesk.metrics import observe_dashboard_cache, observe_dashboard_cache_invalidation


logger = logging.getLogger("leaddesk.reporting.cache")

T = TypeVar("T")

MAX_COALESCE_SECONDS = 5.0
DEFAULT_MAX_ENTRIES = 256
WATCHED_EVENTS = ("leads.lead.*", "expenses.expense.*")


def _clamp_seconds(value: float) -> float:
    return min(max(float(value), 0.0), MAX_COALESCE_SECONDS)


@dataclass
class _CacheEntry:
    value: Any
    computed_at: float
    stale_since: float | None = None


class DashboardMetricsCache:
    """Memoizes dashboard aggregates for a few seconds at most.

    An entry is recomputed once it is older than ``max_age_seconds``, so writes
    that never reach the in-process bus (other workers, ingestion jobs) still show
    up after a bounded delay. A published lead or expense change marks every
    entry stale; a stale entry may still be served while it is younger than the
    coalescing window, counted from the first invalidation that hit it. Cached
    values are never patched in place. At most ``max_entries`` entries are kept,
    evicting the least recently used.
    """

    def __init__(
        self,
        coalesce_seconds: float = 0.0,
        *,
        max_age_seconds: float = MAX_COALESCE_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.coalesce_seconds = _clamp_seconds(coalesce_seconds)
        self.max_age_seconds = _clamp_seconds(max_age_seconds)
        self.max_entries = max(int(max_entries), 1)
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[Hashable, _CacheEntry] = OrderedDict()
        self._generation = 0

    def get_or_compute(self, report: str, key: Hashable, compute: Callable[[], T]) -> T:
        if not self.enabled:
            return compute()

        cache_key = (report, key)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is not None:
                if self._servable(entry, self._clock()):
                    self._entries.move_to_end(cache_key)
                    observe_dashboard_cache(report, hit=True)
                    return entry.value
                del self._entries[cache_key]
            generation = self._generation

        observe_dashboard_cache(report, hit=False)
        value = compute()

        with self._lock:
            now = self._clock()
            # A change published while computing leaves the fresh value already stale.
            stale_since = None if generation == self._generation else now
            self._entries[cache_key] = _CacheEntry(value=value, computed_at=now, stale_since=stale_since)
            self._entries.move_to_end(cache_key)
            self._prune(now)
        return value

    def invalidate(self, collection: str = "all") -> None:
        now = self._clock()
        with self._lock:
            self._generation += 1
            for entry in self._entries.values():
                if entry.stale_since is None:
                    entry.stale_since = now
            self._prune(now)
        observe_dashboard_cache_invalidation(collection)
        logger.info("dashboard_cache.invalidated", extra={"resource": collection})

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def subscribe(self, bus: InProcessEventBus) -> None:
        for pattern in WATCHED_EVENTS:
            bus.subscribe(pattern, self.handle_event)

    def unsubscribe(self, bus: InProcessEventBus) -> None:
        for pattern in WATCHED_EVENTS:
            bus.unsubscribe(pattern, self.handle_event)

    def handle_event(self, event: InternalEvent) -> None:
        collection = event.payload.get("collection") if isinstance(event.payload, dict) else None
        self.invalidate(str(collection or event.name.split(".", 1)[0]))

    def _servable(self, entry: _CacheEntry, now: float) -> bool:
        if now - entry.computed_at >= self.max_age_seconds:
            return False
        if entry.stale_since is None:
            return True
        return now - entry.stale_since < self.coalesce_seconds

    def _prune(self, now: float) -> None:
        # Caller holds the lock.
        for cache_key in [key for key, entry in self._entries.items() if not self._servable(entry, now)]:
            del self._entries[cache_key]
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


def build_dashboard_cache() -> DashboardMetricsCache:
    settings = get_settings()
    return DashboardMetricsCache(
        settings.metrics_cache_coalesce_seconds,
        max_age_seconds=settings.metrics_cache_max_age_seconds,
        max_entries=settings.metrics_cache_max_entries,
        enabled=settings.metrics_cache_enabled,
    )


dashboard_metrics_cache = build_dashboard_cache()
