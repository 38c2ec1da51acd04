from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from threading import Lock

from recruitment.authz.context import PermissionGrant
from recruitment.metrics import (
    observe_permission_cache_eviction,
    observe_permission_cache_hit,
    observe_permission_cache_invalidation,
    observe_permission_cache_miss,
)


logger = logging.getLogger("recruitment.authz")

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_CAPACITY = 100


@dataclass(slots=True)
class _CacheEntry:
    permissions: tuple[PermissionGrant, ...]
    stored_at: float


class RolePermissionCache:
    """Per-role permission snapshots with a fixed TTL and insertion-order eviction.

    Entries are keyed by the role identifier the ability factory resolves roles
    by. An entry older than ``ttl_seconds`` is treated as absent and dropped on
    the next read. When a ``set`` pushes the size over ``capacity`` the oldest
    inserted entry is evicted; re-setting a key counts as a fresh insertion.

    All mutations happen under one lock, so the size bound holds once ``set``
    returns even with many request threads writing concurrently.

    Readers that fill the cache from the store take a ``generation`` token
    before loading and pass it to ``set``; an invalidation in between changes
    the token and the stale snapshot is dropped instead of stored.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._ttl_seconds = ttl_seconds
        self._capacity = capacity
        self._clock = clock
        self._lock = Lock()
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._epoch = 0
        self._generations: dict[str, int] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @property
    def capacity(self) -> int:
        return self._capacity

    def generation(self, role_key: str) -> tuple[int, int]:
        with self._lock:
            return self._epoch, self._generations.get(role_key, 0)

    def get(self, role_key: str) -> tuple[PermissionGrant, ...] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(role_key)
            if entry is None:
                observe_permission_cache_miss()
                return None
            if now - entry.stored_at > self._ttl_seconds:
                del self._entries[role_key]
                observe_permission_cache_eviction("expired")
                observe_permission_cache_miss()
                return None
            observe_permission_cache_hit()
            return entry.permissions

    def set(
        self,
        role_key: str,
        permissions: Iterable[PermissionGrant],
        *,
        generation: tuple[int, int] | None = None,
    ) -> None:
        snapshot = tuple(permissions)
        now = self._clock()
        evicted: list[str] = []
        with self._lock:
            if generation is not None and generation != (self._epoch, self._generations.get(role_key, 0)):
                logger.debug("authz.cache.stale_write_dropped", extra={"role_key": role_key})
                return
            self._entries.pop(role_key, None)
            self._entries[role_key] = _CacheEntry(permissions=snapshot, stored_at=now)
            while len(self._entries) > self._capacity:
                oldest_key, _ = self._entries.popitem(last=False)
                evicted.append(oldest_key)

        for key in evicted:
            observe_permission_cache_eviction("capacity")
            logger.debug("authz.cache.evicted", extra={"role_key": key, "reason": "capacity"})

    def invalidate(self, role_key: str | None = None) -> None:
        with self._lock:
            if role_key is None:
                self._entries.clear()
                self._epoch += 1
            else:
                self._entries.pop(role_key, None)
                self._generations[role_key] = self._generations.get(role_key, 0) + 1

        observe_permission_cache_invalidation("all" if role_key is None else "role")
        logger.info("authz.cache.invalidated", extra={"role_key": role_key or "*"})

    def clear(self) -> None:
        self.invalidate()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, role_key: object) -> bool:
        with self._lock:
            return role_key in self._entries
