from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Callable, Protocol

from app.portal.core.config import settings

if TYPE_CHECKING:
    from app.portal.services.permissions import EffectivePermissions


class PermissionCache(Protocol):
    def get(self, user_id: str) -> EffectivePermissions | None: ...

    def set(self, user_id: str, value: EffectivePermissions) -> None: ...

    def invalidate(self, user_id: str | None = None) -> None: ...


class InMemoryPermissionCache:
    """Process-wide TTL map of resolved permissions keyed by user id.

    Values are frozen snapshots, so readers never need the lock; it only
    serializes writes to the underlying dict.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[EffectivePermissions, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> EffectivePermissions | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            with self._lock:
                if self._entries.get(user_id) is entry:
                    del self._entries[user_id]
            return None
        return value

    def set(self, user_id: str, value: EffectivePermissions) -> None:
        with self._lock:
            self._entries[user_id] = (value, self._clock() + self.ttl_seconds)

    def invalidate(self, user_id: str | None = None) -> None:
        with self._lock:
            if user_id is None:
                self._entries.clear()
            else:
                self._entries.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._entries)


class NullPermissionCache:
    def get(self, user_id: str) -> EffectivePermissions | None:
        return None

    def set(self, user_id: str, value: EffectivePermissions) -> None:
        return None

    def invalidate(self, user_id: str | None = None) -> None:
        return None


permission_cache = InMemoryPermissionCache(ttl_seconds=settings.PERMISSION_CACHE_TTL_SECONDS)


def get_permission_cache() -> PermissionCache:
    return permission_cache


def invalidate_permission_cache(user_id: str | None = None, cache: PermissionCache | None = None) -> None:
    target = cache if cache is not None else permission_cache
    target.invalidate(user_id)
