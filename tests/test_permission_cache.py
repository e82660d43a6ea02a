from app.portal.core.scope import DataScope
from app.portal.services.permission_cache import (
    InMemoryPermissionCache,
    NullPermissionCache,
    invalidate_permission_cache,
)
from app.portal.services.permissions import EffectivePermissions


class FakeClock:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


def _entry(*permissions):
    return EffectivePermissions(permissions=frozenset(permissions), data_scope=DataScope.LOCATION)


def test_cache_returns_entry_until_ttl_elapses():
    clock = FakeClock()
    cache = InMemoryPermissionCache(ttl_seconds=300, clock=clock)
    cache.set("user-1", _entry("users.view"))

    clock.value += 299
    assert cache.get("user-1").permissions == frozenset({"users.view"})

    clock.value += 1
    assert cache.get("user-1") is None
    assert len(cache) == 0


def test_invalidate_single_user_and_all():
    cache = InMemoryPermissionCache(ttl_seconds=300, clock=FakeClock())
    cache.set("user-1", _entry("users.view"))
    cache.set("user-2", _entry("wiki.view"))

    invalidate_permission_cache("user-1", cache=cache)
    assert cache.get("user-1") is None
    assert cache.get("user-2") is not None

    invalidate_permission_cache(cache=cache)
    assert len(cache) == 0


def test_invalidate_empty_cache_targets_given_instance():
    cache = InMemoryPermissionCache(ttl_seconds=300, clock=FakeClock())
    invalidate_permission_cache("user-1", cache=cache)
    assert len(cache) == 0


def test_null_cache_never_stores():
    cache = NullPermissionCache()
    cache.set("user-1", _entry("users.view"))
    assert cache.get("user-1") is None
