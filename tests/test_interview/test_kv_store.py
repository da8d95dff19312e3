"""
Tests for the in-memory key-value backend.

Covers get/set/delete, per-key TTL with an injected clock, glob key
listing, and protocol conformance.
"""

import pytest

from assessment.storage.kv import InMemoryKeyValueStore, KeyValueStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock=clock)


class TestBasicOperations:

    def test_satisfies_protocol(self, kv):
        assert isinstance(kv, KeyValueStore)

    def test_set_and_get(self, kv):
        kv.set("session:a", "{}")
        assert kv.get("session:a") == "{}"

    def test_missing_key(self, kv):
        assert kv.get("nope") is None

    def test_overwrite(self, kv):
        kv.set("k", "1")
        kv.set("k", "2")
        assert kv.get("k") == "2"

    def test_delete(self, kv):
        kv.set("k", "v")
        assert kv.delete("k") is True
        assert kv.delete("k") is False
        assert kv.get("k") is None

    def test_keys_glob_sorted(self, kv):
        kv.set("session:b", "1")
        kv.set("session:a", "1")
        kv.set("diagnostic:x", "1")
        assert kv.keys("session:*") == ["session:a", "session:b"]
        assert len(kv) == 3

    def test_clear(self, kv):
        kv.set("k", "v")
        kv.clear()
        assert len(kv) == 0


class TestTTL:

    def test_expires(self, kv, clock):
        kv.set("k", "v", ttl_seconds=10)
        clock.now += 9
        assert kv.get("k") == "v"
        clock.now += 1
        assert kv.get("k") is None

    def test_no_ttl_never_expires(self, kv, clock):
        kv.set("k", "v")
        clock.now += 10_000_000
        assert kv.get("k") == "v"

    def test_expire_slides_ttl(self, kv, clock):
        kv.set("k", "v", ttl_seconds=10)
        clock.now += 8
        assert kv.expire("k", 10) is True
        clock.now += 8
        assert kv.get("k") == "v"

    def test_expire_missing_key(self, kv):
        assert kv.expire("gone", 10) is False

    def test_expired_keys_not_listed(self, kv, clock):
        kv.set("session:old", "v", ttl_seconds=5)
        kv.set("session:new", "v", ttl_seconds=50)
        clock.now += 10
        assert kv.keys("session:*") == ["session:new"]
