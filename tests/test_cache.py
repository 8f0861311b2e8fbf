"""
Unit tests for the classification cache and its SQLite store.
"""
import sqlite3
import threading
from datetime import datetime, timedelta, timezone

import pytest

from core.cache import ClassificationCache
from core.db import CacheStore
from core.exceptions import CacheUnavailable
from core.schema import CacheEntry, ClassificationResult, ClassificationSource, fallback_result


def ai_result(confidence=0.9):
    return ClassificationResult(
        category="Software & Technology",
        is_tax_deductible=True,
        business_use_percentage=100,
        confidence=confidence,
        reasoning="Design software",
        tax_category="Business Expense",
        source=ClassificationSource.AI,
    )


class BrokenStore(CacheStore):
    """Store whose every query fails."""

    def __init__(self):
        super().__init__(":memory:")

    def _execute(self, sql, params=(), fetch=False):
        raise CacheUnavailable("disk I/O error")


def test_miss_then_hit():
    cache = ClassificationCache()
    sig = cache.signature("Adobe CC", -54.99, "Adobe")
    assert cache.get(sig) is None

    assert cache.put(sig, ai_result()) is True
    cached = cache.get(sig)

    assert cached.source == ClassificationSource.CACHE
    assert cached.category == "Software & Technology"
    assert cache.stats()["hits"] == 1
    assert cache.stats()["misses"] == 1


def test_hit_increments_usage_count():
    cache = ClassificationCache()
    sig = cache.signature("Adobe CC", -54.99)
    cache.put(sig, ai_result())
    cache.get(sig)
    cache.get(sig)
    assert cache.entry(sig).usage_count == 2


def test_nearby_amounts_share_an_entry():
    cache = ClassificationCache()
    cache.put(cache.signature("Adobe CC", -54.99), ai_result())
    assert cache.get(cache.signature("ADOBE  cc", -55.20)) is not None


def test_admission_threshold():
    cache = ClassificationCache(admission_threshold=0.3)
    assert cache.put("low|1|", ai_result(confidence=0.29)) is False
    assert cache.put("edge|1|", ai_result(confidence=0.3)) is True
    assert cache.get("low|1|") is None


def test_fallback_results_are_never_cached():
    cache = ClassificationCache(admission_threshold=0.0)
    assert cache.put("sig|1|", fallback_result()) is False
    assert cache.stats()["size"] == 0


def test_put_overwrites_and_keeps_usage_count():
    cache = ClassificationCache()
    cache.put("sig|1|", ai_result(confidence=0.6))
    cache.get("sig|1|")
    cache.put("sig|1|", ai_result(confidence=0.95))
    entry = cache.entry("sig|1|")
    assert entry.result.confidence == 0.95
    assert entry.usage_count == 1


def test_evict_older_than():
    cache = ClassificationCache()
    cache.put("old|1|", ai_result())
    cache.put("new|1|", ai_result())
    cache._entries["old|1|"].last_updated = datetime.now(timezone.utc) - timedelta(days=40)

    assert cache.evict_older_than(timedelta(days=30)) == 1
    assert cache.entry("old|1|") is None
    assert cache.entry("new|1|") is not None


def test_store_persists_between_instances(tmp_path):
    db_path = str(tmp_path / "cache.db")
    first = ClassificationCache(store=CacheStore(db_path))
    first.warm()
    sig = first.signature("Xero subscription", -65.00)
    first.put(sig, ai_result())

    second = ClassificationCache(store=CacheStore(db_path))
    assert second.warm() == 1
    cached = second.get(sig)
    assert cached is not None
    assert cached.reasoning == "Design software"


def test_store_lookup_on_memory_miss(tmp_path):
    db_path = str(tmp_path / "cache.db")
    store = CacheStore(db_path)
    store.init_db()
    store.upsert_entry(CacheEntry(
        signature="sig|1|",
        result=ai_result(),
        last_updated=datetime.now(timezone.utc),
        usage_count=4,
    ))

    cache = ClassificationCache(store=store)
    assert cache.get("sig|1|") is not None
    assert cache.entry("sig|1|").usage_count == 5

    with sqlite3.connect(db_path) as conn:
        count = conn.execute(
            "SELECT usage_count FROM classification_cache WHERE signature = ?", ("sig|1|",)
        ).fetchone()[0]
    assert count == 5


def test_store_eviction(tmp_path):
    db_path = str(tmp_path / "cache.db")
    store = CacheStore(db_path)
    store.init_db()
    store.upsert_entry(CacheEntry(
        signature="old|1|",
        result=ai_result(),
        last_updated=datetime.now(timezone.utc) - timedelta(days=90),
    ))
    store.delete_older_than(datetime.now(timezone.utc) - timedelta(days=30))
    assert store.load_entries() == []


def test_unavailable_store_degrades_to_memory():
    cache = ClassificationCache(store=BrokenStore())
    assert cache.warm() == 0

    assert cache.get("sig|1|") is None
    assert cache.put("sig|1|", ai_result()) is True
    assert cache.get("sig|1|") is not None
    assert cache.stats()["store_errors"] >= 3


def test_unopenable_database_raises_cache_unavailable(tmp_path):
    store = CacheStore(str(tmp_path / "missing" / "dir" / "cache.db"))
    with pytest.raises(CacheUnavailable):
        store.init_db()


class CountingStore(CacheStore):
    """Store that counts single-entry lookups."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.lookups = 0

    def get_entry(self, signature):
        self.lookups += 1
        return super().get_entry(signature)


def test_warm_cache_skips_store_on_miss(tmp_path):
    store = CountingStore(str(tmp_path / "cache.db"))
    store.init_db()
    store.upsert_entry(CacheEntry(
        signature="sig|1|",
        result=ai_result(),
        last_updated=datetime.now(timezone.utc),
    ))

    cache = ClassificationCache(store=store)
    assert cache.warm() == 1

    assert cache.get("other|2|") is None
    assert cache.get("sig|1|") is not None
    assert store.lookups == 0


def test_cold_cache_reads_store_on_miss(tmp_path):
    store = CountingStore(str(tmp_path / "cache.db"))
    store.init_db()

    cache = ClassificationCache(store=store)
    assert cache.get("other|2|") is None
    assert store.lookups == 1


def test_concurrent_hits_are_all_counted():
    cache = ClassificationCache()
    sig = cache.signature("Adobe CC", -54.99)
    cache.put(sig, ai_result())

    def worker():
        for _ in range(500):
            assert cache.get(sig) is not None

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert cache.entry(sig).usage_count == 4000
    assert cache.stats()["hits"] == 4000
    assert cache.stats()["misses"] == 0


def test_concurrent_puts_and_misses():
    cache = ClassificationCache()

    def worker(n):
        for i in range(200):
            sig = f"item {n}|{i}|"
            assert cache.get(sig) is None
            cache.put(sig, ai_result())

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stats = cache.stats()
    assert stats["size"] == 1600
    assert stats["misses"] == 1600
    assert stats["hits"] == 0
