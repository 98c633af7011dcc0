"""Tests for the run-local existence cache."""

from eml_archive.cache import ExistenceCache

from helpers import MemoryStore


class TestPreload:
    def test_missing_folder_is_empty(self):
        store = MemoryStore()
        cache = ExistenceCache(store)
        cache.preload(["2025/03"])
        assert "2025/03" in cache
        assert cache.folder("2025/03") is None
        assert cache.lookup("2025/03", "x.eml") is None
        assert store.calls["list_files"] == 0

    def test_existing_folder_listed(self):
        store = MemoryStore({"2025/03/a.eml": b"a", "2025/03/b.eml": b"b"})
        cache = ExistenceCache(store)
        cache.preload(["2025/03"])
        assert cache.lookup("2025/03", "a.eml") == ("2025/03", "a.eml")
        assert cache.lookup("2025/03", "c.eml") is None

    def test_each_path_loaded_once(self):
        store = MemoryStore({"2025/03/a.eml": b"a"})
        cache = ExistenceCache(store)
        cache.preload(["2025/03", "2025/03"])
        cache.preload(["2025/03"])
        cache.lookup("2025/03", "a.eml")
        assert store.calls["resolve_folder"] == 1
        assert store.calls["list_files"] == 1
        assert cache.store_queries == 2

    def test_lazy_lookup(self):
        store = MemoryStore({"2024/x.eml": b"x"})
        cache = ExistenceCache(store)
        assert cache.lookup("2024", "x.eml") == ("2024", "x.eml")
        assert len(cache) == 1


class TestRecord:
    def test_record_then_lookup(self):
        store = MemoryStore()
        cache = ExistenceCache(store)
        cache.preload(["2025/03"])
        queries = cache.store_queries
        cache.record("2025/03", "new.eml", "handle")
        assert cache.lookup("2025/03", "new.eml") == "handle"
        assert cache.store_queries == queries

    def test_record_overwrites(self):
        cache = ExistenceCache(MemoryStore({"2025/a.eml": b"a"}))
        cache.record("2025", "a.eml", "new-handle")
        assert cache.lookup("2025", "a.eml") == "new-handle"


class TestEnsureFolder:
    def test_creates_segments(self):
        store = MemoryStore()
        cache = ExistenceCache(store)
        cache.preload(["2025/20250315"])
        folder = cache.ensure_folder("2025/20250315")
        assert folder == "2025/20250315"
        assert "2025/20250315" in store.folders
        assert store.calls["create_folder"] == 2

    def test_reuses_existing_parent(self):
        store = MemoryStore({"2025/01/a.eml": b"a"})
        cache = ExistenceCache(store)
        cache.ensure_folder("2025/03")
        assert store.calls["create_folder"] == 1

    def test_known_folder_no_queries(self):
        store = MemoryStore({"2025/03/a.eml": b"a"})
        cache = ExistenceCache(store)
        cache.preload(["2025/03"])
        queries = cache.store_queries
        assert cache.ensure_folder("2025/03") == "2025/03"
        assert cache.store_queries == queries

    def test_cached_parent_handle_used(self):
        store = MemoryStore()
        cache = ExistenceCache(store)
        cache.preload(["2025", "2025/03"])
        cache.ensure_folder("2025")
        store.calls.clear()
        cache.ensure_folder("2025/03")
        assert store.calls["resolve_folder"] == 1  # only "03" under the known "2025"
        assert cache.folder("2025/03") == "2025/03"
