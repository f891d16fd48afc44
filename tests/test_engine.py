"""
Tests for the tiered cache engine (blocking API).
"""

import json
import time

import pytest

from tiercache.engine import CacheStats, PersistentCache
from tiercache.exceptions import CacheIOError, ConfigurationError, SerializationError
from tiercache.models import CacheOptions


class TestConstruction:
    """Tests for engine construction and options."""

    def test_creates_directory_layout(self, tmp_path) -> None:
        cache = PersistentCache(base=tmp_path, name="users")
        assert cache.directory == tmp_path / "cache" / "users"
        assert cache.directory.is_dir()

    def test_default_name_is_cache(self, tmp_path) -> None:
        cache = PersistentCache(base=tmp_path)
        assert cache.directory == tmp_path / "cache" / "cache"

    def test_existing_directory_is_reused(self, tmp_path) -> None:
        PersistentCache(base=tmp_path, name="x").put("k", 1)
        again = PersistentCache(base=tmp_path, name="x")
        assert again.get("k") == 1

    def test_memory_only_creates_no_directory(self, tmp_path) -> None:
        cache = PersistentCache(base=tmp_path, persist=False)
        assert cache.directory is None
        assert not (tmp_path / "cache").exists()

    def test_options_object_with_overrides(self, tmp_path) -> None:
        options = CacheOptions(base=tmp_path, name="a", duration=5)
        cache = PersistentCache(options, name="b")
        assert cache.options.name == "b"
        assert cache.options.duration == 5

    def test_invalid_duration_rejected(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            PersistentCache(base=tmp_path, duration=-1)

    def test_invalid_name_rejected(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            PersistentCache(base=tmp_path, name="../escape")

    def test_directory_creation_failure_is_fatal(self, tmp_path) -> None:
        (tmp_path / "cache").write_text("not a directory")
        with pytest.raises(CacheIOError):
            PersistentCache(base=tmp_path)

    def test_tier_flags(self, memory_cache: PersistentCache, disk_cache: PersistentCache) -> None:
        assert memory_cache.memory_enabled and not memory_cache.persist_enabled
        assert disk_cache.memory_enabled and disk_cache.persist_enabled


class TestPutGet:
    """Round trips and misses."""

    @pytest.mark.parametrize(
        "value",
        [{"x": 1}, [1, 2, 3], "hello", 42, 3.5, True, {"nested": {"list": [None, "a"]}}],
    )
    def test_round_trip(self, disk_cache: PersistentCache, value) -> None:
        disk_cache.put("k", value)
        assert disk_cache.get("k") == value

    def test_get_before_put_is_absent(self, disk_cache: PersistentCache) -> None:
        assert disk_cache.get("never") is None

    def test_integer_keys(self, disk_cache: PersistentCache) -> None:
        disk_cache.put(7, "seven")
        assert disk_cache.get(7) == "seven"

    def test_keys_are_case_sensitive(self, memory_cache: PersistentCache) -> None:
        memory_cache.put("Key", "upper")
        assert memory_cache.get("Key") == "upper"
        assert memory_cache.get("key") is None

    def test_memory_keys_are_type_sensitive(self, memory_cache: PersistentCache) -> None:
        memory_cache.put(1, "int")
        assert memory_cache.get(1) == "int"
        assert memory_cache.get("1") is None

    def test_integer_and_string_key_share_entry_when_persistent(
        self, disk_cache: PersistentCache
    ) -> None:
        disk_cache.put(1, "a")
        disk_cache.put("1", "b")
        assert disk_cache.get(1) == "b"
        assert disk_cache.stats().memory_entries == 1
        assert PersistentCache(base=disk_cache.options.base, name="test").get(1) == "b"

    def test_put_overwrites(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("k", {"a": 1})
        disk_cache.put("k", {"b": 2})
        assert disk_cache.get("k") == {"b": 2}

    def test_memory_read_returns_independent_copy(self, memory_cache: PersistentCache) -> None:
        value = {"items": [1]}
        memory_cache.put("k", value)
        value["items"].append(2)
        first = memory_cache.get("k")
        first["items"].append(3)
        assert memory_cache.get("k") == {"items": [1]}

    def test_unserializable_value_raises(self, disk_cache: PersistentCache) -> None:
        with pytest.raises(SerializationError):
            disk_cache.put("k", object())

    def test_file_format(self, disk_cache: PersistentCache, clock) -> None:
        disk_cache.put("k", {"x": 1})
        stored = json.loads((disk_cache.directory / "k.json").read_text())
        assert stored == {"cacheUntil": None, "data": {"x": 1}}

    def test_file_format_with_ttl(self, ttl_cache: PersistentCache, clock) -> None:
        ttl_cache.put("k", "v")
        stored = json.loads((ttl_cache.directory / "k.json").read_text())
        assert stored["cacheUntil"] == int(clock.now * 1000) + 10_000
        assert stored["data"] == "v"

    def test_no_temp_files_left_behind(self, disk_cache: PersistentCache) -> None:
        for i in range(5):
            disk_cache.put("k", i)
        assert sorted(p.name for p in disk_cache.directory.iterdir()) == ["k.json"]


class TestExpiry:
    """Lazy TTL enforcement."""

    def test_fresh_entry_returned(self, ttl_cache: PersistentCache, clock) -> None:
        ttl_cache.put("a", {"x": 1})
        clock.advance(10)
        assert ttl_cache.get("a") == {"x": 1}

    def test_expired_memory_entry_is_absent(self, ttl_cache: PersistentCache, clock) -> None:
        ttl_cache.put("a", {"x": 1})
        clock.advance(10.001)
        assert ttl_cache.get("a") is None

    def test_expired_entry_stays_in_storage(self, ttl_cache: PersistentCache, clock) -> None:
        ttl_cache.put("a", 1)
        clock.advance(11)
        assert ttl_cache.get("a") is None
        assert (ttl_cache.directory / "a.json").exists()
        assert "a" in ttl_cache.keys()

    def test_expired_disk_entry_is_absent(self, tmp_path, clock) -> None:
        writer = PersistentCache(base=tmp_path, duration=1, clock=clock)
        writer.put("a", 1)
        clock.advance(2)
        reader = PersistentCache(base=tmp_path, duration=1, clock=clock)
        assert reader.get("a") is None
        assert (reader.directory / "a.json").exists()

    def test_expired_memory_entry_does_not_fall_through_to_disk(self, tmp_path, clock) -> None:
        cache = PersistentCache(base=tmp_path, duration=1, clock=clock)
        cache.put("a", 1)
        # Rewrite the file with no expiry behind the engine's back
        (cache.directory / "a.json").write_text(json.dumps({"cacheUntil": None, "data": 2}))
        clock.advance(2)
        assert cache.get("a") is None

    def test_no_ttl_never_expires(self, disk_cache: PersistentCache, clock) -> None:
        disk_cache.put("a", 1)
        clock.advance(10 * 365 * 24 * 3600)
        assert disk_cache.get("a") == 1

    def test_real_clock_expiry(self, tmp_path) -> None:
        cache = PersistentCache(base=tmp_path, duration=1)
        cache.put("a", {"x": 1})
        assert cache.get("a") == {"x": 1}
        time.sleep(2)
        assert cache.get("a") is None


class TestReadFailures:
    """Read failures of any kind surface as a miss."""

    def test_malformed_file_is_miss(self, disk_cache: PersistentCache) -> None:
        (disk_cache.directory / "bad.json").write_text("{not json")
        assert disk_cache.get("bad") is None

    def test_wrong_shape_is_miss(self, disk_cache: PersistentCache) -> None:
        (disk_cache.directory / "list.json").write_text("[1, 2]")
        assert disk_cache.get("list") is None

    def test_empty_file_is_miss(self, disk_cache: PersistentCache) -> None:
        (disk_cache.directory / "empty.json").write_text("")
        assert disk_cache.get("empty") is None

    def test_unmappable_key_is_miss(self, disk_cache: PersistentCache) -> None:
        assert disk_cache.get("a/b") is None

    def test_directory_in_place_of_file_is_miss(self, disk_cache: PersistentCache) -> None:
        (disk_cache.directory / "dir.json").mkdir()
        assert disk_cache.get("dir") is None


class TestDelete:
    """Tests for delete."""

    def test_delete_persistent(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("k", 1)
        disk_cache.delete("k")
        assert disk_cache.get("k") is None
        assert not (disk_cache.directory / "k.json").exists()

    def test_delete_memory_only(self, memory_cache: PersistentCache) -> None:
        memory_cache.put("k", 1)
        memory_cache.delete("k")
        assert memory_cache.get("k") is None

    def test_delete_missing_key_is_not_error(self, disk_cache: PersistentCache) -> None:
        disk_cache.delete("missing")

    def test_delete_removes_both_tiers(self, tmp_path, clock) -> None:
        cache = PersistentCache(base=tmp_path, clock=clock)
        cache.put("k", 1)
        cache.delete("k")
        assert PersistentCache(base=tmp_path).get("k") is None
        assert cache.stats().memory_entries == 0


class TestKeys:
    """Tests for key enumeration."""

    def test_memory_only_keys_keep_type(self, memory_cache: PersistentCache) -> None:
        memory_cache.put(1, "hello")
        assert memory_cache.keys() == [1]

    def test_persistent_keys_come_from_directory(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("a", 1)
        disk_cache.put(2, 2)
        assert sorted(disk_cache.keys()) == ["2", "a"]

    def test_keys_include_expired(self, ttl_cache: PersistentCache, clock) -> None:
        ttl_cache.put("a", 1)
        clock.advance(60)
        assert ttl_cache.keys() == ["a"]

    def test_foreign_files_ignored(self, disk_cache: PersistentCache) -> None:
        (disk_cache.directory / "notes.txt").write_text("x")
        (disk_cache.directory / ".abc.tmp").write_text("x")
        disk_cache.put("a", 1)
        assert disk_cache.keys() == ["a"]

    def test_both_tiers_disabled(self, tmp_path) -> None:
        cache = PersistentCache(base=tmp_path, memory=False, persist=False)
        cache.put("a", 1)
        assert cache.keys() == []
        assert cache.get("a") is None


class TestDeleteWithPrefix:
    """Tests for delete_with_prefix."""

    def _seed(self, cache: PersistentCache) -> None:
        for key in ("user:1", "user:2", "order:1"):
            cache.put(key, key)

    def test_removes_matching_keys(self, disk_cache: PersistentCache) -> None:
        self._seed(disk_cache)
        assert disk_cache.delete_with_prefix("user:") == 2
        assert disk_cache.keys() == ["order:1"]
        assert disk_cache.get("order:1") == "order:1"

    def test_empty_prefix_is_noop(self, disk_cache: PersistentCache) -> None:
        self._seed(disk_cache)
        assert disk_cache.delete_with_prefix("") == 0
        for key in ("user:1", "user:2", "order:1"):
            assert disk_cache.get(key) == key

    def test_matches_only_at_start(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("admin-user:1", 1)
        disk_cache.delete_with_prefix("user:")
        assert disk_cache.get("admin-user:1") == 1

    def test_memory_only_integer_keys(self, memory_cache: PersistentCache) -> None:
        memory_cache.put(10, "a")
        memory_cache.put(11, "b")
        memory_cache.put(20, "c")
        assert memory_cache.delete_with_prefix("1") == 2
        assert memory_cache.keys() == [20]

    def test_integer_keys_removed_from_both_tiers(self, disk_cache: PersistentCache) -> None:
        disk_cache.put(1, "one")
        disk_cache.put("10x", "ten")
        disk_cache.put(2, "two")
        assert disk_cache.delete_with_prefix("1") == 2
        assert disk_cache.keys() == ["2"]
        assert disk_cache.get(1) is None
        assert disk_cache.get("10x") is None
        assert disk_cache.get(2) == "two"

    def test_deleting_every_listed_key_empties_cache(self, disk_cache: PersistentCache) -> None:
        for key in (5, 6, "seven"):
            disk_cache.put(key, str(key))
        for key in disk_cache.keys():
            disk_cache.delete(key)
        assert disk_cache.get(5) is None
        assert disk_cache.get(6) is None
        assert disk_cache.stats().memory_entries == 0


class TestFlush:
    """flush() clears memory-only caches and leaves persistent ones alone."""

    def test_memory_only_flush_clears(self, memory_cache: PersistentCache) -> None:
        memory_cache.put(1, "hello")
        assert memory_cache.keys() == [1]
        memory_cache.flush()
        assert memory_cache.keys() == []
        assert memory_cache.get(1) is None

    def test_persistent_flush_is_noop(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("k", 1)
        disk_cache.flush()
        assert disk_cache.get("k") == 1
        assert disk_cache.keys() == ["k"]


class TestRestart:
    """Durability across engine instances."""

    def test_new_instance_reads_previous_writes(self, tmp_path) -> None:
        first = PersistentCache(base=tmp_path, name="shared")
        first.put("a", {"x": 1})
        first.put("b", [1, 2])

        second = PersistentCache(base=tmp_path, name="shared")
        assert sorted(second.keys()) == ["a", "b"]
        assert second.get("a") == {"x": 1}
        assert second.get("b") == [1, 2]

    def test_memory_only_does_not_survive(self, tmp_path) -> None:
        PersistentCache(base=tmp_path, persist=False).put("a", 1)
        assert PersistentCache(base=tmp_path, persist=False).get("a") is None

    def test_disk_only_engine(self, tmp_path) -> None:
        cache = PersistentCache(base=tmp_path, memory=False)
        cache.put("a", 1)
        assert cache.get("a") == 1
        assert cache.stats().memory_entries == 0


class TestValuesUnlinkCompact:
    """Tests for values, unlink and compact."""

    def test_values(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("a", 1)
        disk_cache.put("b", 2)
        assert sorted(disk_cache.values()) == [1, 2]

    def test_unlink_removes_directory_and_memory(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("a", 1)
        directory = disk_cache.directory
        disk_cache.unlink()
        assert not directory.exists()
        assert disk_cache.stats().memory_entries == 0

    def test_unlink_memory_only(self, memory_cache: PersistentCache) -> None:
        memory_cache.put("a", 1)
        memory_cache.unlink()
        assert memory_cache.keys() == []

    def test_put_after_unlink_fails(self, disk_cache: PersistentCache) -> None:
        disk_cache.unlink()
        with pytest.raises(CacheIOError):
            disk_cache.put("a", 1)

    def test_compact_removes_expired_and_corrupt(self, ttl_cache: PersistentCache, clock) -> None:
        ttl_cache.put("old", 1)
        clock.advance(11)
        ttl_cache.put("new", 2)
        (ttl_cache.directory / "bad.json").write_text("garbage")

        removed = ttl_cache.compact()

        # "old" from memory, "old" and "bad" from disk
        assert removed == 3
        assert ttl_cache.keys() == ["new"]
        assert ttl_cache.get("new") == 2

    def test_compact_nothing_to_do(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("a", 1)
        assert disk_cache.compact() == 0


class TestStats:
    """Tests for lookup statistics."""

    def test_hits_and_misses(self, disk_cache: PersistentCache) -> None:
        disk_cache.put("a", 1)
        disk_cache.get("a")
        disk_cache.get("a")
        disk_cache.get("missing")
        stats = disk_cache.stats()
        assert isinstance(stats, CacheStats)
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3, abs=0.01)
        assert stats.memory_entries == 1

    def test_empty(self, disk_cache: PersistentCache) -> None:
        assert disk_cache.stats().hit_rate == 0.0
