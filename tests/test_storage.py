"""Tests for key-value stores and the attribution cache."""
from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from warplink.models import MatchType, ResolvedLink
from warplink.storage import AttributionCache, FileStore, MemoryStore


def deferred_link(**overrides) -> ResolvedLink:
    data = {
        "link_id": "abc-123",
        "destination": "https://example.com/42",
        "app_link_url": "myapp://content/42",
        "custom_params": {"promo": "summer", "tier": 2, "tags": ["a", "b"], "meta": {"x": None}},
        "is_deferred": True,
        "match_type": MatchType.PROBABILISTIC,
        "match_confidence": 0.85,
    }
    data.update(overrides)
    return ResolvedLink(**data)


class RecordingStore(MemoryStore):
    """MemoryStore that records the order of writes and removals."""

    def __init__(self) -> None:
        super().__init__()
        self.ops: list[tuple[str, str]] = []
        self.on_change = lambda: None

    def set(self, key, value):
        self.ops.append(("set", key))
        super().set(key, value)
        self.on_change()

    def remove(self, key):
        self.ops.append(("remove", key))
        super().remove(key)
        self.on_change()


# =============================================================================
# Stores
# =============================================================================


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_set_get_remove(self):
        store = MemoryStore()
        store.set("flag", True)
        store.set("blob", b"\x00\x01")

        assert store.get("flag") is True
        assert store.get("blob") == b"\x00\x01"

        store.remove("flag")
        assert store.get("flag") is None

    def test_remove_missing_key(self):
        MemoryStore().remove("missing")


class TestFileStore:
    """Tests for FileStore."""

    def test_persists_across_instances(self, tmp_path: Path):
        path = tmp_path / "state" / "warplink.json"
        FileStore(path).set("name", "value")
        FileStore(path).set("ratio", 0.5)

        store = FileStore(path)
        assert store.get("name") == "value"
        assert store.get("ratio") == 0.5

    def test_bytes_round_trip(self, tmp_path: Path):
        store = FileStore(tmp_path / "state.json")
        store.set("blob", b'{"promo": "summer"}')

        assert FileStore(tmp_path / "state.json").get("blob") == b'{"promo": "summer"}'

    def test_remove(self, tmp_path: Path):
        store = FileStore(tmp_path / "state.json")
        store.set("flag", False)
        store.remove("flag")
        store.remove("never-set")

        assert store.get("flag") is None

    def test_missing_file_is_empty(self, tmp_path: Path):
        store = FileStore(tmp_path / "absent.json")
        assert store.get("anything") is None
        assert not store.path.exists()

    def test_corrupt_file_is_empty(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text("{not json")

        assert FileStore(path).get("anything") is None


# =============================================================================
# First Launch
# =============================================================================


class TestFirstLaunch:
    """Tests for the first-launch latch."""

    def test_true_exactly_once(self, store: MemoryStore):
        cache = AttributionCache(store)

        assert cache.is_first_launch() is True
        assert cache.is_first_launch() is False
        assert cache.is_first_launch() is False

    def test_latch_survives_new_cache_instance(self, store: MemoryStore):
        assert AttributionCache(store).is_first_launch() is True
        assert AttributionCache(store).is_first_launch() is False

    def test_latch_persists_in_file(self, tmp_path: Path):
        path = tmp_path / "state.json"
        assert AttributionCache(FileStore(path)).is_first_launch() is True
        assert AttributionCache(FileStore(path)).is_first_launch() is False

    def test_clear_all_resets_latch(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.is_first_launch()

        cache.clear_all()

        assert cache.is_first_launch() is True

    def test_concurrent_readers_see_one_first_launch(self, store: MemoryStore):
        cache = AttributionCache(store)
        results: list[bool] = []
        barrier = threading.Barrier(16)

        def read():
            barrier.wait()
            results.append(cache.is_first_launch())

        threads = [threading.Thread(target=read) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1


# =============================================================================
# Validation Timestamp
# =============================================================================


class TestValidationFreshness:
    """Tests for the 24h API key validation window."""

    def test_no_timestamp(self, store: MemoryStore):
        cache = AttributionCache(store)
        assert cache.api_key_validated_at is None
        assert cache.is_validation_fresh() is False

    def test_just_validated(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.api_key_validated_at = datetime.now(UTC)
        assert cache.is_validation_fresh() is True

    def test_window_boundaries(self, store: MemoryStore):
        cache = AttributionCache(store)
        validated = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        cache.api_key_validated_at = validated

        assert cache.is_validation_fresh(now=validated + timedelta(hours=23, minutes=59))
        assert not cache.is_validation_fresh(now=validated + timedelta(hours=24))
        assert not cache.is_validation_fresh(now=validated + timedelta(days=3))

    def test_timestamp_round_trip(self, store: MemoryStore):
        cache = AttributionCache(store)
        validated = datetime(2026, 3, 1, 12, 0, 30, tzinfo=UTC)
        cache.api_key_validated_at = validated

        assert cache.api_key_validated_at == validated

    def test_clearing_timestamp(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.api_key_validated_at = datetime.now(UTC)
        cache.api_key_validated_at = None

        assert cache.is_validation_fresh() is False

    def test_clear_all_removes_timestamp(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.api_key_validated_at = datetime.now(UTC)
        cache.clear_all()

        assert cache.api_key_validated_at is None


# =============================================================================
# Cached Attribution
# =============================================================================


class TestCachedAttribution:
    """Tests for the cached attribution record."""

    def test_empty_by_default(self, store: MemoryStore):
        assert AttributionCache(store).cached_attribution is None

    def test_round_trip(self, store: MemoryStore):
        cache = AttributionCache(store)
        link = deferred_link()

        cache.cached_attribution = link

        assert cache.cached_attribution == link

    def test_round_trip_empty_params(self, store: MemoryStore):
        cache = AttributionCache(store)
        link = deferred_link(custom_params={})

        cache.cached_attribution = link

        assert cache.cached_attribution == link
        assert store.get(AttributionCache.CACHED_CUSTOM_PARAMS_KEY) is None

    def test_round_trip_all_optionals_absent(self, store: MemoryStore):
        cache = AttributionCache(store)
        link = ResolvedLink(link_id="abc-123", destination="https://example.com/42", is_deferred=True)

        cache.cached_attribution = link

        restored = cache.cached_attribution
        assert restored == link
        assert restored.app_link_url is None
        assert restored.match_type is None
        assert restored.match_confidence is None
        assert restored.custom_params == {}

    def test_round_trip_through_file(self, tmp_path: Path):
        path = tmp_path / "state.json"
        link = deferred_link()

        AttributionCache(FileStore(path)).cached_attribution = link

        assert AttributionCache(FileStore(path)).cached_attribution == link

    def test_overwrite_clears_stale_optionals(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()

        replacement = deferred_link(
            link_id="def-456", app_link_url=None, match_type=None, match_confidence=None, custom_params={}
        )
        cache.cached_attribution = replacement

        assert cache.cached_attribution == replacement

    def test_set_none_clears_record(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()

        cache.cached_attribution = None

        assert cache.cached_attribution is None
        for key in (AttributionCache.HAS_CACHED_ATTR_KEY, *AttributionCache.RECORD_KEYS):
            assert store.get(key) is None

    def test_presence_flag_written_last_and_removed_first(self):
        store = RecordingStore()
        cache = AttributionCache(store)

        cache.cached_attribution = deferred_link()
        assert store.ops[-1] == ("set", AttributionCache.HAS_CACHED_ATTR_KEY)

        store.ops.clear()
        cache.cached_attribution = deferred_link(link_id="def-456")
        assert store.ops[0] == ("remove", AttributionCache.HAS_CACHED_ATTR_KEY)
        assert store.ops[-1] == ("set", AttributionCache.HAS_CACHED_ATTR_KEY)

        store.ops.clear()
        cache.cached_attribution = None
        assert store.ops[0] == ("remove", AttributionCache.HAS_CACHED_ATTR_KEY)

    def test_overwrite_never_exposes_a_mixed_record(self):
        old = deferred_link(
            link_id="old", destination="https://old", match_confidence=0.5, custom_params={"v": 1}
        )
        new = deferred_link(
            link_id="new", destination="https://new", match_confidence=0.9, custom_params={"v": 2}
        )
        store = RecordingStore()
        cache = AttributionCache(store)
        cache.cached_attribution = old

        seen: list[ResolvedLink | None] = []
        store.on_change = lambda: seen.append(AttributionCache(store).cached_attribution)
        cache.cached_attribution = new

        assert seen[-1] == new
        assert all(record is None for record in seen[:-1])

    @pytest.mark.parametrize(
        "missing", [AttributionCache.CACHED_LINK_ID_KEY, AttributionCache.CACHED_DEST_KEY]
    )
    def test_partial_record_reads_as_absent(self, store: MemoryStore, missing: str):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()
        store.remove(missing)

        assert cache.cached_attribution is None

    def test_fields_without_flag_read_as_absent(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()
        store.remove(AttributionCache.HAS_CACHED_ATTR_KEY)

        assert cache.cached_attribution is None

    def test_corrupt_custom_params_read_as_empty(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()
        store.set(AttributionCache.CACHED_CUSTOM_PARAMS_KEY, b"\xff{not json")

        restored = cache.cached_attribution
        assert restored is not None
        assert restored.custom_params == {}

    def test_non_object_custom_params_read_as_empty(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()
        store.set(AttributionCache.CACHED_CUSTOM_PARAMS_KEY, b"[1, 2, 3]")

        assert cache.cached_attribution.custom_params == {}

    def test_unknown_match_type_reads_as_none(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()
        store.set(AttributionCache.CACHED_MATCH_TYPE_KEY, "fuzzy")

        assert cache.cached_attribution.match_type is None

    def test_invalid_stored_record_reads_as_absent(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()
        store.set(AttributionCache.CACHED_MATCH_CONF_KEY, 7.5)

        assert cache.cached_attribution is None

    def test_clear_all_removes_record(self, store: MemoryStore):
        cache = AttributionCache(store)
        cache.cached_attribution = deferred_link()

        cache.clear_all()

        assert cache.cached_attribution is None
