"""Unit tests for the SQLite hierarchical store."""

import asyncio

import pytest

from src.core.errors import UpstreamError
from src.core.sqlite_store import SQLiteTreeStore
from src.core.store import ABORT, join_path, normalize_value, paths_related


@pytest.mark.unit
class TestPathHelpers:
    def test_join_path_ignores_empty_segments(self):
        assert join_path("lists", "", "/g1/", "l1") == "lists/g1/l1"

    def test_paths_related(self):
        assert paths_related("lists/g1", "lists/g1/l1/items")
        assert paths_related("lists/g1/l1", "lists/g1")
        assert paths_related("lists/g1", "lists/g1")
        assert not paths_related("lists/g1/l1", "lists/g1/l2")
        assert not paths_related("lists/g1", "lists/g10")

    def test_normalize_value(self):
        assert normalize_value({}) is None
        assert normalize_value({"a": None, "b": {}}) is None
        assert normalize_value({"0": "x", "1": "y"}) == ["x", "y"]
        assert normalize_value({"0": "x", "2": "y"}) == {"0": "x", "2": "y"}
        assert normalize_value({"a": [1, {"b": 2}]}) == {"a": [1, {"b": 2}]}


@pytest.mark.unit
class TestReadWrite:
    @pytest.mark.asyncio
    async def test_missing_path_reads_none(self, store):
        assert await store.read_path("groups/nope") is None

    @pytest.mark.asyncio
    async def test_write_and_read_subtree(self, store):
        await store.write_path("lists/g1/l1", {"weekStart": "2025-01-05T00:00:00.000Z", "items": {"a": {"text": "milk"}}})

        assert await store.read_path("lists/g1/l1/weekStart") == "2025-01-05T00:00:00.000Z"
        assert await store.read_path("lists/g1") == {
            "l1": {"weekStart": "2025-01-05T00:00:00.000Z", "items": {"a": {"text": "milk"}}}
        }

    @pytest.mark.asyncio
    async def test_write_overwrites_whole_subtree(self, store):
        await store.write_path("users/u1", {"name": "Alice", "pushToken": "t"})
        await store.write_path("users/u1", {"name": "Alicia"})
        assert await store.read_path("users/u1") == {"name": "Alicia"}

    @pytest.mark.asyncio
    async def test_write_none_deletes(self, store):
        await store.write_path("users/u1", {"name": "Alice"})
        await store.write_path("users/u1", None)
        assert await store.read_path("users/u1") is None

    @pytest.mark.asyncio
    async def test_sibling_prefix_not_deleted(self, store):
        await store.write_path("lists/g1", {"a": 1})
        await store.write_path("lists/g10", {"a": 2})
        await store.write_path("lists/g1", None)
        assert await store.read_path("lists/g10") == {"a": 2}

    @pytest.mark.asyncio
    async def test_scalars_and_falsy_values_round_trip(self, store):
        await store.write_path("items/i1", {"text": "", "checked": False, "count": 0})
        assert await store.read_path("items/i1") == {"text": "", "checked": False, "count": 0}

    @pytest.mark.asyncio
    async def test_lists_read_back_as_lists(self, store):
        await store.write_path("lists/g1/l1/items", [{"id": "a"}, {"id": "b"}])
        assert await store.read_path("lists/g1/l1/items") == [{"id": "a"}, {"id": "b"}]

    @pytest.mark.asyncio
    async def test_patch_leaves_siblings(self, store):
        await store.write_path("items/i1", {"text": "milk", "checked": False})
        await store.patch_path("items/i1", {"checked": True, "quantity": "2"})
        assert await store.read_path("items/i1") == {"text": "milk", "checked": True, "quantity": "2"}

    @pytest.mark.asyncio
    async def test_patch_none_removes_field(self, store):
        await store.write_path("items/i1", {"text": "milk", "quantity": "2"})
        await store.patch_path("items/i1", {"quantity": None})
        assert await store.read_path("items/i1") == {"text": "milk"}

    @pytest.mark.asyncio
    async def test_write_below_scalar_replaces_it(self, store):
        await store.write_path("users/u1", "legacy")
        await store.write_path("users/u1/name", "Alice")
        assert await store.read_path("users/u1") == {"name": "Alice"}

    @pytest.mark.asyncio
    async def test_data_persists_across_connections(self, tmp_path):
        db_path = str(tmp_path / "persist.db")
        first = SQLiteTreeStore(db_path)
        await first.start()
        await first.write_path("groups/g1/name", "Family")
        await first.close()

        second = SQLiteTreeStore(db_path)
        await second.start()
        assert await second.read_path("groups/g1") == {"name": "Family"}
        await second.close()

    @pytest.mark.asyncio
    async def test_unstarted_store_raises_upstream(self, tmp_path):
        unstarted = SQLiteTreeStore(str(tmp_path / "never.db"))
        with pytest.raises(UpstreamError):
            await unstarted.read_path("groups")


@pytest.mark.unit
class TestTransact:
    @pytest.mark.asyncio
    async def test_commit(self, store):
        result = await store.transact("counters/c1", lambda current: (current or 0) + 1)
        assert result.committed
        assert result.value == 1
        assert await store.read_path("counters/c1") == 1

    @pytest.mark.asyncio
    async def test_abort_writes_nothing(self, store):
        await store.write_path("counters/c1", 5)
        result = await store.transact("counters/c1", lambda current: ABORT)
        assert not result.committed
        assert result.value == 5
        assert await store.read_path("counters/c1") == 5

    @pytest.mark.asyncio
    async def test_updater_error_propagates_without_write(self, store):
        def _fail(current):
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await store.transact("counters/c1", _fail)
        assert await store.read_path("counters/c1") is None

    @pytest.mark.asyncio
    async def test_concurrent_increments_all_land(self, store):
        await asyncio.gather(*(store.transact("counters/c1", lambda current: (current or 0) + 1) for _ in range(20)))
        assert await store.read_path("counters/c1") == 20

    @pytest.mark.asyncio
    async def test_conflict_reruns_updater(self, store, monkeypatch):
        original = store._read_unlocked
        calls = []
        reads = {"count": 0}

        async def _read_with_interference(path):
            reads["count"] += 1
            if reads["count"] == 2:
                # A concurrent writer lands between the updater and the commit.
                await store._write_unlocked(path, 100)
            return await original(path)

        monkeypatch.setattr(store, "_read_unlocked", _read_with_interference)

        def _updater(current):
            calls.append(current)
            return (current or 0) + 1

        result = await store.transact("counters/c1", _updater)

        assert calls == [None, 100]
        assert result.committed
        assert result.value == 101

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, tmp_path, monkeypatch):
        limited = SQLiteTreeStore(str(tmp_path / "limited.db"), max_retries=2)
        await limited.start()
        reads = iter(range(1000))

        async def _always_moving(path):
            return next(reads)

        monkeypatch.setattr(limited, "_read_unlocked", _always_moving)
        with pytest.raises(UpstreamError):
            await limited.transact("counters/c1", lambda current: 1)
        await limited.close()


@pytest.mark.unit
class TestWatch:
    @pytest.mark.asyncio
    async def test_initial_snapshot(self, store):
        await store.write_path("lists/g1/l1", {"weekStart": "w"})
        received = []
        handle = await store.watch("lists/g1/l1", received.append)
        assert received == [{"weekStart": "w"}]
        handle.close()

    @pytest.mark.asyncio
    async def test_descendant_write_delivers_full_snapshot(self, store):
        received = []
        handle = await store.watch("lists/g1/l1", received.append)
        await store.write_path("lists/g1/l1/items/a", {"text": "milk"})
        assert received[-1] == {"items": {"a": {"text": "milk"}}}
        handle.close()

    @pytest.mark.asyncio
    async def test_ancestor_write_notifies(self, store):
        received = []
        handle = await store.watch("lists/g1/l1", received.append)
        await store.transact("lists/g1", lambda current: {"l1": {"weekStart": "w"}})
        assert received[-1] == {"weekStart": "w"}
        handle.close()

    @pytest.mark.asyncio
    async def test_unrelated_write_not_delivered(self, store):
        received = []
        handle = await store.watch("lists/g1/l1", received.append)
        await store.write_path("lists/g1/l2", {"weekStart": "w"})
        assert received == [None]
        handle.close()

    @pytest.mark.asyncio
    async def test_aborted_transaction_not_delivered(self, store):
        await store.write_path("lists/g1/l1", {"weekStart": "w"})
        received = []
        handle = await store.watch("lists/g1/l1", received.append)
        await store.transact("lists/g1", lambda current: ABORT)
        assert len(received) == 1
        handle.close()

    @pytest.mark.asyncio
    async def test_closed_watch_receives_nothing(self, store):
        received = []
        handle = await store.watch("lists/g1/l1", received.append)
        handle.close()
        handle.close()
        await store.write_path("lists/g1/l1/weekStart", "w")
        assert received == [None]
        assert store.active_watch_count("lists/g1/l1") == 0

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_fail_write(self, store):
        def _explode(value):
            if value is not None:
                raise RuntimeError("boom")

        handle = await store.watch("lists/g1/l1", _explode)
        await store.write_path("lists/g1/l1/weekStart", "w")
        assert await store.read_path("lists/g1/l1/weekStart") == "w"
        handle.close()

    @pytest.mark.asyncio
    async def test_snapshots_are_independent_copies(self, store):
        first, second = [], []
        h1 = await store.watch("lists/g1", first.append)
        h2 = await store.watch("lists/g1", second.append)
        await store.write_path("lists/g1/l1", {"weekStart": "w"})
        first[-1]["l1"]["weekStart"] = "mutated"
        assert second[-1] == {"l1": {"weekStart": "w"}}
        h1.close()
        h2.close()

    @pytest.mark.asyncio
    async def test_close_store_drops_watches(self, tmp_path):
        closing = SQLiteTreeStore(str(tmp_path / "closing.db"))
        await closing.start()
        await closing.watch("lists/g1", lambda value: None)
        assert closing.active_watch_count() == 1
        await closing.close()
        assert closing.active_watch_count() == 0
