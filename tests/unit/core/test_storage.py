"""
StateStore Unit Tests
=====================

[UNIT] Key-value access and savepoint atomicity of core/storage.py.
"""

import pytest


class TestStateStoreKeyValue:
    """Basic get/put/delete/scan."""

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, store):
        """Unknown keys read as None."""
        assert await store.get("prog", b"nope") is None

    @pytest.mark.asyncio
    async def test_put_get_overwrite(self, store):
        """put() upserts."""
        await store.put("prog", b"k", b"v1")
        assert await store.get("prog", b"k") == b"v1"

        await store.put("prog", b"k", b"v2")
        assert await store.get("prog", b"k") == b"v2"

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, store):
        """Same key in two programs holds two values."""
        await store.put("a", b"k", b"1")
        await store.put("b", b"k", b"2")

        assert await store.get("a", b"k") == b"1"
        assert await store.get("b", b"k") == b"2"

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.put("prog", b"k", b"v")
        await store.delete("prog", b"k")
        assert await store.get("prog", b"k") is None

    @pytest.mark.asyncio
    async def test_scan_prefix(self, store):
        """scan() filters by prefix and orders by key."""
        await store.put("prog", b"bal:b", b"2")
        await store.put("prog", b"bal:a", b"1")
        await store.put("prog", b"other", b"x")

        rows = await store.scan("prog", b"bal:")
        assert rows == [(b"bal:a", b"1"), (b"bal:b", b"2")]

    @pytest.mark.asyncio
    async def test_uninitialized_store_raises(self):
        """Using a store before initialize() is a programming error."""
        from core.storage import StateStore

        store = StateStore(":memory:")
        with pytest.raises(RuntimeError):
            await store.get("prog", b"k")


class TestStateStoreSavepoints:
    """All-or-nothing semantics."""

    @pytest.mark.asyncio
    async def test_release_commits(self, store):
        await store.begin("sp1")
        await store.put("prog", b"k", b"v")
        await store.release("sp1")

        assert await store.get("prog", b"k") == b"v"
        assert store.in_transaction is False

    @pytest.mark.asyncio
    async def test_rollback_discards_writes(self, store):
        """Rollback restores the exact previous snapshot."""
        await store.put("prog", b"keep", b"1")
        before = await store.snapshot()

        await store.begin("sp1")
        await store.put("prog", b"keep", b"changed")
        await store.put("prog", b"new", b"x")
        await store.delete("prog", b"keep")
        await store.rollback("sp1")

        assert await store.snapshot() == before

    @pytest.mark.asyncio
    async def test_nested_rollback_keeps_outer_writes(self, store):
        """Inner rollback only discards inner writes."""
        await store.begin("outer")
        await store.put("prog", b"outer", b"1")

        await store.begin("inner")
        await store.put("prog", b"inner", b"2")
        assert store.depth == 2
        await store.rollback("inner")

        await store.release("outer")

        assert await store.get("prog", b"outer") == b"1"
        assert await store.get("prog", b"inner") is None

    @pytest.mark.asyncio
    async def test_outer_rollback_discards_released_inner(self, store):
        """A released inner savepoint is still undone by the outer rollback."""
        await store.begin("outer")
        await store.begin("inner")
        await store.put("prog", b"k", b"v")
        await store.release("inner")
        await store.rollback("outer")

        assert await store.get("prog", b"k") is None

    @pytest.mark.asyncio
    async def test_release_out_of_order_raises(self, store):
        await store.begin("outer")
        await store.begin("inner")

        with pytest.raises(RuntimeError):
            await store.release("outer")

        await store.release("inner")
        await store.release("outer")

    @pytest.mark.asyncio
    async def test_file_database_persists(self, temp_dir):
        """Committed state survives reopening a file database."""
        from core.storage import StateStore

        db_path = str(temp_dir / "state" / "custodia.db")

        first = StateStore(db_path)
        await first.initialize()
        await first.begin("sp1")
        await first.put("prog", b"k", b"v")
        await first.release("sp1")
        await first.close()

        second = StateStore(db_path)
        await second.initialize()
        assert await second.get("prog", b"k") == b"v"
        await second.close()
