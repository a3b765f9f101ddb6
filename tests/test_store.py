"""
Unit Tests for the Versioned Document Store
"""

import threading
import time

import pytest

from financing_engine.errors import ConflictError, DependencyError, StoreTimeout, ValidationError
from financing_engine.store import DeadlineStore, DocumentStore, InMemoryDocumentStore


class TestInMemoryDocumentStore:
    """Test optimistic concurrency on the in-memory store."""

    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore()

    def test_create_then_get(self, store):
        created = store.set("wallets", "u1", {"availableBalance": "100"})

        assert created.version == 1
        assert store.get("wallets", "u1").data == {"availableBalance": "100"}

    def test_missing_key_returns_none(self, store):
        assert store.get("wallets", "nobody") is None

    def test_create_only_fails_when_key_exists(self, store):
        store.set("investments", "inv-1", {"amount": "10"})

        with pytest.raises(ConflictError):
            store.set("investments", "inv-1", {"amount": "20"})

    def test_update_with_current_version_bumps_version(self, store):
        store.set("wallets", "u1", {"n": 1})

        updated = store.set("wallets", "u1", {"n": 2}, version=1)

        assert updated.version == 2
        assert store.get("wallets", "u1").data == {"n": 2}

    def test_stale_version_is_rejected_not_overwritten(self, store):
        """Two writers read version 1; only the first write lands."""
        store.set("wallets", "u1", {"n": 0})
        store.set("wallets", "u1", {"n": "first"}, version=1)

        with pytest.raises(ConflictError, match="expected version 1, found 2"):
            store.set("wallets", "u1", {"n": "second"}, version=1)

        assert store.get("wallets", "u1").data == {"n": "first"}

    def test_update_of_missing_record_is_conflict(self, store):
        with pytest.raises(ConflictError):
            store.set("wallets", "ghost", {"n": 1}, version=3)

    def test_returned_data_is_a_copy(self, store):
        store.set("wallets", "u1", {"nested": {"n": 1}})

        store.get("wallets", "u1").data["nested"]["n"] = 99

        assert store.get("wallets", "u1").data["nested"]["n"] == 1

    def test_list_with_predicate(self, store):
        store.set("assignments", "a1", {"assignedTo": "x"})
        store.set("assignments", "a2", {"assignedTo": "y"})

        docs = store.list("assignments", lambda d: d["assignedTo"] == "y")

        assert [d.key for d in docs] == ["a2"]

    def test_delete_requires_version(self, store):
        store.set("investments", "inv-1", {})

        with pytest.raises(ConflictError):
            store.delete("investments", "inv-1", version=5)
        store.delete("investments", "inv-1", version=1)

        assert store.get("investments", "inv-1") is None

    def test_empty_key_rejected(self, store):
        with pytest.raises(ValidationError):
            store.set("wallets", "", {})

    def test_concurrent_writers_on_same_version(self, store):
        """Exactly one of many writers holding the same version wins."""
        store.set("opportunities", "opp", {"n": 0})
        wins, conflicts = [], []
        barrier = threading.Barrier(8)

        def writer(i):
            barrier.wait()
            try:
                store.set("opportunities", "opp", {"n": i}, version=1)
                wins.append(i)
            except ConflictError:
                conflicts.append(i)

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1
        assert len(conflicts) == 7


class _SlowStore(DocumentStore):
    def __init__(self, delay):
        self.delay = delay

    def get(self, collection, key):
        time.sleep(self.delay)
        return None


class _BrokenStore(DocumentStore):
    def get(self, collection, key):
        raise OSError("connection reset")

    def set(self, collection, key, data, version=None):
        raise ConflictError("stale")


class TestDeadlineStore:
    """Test the timeout wrapper."""

    def test_passes_through(self):
        store = DeadlineStore(InMemoryDocumentStore(), timeout_seconds=1)
        store.set("wallets", "u1", {"n": 1})

        assert store.get("wallets", "u1").version == 1
        store.close()

    def test_timeout_becomes_store_timeout(self):
        store = DeadlineStore(_SlowStore(delay=0.5), timeout_seconds=0.05)

        with pytest.raises(StoreTimeout):
            store.get("wallets", "u1")
        store.close()

    def test_store_timeout_is_a_dependency_error(self):
        assert issubclass(StoreTimeout, DependencyError)

    def test_backend_failure_becomes_dependency_error(self):
        store = DeadlineStore(_BrokenStore(), timeout_seconds=1)

        with pytest.raises(DependencyError, match="connection reset"):
            store.get("wallets", "u1")
        store.close()

    def test_conflict_passes_through_unchanged(self):
        store = DeadlineStore(_BrokenStore(), timeout_seconds=1)

        with pytest.raises(ConflictError):
            store.set("wallets", "u1", {}, version=1)
        store.close()
