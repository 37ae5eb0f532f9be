# tests/test_supabase_store.py

"""
Tests for the Supabase store's request shapes and error mapping,
using a recording stand-in for the Supabase client.
"""

import asyncio
import pytest
from postgrest.exceptions import APIError

from cardrecon.errors import ConflictError, NotFoundError, PersistenceError
from cardrecon.store import SupabaseStore

from conftest import USER_ID


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeRequest:
    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error

    def execute(self):
        if self.error:
            raise self.error
        return FakeResponse(self.data)


class RecordingClient:
    """Records RPC calls and answers each with a canned request."""

    def __init__(self, request: FakeRequest):
        self.request = request
        self.calls = []

    def rpc(self, name, params):
        self.calls.append((name, params))
        return self.request

    def table(self, name):
        raise AssertionError(f"unexpected table query on {name}")


# ============================================
# Fingerprint Lookup Tests
# ============================================

class TestExistingFingerprints:

    def test_single_rpc_for_large_batch(self):
        hashes = [f"hash-{i}" for i in range(1000)]
        client = RecordingClient(FakeRequest(data=[{"hash": "hash-1"}, {"hash": "hash-7"}]))

        found = asyncio.run(SupabaseStore(client).existing_fingerprints(USER_ID, hashes + hashes[:5]))

        assert found == {"hash-1", "hash-7"}
        assert len(client.calls) == 1
        name, params = client.calls[0]
        assert name == "existing_fingerprints"
        assert params["p_user_id"] == USER_ID
        assert len(params["p_hashes"]) == 1000

    def test_empty_batch_skips_database(self):
        client = RecordingClient(FakeRequest(data=[]))

        assert asyncio.run(SupabaseStore(client).existing_fingerprints(USER_ID, [])) == set()
        assert client.calls == []


# ============================================
# Error Mapping Tests
# ============================================

class TestErrorMapping:

    def run_delete(self, error):
        store = SupabaseStore(RecordingClient(FakeRequest(error=error)))
        return asyncio.run(store.delete_match(USER_ID, "m-1", 1))

    def test_conflict_signal(self):
        with pytest.raises(ConflictError):
            self.run_delete(APIError({"message": "match_conflict: match m-1 changed", "code": "P0001"}))

    def test_unique_violation(self):
        with pytest.raises(ConflictError):
            self.run_delete(APIError({"message": "duplicate key value", "code": "23505"}))

    def test_not_found_signal(self):
        with pytest.raises(NotFoundError):
            self.run_delete(APIError({"message": "match_not_found: m-1", "code": "P0001"}))

    def test_other_database_error(self):
        with pytest.raises(PersistenceError):
            self.run_delete(APIError({"message": "relation does not exist", "code": "42P01"}))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
