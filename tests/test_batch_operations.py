"""
Tests for bulk lookups and atomic batch writes.
"""

import math

import pytest

from userstore.core.exceptions import DocumentNotFoundError
from userstore.models.user import Presence
from userstore.repositories.user_repository import UserRepository
from userstore.utils.batching import chunked, unique

from tests.conftest import FIXED_NOW


def test_chunked_splits_into_bounded_chunks():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 10) == []


def test_chunked_rejects_zero_size():
    with pytest.raises(ValueError):
        chunked([1], 0)


def test_unique_keeps_first_occurrence_order():
    assert unique(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


# ==================== get_users ====================

@pytest.mark.asyncio
async def test_get_users_empty_input_makes_no_store_call(repository, store):
    result = await repository.get_users([])

    assert result.is_success
    assert result.value == []
    assert sum(store.calls.values()) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [1, 10, 11, 25])
async def test_get_users_issues_one_query_per_chunk(repository, store, make_user, count):
    ids = [f"user{index:02d}" for index in range(count)]
    for user_id in ids:
        await repository.create_user(make_user(user_id))
    store.calls.clear()

    result = await repository.get_users(ids)

    assert store.calls["query"] == math.ceil(count / 10)
    returned = [user.user_id for user in result.value]
    assert sorted(returned) == ids
    assert len(returned) == len(set(returned))


@pytest.mark.asyncio
async def test_get_users_skips_missing_and_repeated_ids(repository, store, seeded):
    store.calls.clear()

    result = await repository.get_users(["alice", "ghost", "alice", "bob"])

    assert sorted(user.user_id for user in result.value) == ["alice", "bob"]
    assert store.calls["query"] == 1


@pytest.mark.asyncio
async def test_get_users_honours_custom_chunk_size(store, make_user):
    repository = UserRepository(store, chunk_size=3)
    for index in range(7):
        await repository.create_user(make_user(f"u{index}"))
    store.calls.clear()

    result = await repository.get_users([f"u{index}" for index in range(7)])

    assert len(result.value) == 7
    assert store.calls["query"] == 3


# ==================== delete_users ====================

@pytest.mark.asyncio
async def test_delete_users_removes_all(repository, store, seeded):
    result = await repository.delete_users(["alice", "bob"])

    assert result.is_success
    assert await store.get("alice") is None
    assert await store.get("bob") is None
    assert await store.get("carol") is not None
    assert store.calls["commit_batch"] == 1


@pytest.mark.asyncio
async def test_delete_users_empty_input_skips_commit(repository, store):
    assert (await repository.delete_users([])).is_success
    assert store.calls["commit_batch"] == 0


@pytest.mark.asyncio
async def test_delete_users_is_all_or_nothing(repository, store, seeded):
    store.fail_on("bob", RuntimeError("commit aborted"))

    result = await repository.delete_users(["alice", "bob", "carol"])

    assert result.is_failure
    assert isinstance(result.error.cause, RuntimeError)
    for user_id in ["alice", "bob", "carol"]:
        assert await store.get(user_id) is not None


# ==================== batch_update_presence ====================

@pytest.mark.asyncio
async def test_batch_update_presence_shares_timestamp(repository, store, seeded):
    result = await repository.batch_update_presence({
        "alice": Presence.OFFLINE,
        "bob": Presence.ONLINE,
    })

    assert result.is_success
    alice = await store.get("alice")
    bob = await store.get("bob")
    assert alice["presence"] == "OFFLINE"
    assert bob["presence"] == "ONLINE"
    assert alice["last_active"] == bob["last_active"]
    assert alice["updated_at"] == bob["updated_at"] == FIXED_NOW
    assert store.calls["commit_batch"] == 1


@pytest.mark.asyncio
async def test_batch_update_presence_with_missing_user_changes_nothing(repository, store, seeded):
    result = await repository.batch_update_presence({
        "bob": Presence.ONLINE,
        "ghost": Presence.ONLINE,
    })

    assert result.is_failure
    assert isinstance(result.error.cause, DocumentNotFoundError)
    assert (await store.get("bob"))["presence"] == "OFFLINE"


@pytest.mark.asyncio
async def test_batch_update_presence_rejects_unknown_presence(repository, store, seeded):
    result = await repository.batch_update_presence({"bob": "BUSY"})

    assert result.is_failure
    assert store.calls["commit_batch"] == 0
