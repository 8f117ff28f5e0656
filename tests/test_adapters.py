# tests/test_adapters.py

from __future__ import annotations

import json

import pytest

from taskgenie.tasks.adapters import (
    LocalTaskAdapter,
    RemoteTaskAdapter,
    create_task_adapter,
    local_tasks_key,
)
from taskgenie.tasks.kv_store import SqliteKeyValueStore

from .fakes import FakeRemoteTable, InMemoryKeyValueStore, make_task


@pytest.mark.asyncio
async def test_local_fetch_without_blob_is_empty(kv_store: SqliteKeyValueStore) -> None:
    adapter = LocalTaskAdapter(kv_store)
    assert await adapter.fetch_all("nobody") == []


@pytest.mark.asyncio
async def test_local_malformed_blob_is_empty(kv_store: SqliteKeyValueStore) -> None:
    kv_store.set(local_tasks_key("u1"), "{not json")
    assert await LocalTaskAdapter(kv_store).fetch_all("u1") == []

    kv_store.set(local_tasks_key("u1"), json.dumps({"id": "a"}))
    assert await LocalTaskAdapter(kv_store).fetch_all("u1") == []


@pytest.mark.asyncio
async def test_local_replace_all_round_trips(kv_store: SqliteKeyValueStore) -> None:
    adapter = LocalTaskAdapter(kv_store)
    tasks = [make_task(1), make_task(2, task_id="b")]

    await adapter.replace_all("u1", tasks)
    await adapter.replace_all("u1", tasks)

    assert await adapter.fetch_all("u1") == tasks
    assert await adapter.fetch_all("u2") == []


@pytest.mark.asyncio
async def test_local_partial_writes_are_noops() -> None:
    store = InMemoryKeyValueStore()
    adapter = LocalTaskAdapter(store)

    await adapter.upsert_one("u1", make_task(1))
    await adapter.upsert_many("u1", [make_task(2)])
    await adapter.delete_one("t1")
    await adapter.delete_many(["t1"])

    assert store.data == {}


@pytest.mark.asyncio
async def test_local_delete_all_for_user_removes_blob() -> None:
    store = InMemoryKeyValueStore()
    adapter = LocalTaskAdapter(store)
    await adapter.replace_all("u1", [make_task(1)])

    await adapter.delete_all_for_user("u1")

    assert local_tasks_key("u1") not in store.data


@pytest.mark.asyncio
async def test_remote_upsert_is_idempotent_by_id() -> None:
    table = FakeRemoteTable()
    adapter = RemoteTaskAdapter(table)
    task = make_task(1, "Same")

    await adapter.upsert_one("u1", task)
    await adapter.upsert_one("u1", task)

    assert list(table.rows) == ["t1"]
    assert await adapter.fetch_all("u1") == [task]
    assert table.rows["t1"]["user_id"] == "u1"


@pytest.mark.asyncio
async def test_remote_fetch_is_scoped_and_skips_malformed() -> None:
    table = FakeRemoteTable(
        [
            {"id": "a", "title": "mine", "user_id": "u1"},
            {"id": "b", "user_id": "u1"},
            {"id": "c", "title": "theirs", "user_id": "u2"},
        ]
    )

    tasks = await RemoteTaskAdapter(table).fetch_all("u1")

    assert [t.id for t in tasks] == ["a"]


@pytest.mark.asyncio
async def test_remote_replace_all_never_touches_backend() -> None:
    table = FakeRemoteTable()
    await RemoteTaskAdapter(table).replace_all("u1", [make_task(1)])
    assert table.calls == []


def test_factory_picks_variant_from_flag() -> None:
    assert isinstance(create_task_adapter(cloud_enabled=True, table=FakeRemoteTable()), RemoteTaskAdapter)
    assert isinstance(create_task_adapter(cloud_enabled=False, store=InMemoryKeyValueStore()), LocalTaskAdapter)
    with pytest.raises(ValueError):
        create_task_adapter(cloud_enabled=True)
