import pytest

from stepflow.persistence import InMemoryStateStore, SQLiteStateStore


@pytest.fixture(params=["memory", "sqlite"])
def state_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryStateStore()
        return
    store = SQLiteStateStore(tmp_path / "state.db")
    yield store
    store.close()


@pytest.mark.asyncio
async def test_store_crud(state_store):
    assert await state_store.get("workflow-state-a") is None

    await state_store.set("workflow-state-a", '{"n": 1}')
    await state_store.set("workflow-state-a", '{"n": 2}')
    assert await state_store.get("workflow-state-a") == '{"n": 2}'

    await state_store.delete("workflow-state-a")
    assert await state_store.get("workflow-state-a") is None
    # deleting a missing key is not an error
    await state_store.delete("workflow-state-a")


@pytest.mark.asyncio
async def test_store_keys_filter_by_prefix(state_store):
    await state_store.set("workflow-state-b", "{}")
    await state_store.set("workflow-state-a", "{}")
    await state_store.set("other", "{}")

    assert await state_store.keys("workflow-state-") == [
        "workflow-state-a",
        "workflow-state-b",
    ]
    assert await state_store.keys() == ["other", "workflow-state-a", "workflow-state-b"]


@pytest.mark.asyncio
async def test_sqlite_store_survives_reopen(tmp_path):
    path = tmp_path / "state.db"
    store = SQLiteStateStore(path)
    await store.set("workflow-state-a", '{"n": 1}')
    store.close()

    reopened = SQLiteStateStore(path)
    try:
        assert await reopened.get("workflow-state-a") == '{"n": 1}'
    finally:
        reopened.close()
