"""State store tests."""

import pytest

from stepflow.errors import StateStoreError
from stepflow.state import (
    InMemoryStateStore,
    SQLiteStateStore,
    get_state_store,
    merge_record,
)


@pytest.fixture(params=["inmemory", "sqlite"])
def store(request, tmp_path):
    if request.param == "inmemory":
        return InMemoryStateStore()
    return SQLiteStateStore(tmp_path / "state.db")


@pytest.mark.asyncio
async def test_write_then_read_returns_last_value_without_merge(store):
    await store.set("pipelines", "p1", {"status": "fetching", "source": "s1", "recordsFetched": 3})
    await store.set("pipelines", "p1", {"status": "transforming"})

    record = await store.get("pipelines", "p1")
    assert record == {"status": "transforming"}


@pytest.mark.asyncio
async def test_missing_record_returns_none(store):
    assert await store.get("pipelines", "nope") is None


@pytest.mark.asyncio
async def test_namespaces_are_isolated(store):
    await store.set("pipelines", "k", {"a": 1})
    await store.set("campaigns", "k", {"b": 2})

    assert await store.get("pipelines", "k") == {"a": 1}
    assert await store.get("campaigns", "k") == {"b": 2}
    assert await store.items("pipelines") == {"k": {"a": 1}}


@pytest.mark.asyncio
async def test_delete(store):
    await store.set("reports", "report-2026-01-01", {"date": "2026-01-01"})

    assert await store.delete("reports", "report-2026-01-01") is True
    assert await store.delete("reports", "report-2026-01-01") is False
    assert await store.items("reports") == {}


@pytest.mark.asyncio
async def test_merge_record_keeps_existing_fields(store):
    await store.set("campaigns", "c1", {"name": "Launch", "status": "scheduled"})

    merged = await merge_record(store, "campaigns", "c1", {"status": "sending", "sentCount": 0})

    assert merged == {"name": "Launch", "status": "sending", "sentCount": 0}
    assert await store.get("campaigns", "c1") == merged


@pytest.mark.asyncio
async def test_inmemory_store_isolates_caller_mutations():
    store = InMemoryStateStore()
    value = {"nested": {"count": 1}}
    await store.set("ns", "k", value)

    value["nested"]["count"] = 99
    fetched = await store.get("ns", "k")
    fetched["nested"]["count"] = 42

    assert await store.get("ns", "k") == {"nested": {"count": 1}}


@pytest.mark.asyncio
async def test_sqlite_store_survives_reopen(tmp_path):
    db_path = tmp_path / "state.db"
    first = SQLiteStateStore(db_path)
    await first.set("pipelines", "p1", {"status": "completed"})
    first.close()

    second = SQLiteStateStore(db_path)
    assert await second.get("pipelines", "p1") == {"status": "completed"}


@pytest.mark.asyncio
async def test_sqlite_store_rejects_unserializable_records(tmp_path):
    store = SQLiteStateStore(tmp_path / "state.db")

    with pytest.raises(StateStoreError):
        await store.set("ns", "k", {"bad": object()})


@pytest.mark.asyncio
async def test_sqlite_store_surfaces_backend_failures(tmp_path):
    store = SQLiteStateStore(tmp_path / "state.db")
    store.close()

    with pytest.raises(StateStoreError):
        await store.set("ns", "k", {"a": 1})


def test_get_state_store_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("STEPFLOW_STATE_URL", raising=False)
    monkeypatch.setenv("STEPFLOW_CONFIG", str(tmp_path / "missing.yaml"))

    assert isinstance(get_state_store(), InMemoryStateStore)
    assert isinstance(get_state_store(f"sqlite://{tmp_path / 's.db'}"), SQLiteStateStore)
    with pytest.raises(ValueError):
        get_state_store("mysql://localhost/db")
