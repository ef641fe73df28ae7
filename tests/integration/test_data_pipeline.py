"""End-to-end and per-stage tests for the data pipeline."""

import pytest

from stepflow.bus import InMemoryEventBus
from stepflow.contracts import Event, RawRecord
from stepflow.runtime import StepRegistry
from stepflow.workflows import data_pipeline
from stepflow.workflows.data_pipeline import transform_record
from tests.fixtures.fakes import EventRecorder, RecordingStateStore, make_runtime

ALL_TOPICS = (
    "data-fetched",
    "data-transformed",
    "data-validated",
    "data-validation-failed",
    "pipeline-completed",
)


async def unbound_pipeline():
    """Pipeline steps registered but not subscribed, so stages run one at a time."""
    registry = StepRegistry(InMemoryEventBus(), RecordingStateStore())
    data_pipeline.register(registry)
    recorder = await EventRecorder().attach(registry.bus, *ALL_TOPICS)
    return registry, recorder


def transformed_event(records, pipeline_id="pipeline-1767225600000-abc"):
    stamp = "2026-01-01T00:00:00.000Z"
    return Event(
        topic="data-transformed",
        data={
            "pipelineId": pipeline_id,
            "source": "s1",
            "data": records,
            "fetchedAt": stamp,
            "transformedAt": stamp,
        },
    )


def make_records(values, ids=None):
    ids = ids or range(1, len(values) + 1)
    return [
        transform_record(
            RawRecord(id=i, value=v, timestamp="2026-01-01T00:00:00.000Z"),
            "2026-01-01T00:00:01.000Z",
        ).to_wire()
        for i, v in zip(ids, values)
    ]


@pytest.mark.asyncio
async def test_fetch_stage_produces_requested_records():
    registry, recorder = await unbound_pipeline()

    response = await registry.invoke_api("FetchData", {"source": "s1", "batchSize": 3})
    await registry.bus.drain()

    assert response.status == 200
    pipeline_id = response.body["pipelineId"]
    record = await registry.state.get("pipelines", pipeline_id)
    assert record["status"] == "fetching"
    assert record["recordsFetched"] == 3
    assert record["source"] == "s1"

    assert recorder.topics == ["data-fetched"]
    event = recorder.data("data-fetched")[0]
    assert event["pipelineId"] == pipeline_id
    assert [r["id"] for r in event["data"]] == [1, 2, 3]


@pytest.mark.asyncio
async def test_transform_stage_normalizes_and_categorizes():
    registry, recorder = await unbound_pipeline()
    event = Event(
        topic="data-fetched",
        data={
            "pipelineId": "pipeline-1767225600000-abc",
            "source": "s1",
            "data": [
                {"id": 1, "value": 72.456, "timestamp": "2026-01-01T00:00:00.000Z"},
                {"id": 2, "value": 50.0, "timestamp": "2026-01-01T00:00:00.000Z"},
            ],
            "fetchedAt": "2026-01-01T00:00:00.000Z",
        },
    )

    assert await registry.deliver("TransformData", event)
    await registry.bus.drain()

    records = recorder.data("data-transformed")[0]["data"]
    assert [r["normalizedValue"] for r in records] == ["0.72", "0.50"]
    assert [r["category"] for r in records] == ["high", "low"]
    assert {r["processedBy"] for r in records} == {"TransformData"}
    state = await registry.state.get("pipelines", "pipeline-1767225600000-abc")
    assert state["status"] == "transforming"
    assert state["recordsFetched"] == 2


@pytest.mark.asyncio
async def test_validate_stage_all_valid():
    registry, recorder = await unbound_pipeline()

    await registry.deliver("ValidateData", transformed_event(make_records([10, 20, 60, 70, 99])))
    await registry.bus.drain()

    assert recorder.topics == ["data-validated"]
    payload = recorder.data("data-validated")[0]
    assert payload["stats"] == {"total": 5, "valid": 5, "invalid": 0, "validationRate": 100}
    assert payload["invalidRecords"] == []


@pytest.mark.asyncio
async def test_validate_stage_no_valid_records():
    registry, recorder = await unbound_pipeline()
    records = make_records([10, 20, 30], ids=[0, -1, -2])

    await registry.deliver("ValidateData", transformed_event(records))
    await registry.bus.drain()

    assert recorder.topics == ["data-validation-failed"]
    payload = recorder.data("data-validation-failed")[0]
    assert payload["reason"] == "All records failed validation"
    assert len(payload["invalidRecords"]) == 3
    state = await registry.state.get("pipelines", "pipeline-1767225600000-abc")
    assert state["status"] == "validated"
    assert state["validRecords"] == 0


@pytest.mark.asyncio
async def test_validate_stage_partial():
    registry, recorder = await unbound_pipeline()
    records = make_records([10, 20, 30, 40], ids=[1, 2, 3, 0])

    await registry.deliver("ValidateData", transformed_event(records))
    await registry.bus.drain()

    payload = recorder.data("data-validated")[0]
    assert payload["stats"] == {"total": 4, "valid": 3, "invalid": 1, "validationRate": 75}
    assert payload["invalidRecords"][0]["reason"] == "Failed validation checks"


@pytest.mark.asyncio
async def test_validate_stage_empty_batch_fails_without_division_error():
    registry, recorder = await unbound_pipeline()

    await registry.deliver("ValidateData", transformed_event([]))
    await registry.bus.drain()

    assert recorder.topics == ["data-validation-failed"]
    state = await registry.state.get("pipelines", "pipeline-1767225600000-abc")
    assert state["validationRate"] == 0


@pytest.mark.asyncio
async def test_malformed_event_never_reaches_stage():
    registry, recorder = await unbound_pipeline()
    bad = transformed_event([{"id": "not-a-number"}])

    assert await registry.deliver("ValidateData", bad) is False
    await registry.bus.drain()

    assert recorder.events == []
    assert registry.state.writes == []


@pytest.mark.asyncio
async def test_full_pipeline_run():
    registry = make_runtime()
    recorder = await EventRecorder().attach(registry.bus, *ALL_TOPICS)
    await registry.bind()

    response = await registry.invoke_api("FetchData", {"source": "api.example.com", "batchSize": 4})
    await registry.bus.drain()

    pipeline_id = response.body["pipelineId"]
    assert recorder.topics == [
        "data-fetched",
        "data-transformed",
        "data-validated",
        "pipeline-completed",
    ]
    statuses = [w["status"] for w in registry.state.writes_for("pipelines", pipeline_id)]
    assert statuses == ["fetching", "transforming", "validating", "validated", "completed"]

    final = await registry.state.get("pipelines", pipeline_id)
    assert final["storageKey"] == f"stored-data-{pipeline_id}"
    assert final["stats"]["total"] == 4
    assert set(final["timeline"]) == {"fetchedAt", "transformedAt", "validatedAt", "storedAt"}
    stored = await registry.state.get("storage", f"stored-data-{pipeline_id}")
    assert stored["metadata"]["recordCount"] == 4
    completed = recorder.data("pipeline-completed")[0]
    assert completed["recordsStored"] == 4
    assert completed["durationMs"] >= 0


@pytest.mark.asyncio
async def test_zero_record_fetch_ends_in_validation_failure():
    registry = make_runtime()
    recorder = await EventRecorder().attach(registry.bus, *ALL_TOPICS)
    await registry.bind()

    response = await registry.invoke_api("FetchData", {"source": "s1", "batchSize": 0})
    await registry.bus.drain()

    assert response.status == 200
    assert recorder.topics == ["data-fetched", "data-transformed", "data-validation-failed"]


@pytest.mark.asyncio
async def test_fetch_rejects_bad_body():
    registry, recorder = await unbound_pipeline()

    response = await registry.invoke_api("FetchData", {"source": "s1", "batchSize": -1})

    assert response.status == 400
    assert "batchSize" in response.body["details"]["fieldErrors"]
    assert recorder.events == []
