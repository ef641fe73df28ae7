"""Scheduled maintenance jobs run against a seeded store and a fixed clock."""

from datetime import datetime, timedelta, timezone

import pytest

from stepflow.config import MaintenanceConfig, StepflowConfig
from stepflow.ids import generate_instance_id
from stepflow.utils.time import epoch_millis
from tests.fixtures.fakes import EventRecorder, FixedMetricsSource, make_runtime

NOW = datetime(2026, 1, 4, 9, 0, tzinfo=timezone.utc)

MAINTENANCE_TOPICS = (
    "cleanup-completed",
    "daily-report-generated",
    "health-check-completed",
    "health-check-alert",
)


async def maintenance_runtime(**kwargs):
    kwargs.setdefault("clock", lambda: NOW)
    registry = make_runtime(**kwargs)
    recorder = await EventRecorder().attach(registry.bus, *MAINTENANCE_TOPICS)
    return registry, recorder


@pytest.mark.asyncio
async def test_cleanup_removes_records_past_retention():
    registry, recorder = await maintenance_runtime()
    state = registry.state
    old_id = generate_instance_id("pipeline", NOW - timedelta(days=40))
    fresh_id = generate_instance_id("pipeline", NOW - timedelta(days=2))
    await state.set("pipelines", old_id, {"status": "completed"})
    await state.set("pipelines", fresh_id, {"status": "completed"})
    await state.set("pipelines", "legacy", {"status": "completed"})
    await state.set("storage", f"stored-data-{old_id}", {"data": [1, 2, 3]})
    await state.set("storage", f"stored-data-{fresh_id}", {"data": [4]})
    await state.set("reports", "report-2025-11-01", {"date": "2025-11-01"})
    await state.set("reports", "report-2026-01-03", {"date": "2026-01-03"})

    await registry.run_cron("CleanupOldData")
    await registry.bus.drain()

    assert set(await state.items("pipelines")) == {fresh_id, "legacy"}
    assert set(await state.items("storage")) == {f"stored-data-{fresh_id}"}
    assert set(await state.items("reports")) == {"report-2026-01-03"}

    log = await state.get("cleanup-logs", "cleanup-2026-01-04")
    assert log["pipelinesDeleted"] == 1
    assert log["storageRecordsDeleted"] == 1
    assert log["reportsDeleted"] == 1
    assert log["oldestRecordDate"] == "2025-12-05T09:00:00.000Z"
    assert log["durationMs"] == 0

    completed = recorder.data("cleanup-completed")[0]
    assert completed["cleanupId"] == "cleanup-2026-01-04"
    assert "storageFreedMB" in completed["results"]


@pytest.mark.asyncio
async def test_cleanup_honours_configured_retention():
    config = StepflowConfig(maintenance=MaintenanceConfig(retention_days=1))
    registry, _ = await maintenance_runtime(config=config)
    two_days = generate_instance_id("pipeline", NOW - timedelta(days=2))
    await registry.state.set("pipelines", two_days, {"status": "completed"})

    await registry.run_cron("CleanupOldData")

    assert await registry.state.items("pipelines") == {}


@pytest.mark.asyncio
async def test_cleanup_on_empty_store():
    registry, recorder = await maintenance_runtime()

    await registry.run_cron("CleanupOldData")
    await registry.bus.drain()

    results = recorder.data("cleanup-completed")[0]["results"]
    assert results["pipelinesDeleted"] == 0
    assert results["storageFreedMB"] == 0


@pytest.mark.asyncio
async def test_daily_report_summarizes_last_day():
    registry, recorder = await maintenance_runtime()
    state = registry.state

    def recent(hours):
        return generate_instance_id("pipeline", NOW - timedelta(hours=hours))

    await state.set(
        "pipelines",
        recent(1),
        {"status": "completed", "source": "a", "stats": {"valid": 4}, "durationMs": 100},
    )
    await state.set(
        "pipelines",
        recent(2),
        {"status": "completed", "source": "a", "stats": {"valid": 6}, "durationMs": 300},
    )
    await state.set("pipelines", recent(3), {"status": "validated", "source": "b", "validRecords": 0})
    await state.set(
        "pipelines",
        recent(48),
        {"status": "completed", "source": "c", "stats": {"valid": 99}, "durationMs": 5},
    )

    await registry.run_cron("DailyReportGenerator")
    await registry.bus.drain()

    report = await state.get("reports", "report-2026-01-04")
    assert report["date"] == "2026-01-04"
    assert report["summary"] == {
        "totalPipelines": 3,
        "successfulPipelines": 2,
        "failedPipelines": 1,
        "totalRecordsProcessed": 10,
        "averageDurationMs": 200.0,
    }
    assert report["topSources"] == [{"source": "a", "count": 2}, {"source": "b", "count": 1}]

    event = recorder.data("daily-report-generated")[0]
    assert event["reportId"] == "report-2026-01-04"


@pytest.mark.asyncio
async def test_daily_report_with_no_pipelines():
    registry, _ = await maintenance_runtime()

    await registry.run_cron("DailyReportGenerator")

    report = await registry.state.get("reports", "report-2026-01-04")
    assert report["summary"]["totalPipelines"] == 0
    assert report["summary"]["averageDurationMs"] == 0
    assert report["topSources"] == []


@pytest.mark.asyncio
async def test_health_check_healthy():
    registry, recorder = await maintenance_runtime()

    await registry.run_cron("SystemHealthCheck")
    await registry.bus.drain()

    assert recorder.topics == ["health-check-completed"]
    record = await registry.state.get("health-checks", f"check-{epoch_millis(NOW)}")
    assert record["status"] == "healthy"
    assert record["alerts"] == []
    assert record["metrics"]["diskSpace"] == 30.0


@pytest.mark.parametrize(
    "overrides, alert_count, severity",
    [
        ({"cpu": 80.0}, 1, "warning"),
        ({"cpu": 95.0, "response_time_ms": 300}, 2, "warning"),
        ({"cpu": 95.0, "memory": 90.0, "disk_space": 95.0}, 3, "critical"),
        ({"cpu": 95.0, "memory": 90.0, "disk_space": 95.0, "response_time_ms": 450}, 4, "critical"),
    ],
)
@pytest.mark.asyncio
async def test_health_check_alerts(overrides, alert_count, severity):
    registry, recorder = await maintenance_runtime(metrics_source=FixedMetricsSource(**overrides))

    await registry.run_cron("SystemHealthCheck")
    await registry.bus.drain()

    assert recorder.topics == ["health-check-alert"]
    alert = recorder.data("health-check-alert")[0]
    assert alert["status"] == "degraded"
    assert len(alert["alerts"]) == alert_count
    assert alert["severity"] == severity

    record = await registry.state.get("health-checks", f"check-{epoch_millis(NOW)}")
    assert record["status"] == "degraded"


@pytest.mark.asyncio
async def test_health_check_just_below_thresholds():
    source = FixedMetricsSource(cpu=79.99, memory=84.99, disk_space=89.99, response_time_ms=299)
    registry, recorder = await maintenance_runtime(metrics_source=source)

    await registry.run_cron("SystemHealthCheck")
    await registry.bus.drain()

    assert recorder.topics == ["health-check-completed"]
