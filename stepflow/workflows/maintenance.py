"""Cron-triggered maintenance jobs: cleanup, daily report, health check."""

from __future__ import annotations

import json
import random
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from ..config import MaintenanceConfig
from ..constants import (
    FLOW_SCHEDULED_TASKS,
    NS_CLEANUP_LOGS,
    NS_HEALTH_CHECKS,
    NS_PIPELINES,
    NS_REPORTS,
    NS_STORAGE,
    TOPIC_CLEANUP_COMPLETED,
    TOPIC_DAILY_REPORT_GENERATED,
    TOPIC_HEALTH_CHECK_ALERT,
    TOPIC_HEALTH_CHECK_COMPLETED,
)
from ..contracts import (
    CleanupCompleted,
    CleanupResults,
    DailyReport,
    DailyReportGenerated,
    HealthCheckAlert,
    HealthMetrics,
    HealthStatus,
    ReportSummary,
    SourceCount,
)
from ..ids import instance_timestamp
from ..runtime import CronStepConfig, StepContext, StepRegistry
from ..state import StateStore
from ..utils.time import epoch_millis, isoformat, utc_now

Clock = Callable[[], datetime]

# metric -> (threshold, alert message); reaching the threshold raises the alert
HEALTH_THRESHOLDS = {
    "cpu": (80.0, "High CPU usage detected"),
    "memory": (85.0, "High memory usage detected"),
    "disk_space": (90.0, "Low disk space"),
    "response_time_ms": (300, "Slow response times"),
}
CRITICAL_ALERT_COUNT = 2


class MetricsSource(Protocol):
    async def collect(self) -> HealthMetrics: ...


class SimulatedMetricsSource:
    """Placeholder metrics with uniformly random readings."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    async def collect(self) -> HealthMetrics:
        rng = self._rng
        return HealthMetrics(
            cpu=rng.random() * 100,
            memory=rng.random() * 100,
            disk_space=rng.random() * 100,
            active_connections=rng.randrange(1000),
            queue_depth=rng.randrange(50),
            response_time_ms=rng.randrange(500),
        )


def evaluate_health(metrics: HealthMetrics) -> List[str]:
    """Return the alert messages for every metric at or above its threshold."""
    alerts = []
    for field, (threshold, message) in HEALTH_THRESHOLDS.items():
        if getattr(metrics, field) >= threshold:
            alerts.append(message)
    return alerts


def report_date(key: str) -> Optional[datetime]:
    """Parse the date out of a ``report-YYYY-MM-DD`` key."""
    try:
        day = datetime.strptime(key.removeprefix("report-"), "%Y-%m-%d")
    except ValueError:
        return None
    return day.replace(tzinfo=timezone.utc)


async def purge_older_than(
    store: StateStore,
    namespace: str,
    cutoff: datetime,
    created: Callable[[str], Optional[datetime]],
) -> tuple[int, int]:
    """Delete records whose creation time precedes ``cutoff``.

    Keys whose creation time cannot be determined are kept. Returns the
    number of deleted records and their approximate encoded size in bytes.
    """
    deleted = 0
    freed = 0
    for key, record in (await store.items(namespace)).items():
        created_at = created(key)
        if created_at is None or created_at >= cutoff:
            continue
        if await store.delete(namespace, key):
            deleted += 1
            freed += len(json.dumps(record))
    return deleted, freed


def summarize_pipelines(records: Dict[str, dict]) -> tuple[ReportSummary, List[SourceCount]]:
    successful = [r for r in records.values() if r.get("status") == "completed"]
    failed = [
        r for r in records.values() if r.get("status") == "validated" and not r.get("validRecords")
    ]
    durations = [r.get("durationMs", 0) for r in successful]
    summary = ReportSummary(
        total_pipelines=len(records),
        successful_pipelines=len(successful),
        failed_pipelines=len(failed),
        total_records_processed=sum((r.get("stats") or {}).get("valid", 0) for r in successful),
        average_duration_ms=sum(durations) / len(durations) if durations else 0.0,
    )
    sources = Counter(r["source"] for r in records.values() if r.get("source"))
    top = [SourceCount(source=s, count=n) for s, n in sources.most_common(3)]
    return summary, top


CLEANUP_OLD_DATA = CronStepConfig(
    name="CleanupOldData",
    description="Cleans up old pipeline data and reports older than the retention window",
    cron="0 2 * * 0",
    emits=[TOPIC_CLEANUP_COMPLETED],
    flows=[FLOW_SCHEDULED_TASKS],
)

DAILY_REPORT = CronStepConfig(
    name="DailyReportGenerator",
    description="Generates daily summary report of all pipeline executions",
    cron="0 9 * * *",
    emits=[TOPIC_DAILY_REPORT_GENERATED],
    flows=[FLOW_SCHEDULED_TASKS],
)

HEALTH_CHECK = CronStepConfig(
    name="SystemHealthCheck",
    description="Performs system health checks every 5 minutes",
    cron="*/5 * * * *",
    emits=[TOPIC_HEALTH_CHECK_COMPLETED, TOPIC_HEALTH_CHECK_ALERT],
    flows=[FLOW_SCHEDULED_TASKS],
)


def register(
    registry: StepRegistry,
    settings: Optional[MaintenanceConfig] = None,
    metrics_source: Optional[MetricsSource] = None,
    clock: Clock = utc_now,
) -> None:
    """Register the three scheduled jobs on ``registry``."""
    settings = settings or MaintenanceConfig()
    metrics_source = metrics_source or SimulatedMetricsSource()

    @registry.step(CLEANUP_OLD_DATA)
    async def cleanup_old_data(ctx: StepContext) -> None:
        ctx.logger.info("Starting cleanup job", retention_days=settings.retention_days)
        started = clock()
        cutoff = started - timedelta(days=settings.retention_days)

        pipelines_deleted, pipeline_bytes = await purge_older_than(
            ctx.state, NS_PIPELINES, cutoff, instance_timestamp
        )
        storage_deleted, storage_bytes = await purge_older_than(
            ctx.state, NS_STORAGE, cutoff, instance_timestamp
        )
        reports_deleted, report_bytes = await purge_older_than(ctx.state, NS_REPORTS, cutoff, report_date)

        results = CleanupResults(
            pipelines_deleted=pipelines_deleted,
            storage_records_deleted=storage_deleted,
            reports_deleted=reports_deleted,
            storage_freed_mb=round((pipeline_bytes + storage_bytes + report_bytes) / (1024 * 1024), 2),
            oldest_record_date=isoformat(cutoff),
        )
        finished = clock()
        cleanup_id = f"cleanup-{started.date().isoformat()}"
        await ctx.state.set(
            NS_CLEANUP_LOGS,
            cleanup_id,
            {
                **results.to_wire(),
                "executedAt": isoformat(finished),
                "durationMs": max(0, epoch_millis(finished) - epoch_millis(started)),
            },
        )
        ctx.logger.info(
            "Cleanup completed successfully",
            cleanup_id=cleanup_id,
            pipelines_deleted=pipelines_deleted,
            storage_freed_mb=results.storage_freed_mb,
        )

        await ctx.emit(
            TOPIC_CLEANUP_COMPLETED,
            CleanupCompleted(cleanup_id=cleanup_id, results=results, completed_at=isoformat(clock())),
        )

    @registry.step(DAILY_REPORT)
    async def daily_report(ctx: StepContext) -> None:
        ctx.logger.info("Starting daily report generation")
        now = clock()
        window_start = now - timedelta(days=1)
        date = now.date().isoformat()
        report_id = f"report-{date}"

        recent = {}
        for key, record in (await ctx.state.items(NS_PIPELINES)).items():
            created_at = instance_timestamp(key)
            if created_at is not None and window_start <= created_at <= now:
                recent[key] = record
        summary, top_sources = summarize_pipelines(recent)

        report = DailyReport(
            date=date,
            generated_at=isoformat(now),
            summary=summary,
            top_sources=top_sources,
        )
        await ctx.state.set(NS_REPORTS, report_id, report.to_wire())
        ctx.logger.info(
            "Daily report generated successfully",
            report_id=report_id,
            total_pipelines=summary.total_pipelines,
        )

        await ctx.emit(
            TOPIC_DAILY_REPORT_GENERATED,
            DailyReportGenerated(report_id=report_id, report=report, generated_at=report.generated_at),
        )

    @registry.step(HEALTH_CHECK)
    async def health_check(ctx: StepContext) -> None:
        ctx.logger.info("Running system health check")
        now = clock()
        metrics = await metrics_source.collect()
        alerts = evaluate_health(metrics)
        status = HealthStatus(
            status="degraded" if alerts else "healthy",
            metrics=metrics,
            checked_at=isoformat(now),
            alerts=alerts,
        )

        await ctx.state.set(NS_HEALTH_CHECKS, f"check-{epoch_millis(now)}", status.to_wire())
        ctx.logger.info("Health check completed", status=status.status, alert_count=len(alerts))

        if not alerts:
            await ctx.emit(TOPIC_HEALTH_CHECK_COMPLETED, status)
            return

        severity = "critical" if len(alerts) > CRITICAL_ALERT_COUNT else "warning"
        await ctx.emit(
            TOPIC_HEALTH_CHECK_ALERT,
            HealthCheckAlert(**status.model_dump(), severity=severity),
        )
        ctx.logger.warning("System health degraded", alerts=alerts, severity=severity)
