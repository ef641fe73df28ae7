"""Event envelope and per-topic payload contracts."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from . import constants as c


class Event(BaseModel):
    """Envelope handed to the bus. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    topic: str
    data: Dict[str, Any] = Field(default_factory=dict)
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "Event":
        """Deserialize event from JSON."""
        return cls.model_validate_json(data)


class Payload(BaseModel):
    """Base for wire payloads. Fields are snake_case, wire keys camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ----------------------------------------------------------------------
# Data pipeline


class FetchRequest(Payload):
    source: str = Field(min_length=1)
    batch_size: int = Field(ge=0, le=10_000)


class RawRecord(Payload):
    id: int
    value: float
    timestamp: str


class TransformedRecord(RawRecord):
    normalized_value: str
    category: str
    processed_by: str
    transformed_at: str


class InvalidRecord(Payload):
    record: Dict[str, Any]
    reason: str


class ValidationStats(Payload):
    total: int
    valid: int
    invalid: int
    validation_rate: float


class DataFetched(Payload):
    pipeline_id: str
    source: str
    data: List[RawRecord]
    fetched_at: str


class DataTransformed(Payload):
    pipeline_id: str
    source: str
    data: List[TransformedRecord]
    fetched_at: str
    transformed_at: str


class DataValidated(Payload):
    pipeline_id: str
    source: str
    data: List[TransformedRecord]
    invalid_records: List[InvalidRecord]
    fetched_at: str
    transformed_at: str
    validated_at: str
    stats: ValidationStats


class DataValidationFailed(Payload):
    pipeline_id: str
    source: str
    invalid_records: List[InvalidRecord]
    reason: str


class PipelineCompleted(Payload):
    pipeline_id: str
    source: str
    records_stored: int
    stats: ValidationStats
    duration_ms: int
    completed_at: str


# ----------------------------------------------------------------------
# Email campaign


class ScheduleCampaignRequest(Payload):
    campaign_name: str = Field(min_length=1)
    recipients: List[str] = Field(min_length=1)
    subject: str = Field(min_length=1)
    template: str = Field(min_length=1)
    scheduled_for: Optional[str] = None


class CampaignScheduled(Payload):
    campaign_id: str
    campaign_name: str
    subject: str
    template: str
    recipients: List[str]
    scheduled_for: str


class GeneratedContent(Payload):
    subject: str
    body_template: str
    personalization_fields: List[str]
    content_variations: List[str]
    generated_at: str


class ContentGenerated(Payload):
    campaign_id: str
    campaign_name: str
    content: GeneratedContent
    recipients: List[str]
    scheduled_for: str


class EmailSent(Payload):
    campaign_id: str
    recipient: str
    subject: str
    sent_at: str
    status: Literal["delivered"]


class EmailsSent(Payload):
    campaign_id: str
    sent_count: int
    failed_count: int
    total_recipients: int
    success_rate: float
    completed_at: str


# ----------------------------------------------------------------------
# Maintenance


class CleanupResults(Payload):
    pipelines_deleted: int
    storage_records_deleted: int
    reports_deleted: int
    storage_freed_mb: float = Field(alias="storageFreedMB")
    oldest_record_date: str


class CleanupCompleted(Payload):
    cleanup_id: str
    results: CleanupResults
    completed_at: str


class SourceCount(Payload):
    source: str
    count: int


class ReportSummary(Payload):
    total_pipelines: int
    successful_pipelines: int
    failed_pipelines: int
    total_records_processed: int
    average_duration_ms: float


class DailyReport(Payload):
    date: str
    generated_at: str
    summary: ReportSummary
    top_sources: List[SourceCount]


class DailyReportGenerated(Payload):
    report_id: str
    report: DailyReport
    generated_at: str


class HealthMetrics(Payload):
    cpu: float
    memory: float
    disk_space: float
    active_connections: int
    queue_depth: int
    response_time_ms: int


class HealthStatus(Payload):
    status: Literal["healthy", "degraded"]
    metrics: HealthMetrics
    checked_at: str
    alerts: List[str] = Field(default_factory=list)


class HealthCheckAlert(HealthStatus):
    severity: Literal["warning", "critical"]


# ----------------------------------------------------------------------
# Request-trigger responses


class ErrorResponse(Payload):
    error: Literal["validation_error", "internal_error"]
    details: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


class FetchResponse(Payload):
    pipeline_id: str
    status: str
    message: str


class ScheduleCampaignResponse(Payload):
    campaign_id: str
    status: str
    recipient_count: int
    message: str


TOPIC_PAYLOADS: Dict[str, Type[Payload]] = {
    c.TOPIC_DATA_FETCHED: DataFetched,
    c.TOPIC_DATA_TRANSFORMED: DataTransformed,
    c.TOPIC_DATA_VALIDATED: DataValidated,
    c.TOPIC_DATA_VALIDATION_FAILED: DataValidationFailed,
    c.TOPIC_PIPELINE_COMPLETED: PipelineCompleted,
    c.TOPIC_CAMPAIGN_SCHEDULED: CampaignScheduled,
    c.TOPIC_CONTENT_GENERATED: ContentGenerated,
    c.TOPIC_EMAIL_SENT: EmailSent,
    c.TOPIC_EMAILS_SENT: EmailsSent,
    c.TOPIC_CLEANUP_COMPLETED: CleanupCompleted,
    c.TOPIC_DAILY_REPORT_GENERATED: DailyReportGenerated,
    c.TOPIC_HEALTH_CHECK_COMPLETED: HealthStatus,
    c.TOPIC_HEALTH_CHECK_ALERT: HealthCheckAlert,
}
