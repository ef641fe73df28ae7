"""Four-stage data pipeline: fetch, transform, validate, store."""

from __future__ import annotations

import random
from typing import List, Optional, Protocol

from ..constants import (
    FLOW_DATA_PIPELINE,
    NS_PIPELINES,
    NS_STORAGE,
    TOPIC_DATA_FETCHED,
    TOPIC_DATA_TRANSFORMED,
    TOPIC_DATA_VALIDATED,
    TOPIC_DATA_VALIDATION_FAILED,
    TOPIC_PIPELINE_COMPLETED,
)
from ..contracts import (
    DataFetched,
    DataTransformed,
    DataValidated,
    DataValidationFailed,
    ErrorResponse,
    FetchRequest,
    FetchResponse,
    InvalidRecord,
    PipelineCompleted,
    RawRecord,
    TransformedRecord,
    ValidationStats,
)
from ..ids import generate_instance_id
from ..runtime import ApiRequest, ApiResponse, ApiStepConfig, EventStepConfig, StepContext, StepRegistry
from ..utils.time import epoch_millis, parse_iso, utc_now, utc_now_iso

VALID_CATEGORIES = ("high", "low")


class RecordSource(Protocol):
    """Produces the raw records for a pipeline run."""

    async def fetch(self, source: str, count: int) -> List[RawRecord]: ...


class SimulatedRecordSource:
    """Fabricates ``count`` records with random values in ``[0, 100)``."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    async def fetch(self, source: str, count: int) -> List[RawRecord]:
        timestamp = utc_now_iso()
        return [
            RawRecord(id=i + 1, value=self._rng.random() * 100, timestamp=timestamp)
            for i in range(count)
        ]


def transform_record(record: RawRecord, transformed_at: str) -> TransformedRecord:
    return TransformedRecord(
        id=record.id,
        value=record.value,
        timestamp=record.timestamp,
        normalized_value=f"{record.value / 100:.2f}",
        category="high" if record.value > 50 else "low",
        processed_by="TransformData",
        transformed_at=transformed_at,
    )


def is_valid_record(record: TransformedRecord) -> bool:
    return (
        record.id > 0
        and record.value >= 0
        and bool(record.normalized_value)
        and record.category in VALID_CATEGORIES
    )


FETCH_DATA = ApiStepConfig(
    name="FetchData",
    path="/pipeline/fetch",
    method="POST",
    description="Initiates data fetching pipeline - Step 1 of 4",
    emits=[TOPIC_DATA_FETCHED],
    flows=[FLOW_DATA_PIPELINE],
    body_schema=FetchRequest,
    response_schema={200: FetchResponse, 400: ErrorResponse},
)

TRANSFORM_DATA = EventStepConfig(
    name="TransformData",
    description="Transforms fetched data - Step 2 of 4",
    subscribes=[TOPIC_DATA_FETCHED],
    emits=[TOPIC_DATA_TRANSFORMED],
    flows=[FLOW_DATA_PIPELINE],
    input_schema=DataFetched,
)

VALIDATE_DATA = EventStepConfig(
    name="ValidateData",
    description="Validates transformed data - Step 3 of 4",
    subscribes=[TOPIC_DATA_TRANSFORMED],
    emits=[TOPIC_DATA_VALIDATED, TOPIC_DATA_VALIDATION_FAILED],
    flows=[FLOW_DATA_PIPELINE],
    input_schema=DataTransformed,
)

STORE_DATA = EventStepConfig(
    name="StoreData",
    description="Stores validated data - Step 4 of 4 (Final)",
    subscribes=[TOPIC_DATA_VALIDATED],
    emits=[TOPIC_PIPELINE_COMPLETED],
    flows=[FLOW_DATA_PIPELINE],
    input_schema=DataValidated,
)


def register(registry: StepRegistry, record_source: Optional[RecordSource] = None) -> None:
    """Register the four pipeline steps on ``registry``."""
    record_source = record_source or SimulatedRecordSource()

    @registry.step(FETCH_DATA)
    async def fetch_data(request: ApiRequest, ctx: StepContext) -> ApiResponse:
        body: FetchRequest = request.body
        pipeline_id = generate_instance_id("pipeline")
        ctx.logger.info(
            "Starting data fetch pipeline",
            pipeline_id=pipeline_id,
            source=body.source,
            batch_size=body.batch_size,
        )

        records = await record_source.fetch(body.source, body.batch_size)

        await ctx.state.set(
            NS_PIPELINES,
            pipeline_id,
            {
                "status": "fetching",
                "source": body.source,
                "batchSize": body.batch_size,
                "startedAt": utc_now_iso(),
                "recordsFetched": len(records),
            },
        )
        await ctx.emit(
            TOPIC_DATA_FETCHED,
            DataFetched(
                pipeline_id=pipeline_id,
                source=body.source,
                data=records,
                fetched_at=utc_now_iso(),
            ),
        )
        ctx.logger.info("Data fetched successfully", pipeline_id=pipeline_id, record_count=len(records))

        return ApiResponse(
            status=200,
            body=FetchResponse(
                pipeline_id=pipeline_id,
                status="processing",
                message=f"Fetched {len(records)} records from {body.source}",
            ).to_wire(),
        )

    @registry.step(TRANSFORM_DATA)
    async def transform_data(payload: DataFetched, ctx: StepContext) -> None:
        ctx.logger.info(
            "Starting data transformation",
            pipeline_id=payload.pipeline_id,
            record_count=len(payload.data),
        )
        await ctx.state.set(
            NS_PIPELINES,
            payload.pipeline_id,
            {
                "status": "transforming",
                "source": payload.source,
                "recordsFetched": len(payload.data),
                "transformStartedAt": utc_now_iso(),
            },
        )

        transformed_at = utc_now_iso()
        transformed = [transform_record(r, transformed_at) for r in payload.data]
        ctx.logger.info(
            "Data transformation complete",
            pipeline_id=payload.pipeline_id,
            original_count=len(payload.data),
            transformed_count=len(transformed),
        )

        await ctx.emit(
            TOPIC_DATA_TRANSFORMED,
            DataTransformed(
                pipeline_id=payload.pipeline_id,
                source=payload.source,
                data=transformed,
                fetched_at=payload.fetched_at,
                transformed_at=utc_now_iso(),
            ),
        )

    @registry.step(VALIDATE_DATA)
    async def validate_data(payload: DataTransformed, ctx: StepContext) -> None:
        ctx.logger.info(
            "Starting data validation",
            pipeline_id=payload.pipeline_id,
            record_count=len(payload.data),
        )
        await ctx.state.set(
            NS_PIPELINES,
            payload.pipeline_id,
            {
                "status": "validating",
                "source": payload.source,
                "recordsToValidate": len(payload.data),
                "validationStartedAt": utc_now_iso(),
            },
        )

        valid: List[TransformedRecord] = []
        invalid: List[InvalidRecord] = []
        for record in payload.data:
            if is_valid_record(record):
                valid.append(record)
            else:
                invalid.append(InvalidRecord(record=record.to_wire(), reason="Failed validation checks"))

        total = len(payload.data)
        validation_rate = len(valid) / total * 100 if total else 0.0
        ctx.logger.info(
            "Data validation complete",
            pipeline_id=payload.pipeline_id,
            total_records=total,
            valid_records=len(valid),
            invalid_records=len(invalid),
            validation_rate=f"{validation_rate:.2f}%",
        )

        validated_at = utc_now_iso()
        await ctx.state.set(
            NS_PIPELINES,
            payload.pipeline_id,
            {
                "status": "validated",
                "source": payload.source,
                "totalRecords": total,
                "validRecords": len(valid),
                "invalidRecords": len(invalid),
                "validationRate": validation_rate,
                "validatedAt": validated_at,
            },
        )

        if valid:
            await ctx.emit(
                TOPIC_DATA_VALIDATED,
                DataValidated(
                    pipeline_id=payload.pipeline_id,
                    source=payload.source,
                    data=valid,
                    invalid_records=invalid,
                    fetched_at=payload.fetched_at,
                    transformed_at=payload.transformed_at,
                    validated_at=validated_at,
                    stats=ValidationStats(
                        total=total,
                        valid=len(valid),
                        invalid=len(invalid),
                        validation_rate=validation_rate,
                    ),
                ),
            )
        else:
            ctx.logger.warning("All records failed validation", pipeline_id=payload.pipeline_id)
            await ctx.emit(
                TOPIC_DATA_VALIDATION_FAILED,
                DataValidationFailed(
                    pipeline_id=payload.pipeline_id,
                    source=payload.source,
                    invalid_records=invalid,
                    reason="All records failed validation",
                ),
            )

    @registry.step(STORE_DATA)
    async def store_data(payload: DataValidated, ctx: StepContext) -> None:
        ctx.logger.info(
            "Starting data storage",
            pipeline_id=payload.pipeline_id,
            record_count=len(payload.data),
        )

        storage_key = f"stored-data-{payload.pipeline_id}"
        await ctx.state.set(
            NS_STORAGE,
            storage_key,
            {
                "data": [r.to_wire() for r in payload.data],
                "metadata": {
                    "source": payload.source,
                    "recordCount": len(payload.data),
                    "storedAt": utc_now_iso(),
                },
            },
        )

        now = utc_now()
        duration_ms = max(0, epoch_millis(now) - epoch_millis(parse_iso(payload.fetched_at)))
        stored_at = utc_now_iso()
        await ctx.state.set(
            NS_PIPELINES,
            payload.pipeline_id,
            {
                "status": "completed",
                "source": payload.source,
                "stats": payload.stats.to_wire(),
                "invalidRecords": len(payload.invalid_records),
                "storageKey": storage_key,
                "timeline": {
                    "fetchedAt": payload.fetched_at,
                    "transformedAt": payload.transformed_at,
                    "validatedAt": payload.validated_at,
                    "storedAt": stored_at,
                },
                "durationMs": duration_ms,
                "completedAt": stored_at,
            },
        )
        ctx.logger.info(
            "Pipeline completed successfully",
            pipeline_id=payload.pipeline_id,
            records_stored=len(payload.data),
            duration_ms=duration_ms,
            duration_seconds=f"{duration_ms / 1000:.2f}",
        )

        await ctx.emit(
            TOPIC_PIPELINE_COMPLETED,
            PipelineCompleted(
                pipeline_id=payload.pipeline_id,
                source=payload.source,
                records_stored=len(payload.data),
                stats=payload.stats,
                duration_ms=duration_ms,
                completed_at=utc_now_iso(),
            ),
        )
