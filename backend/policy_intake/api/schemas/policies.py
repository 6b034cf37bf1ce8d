"""Policy upload / listing request and response schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from policy_intake.core.constants import BatchStatus, FileState
from policy_intake.pipeline.context import BatchResult, DuplicateEvent, FileProcessingStatus, RecordFailure
from policy_intake.processing.schemas import CanonicalPolicy


class FileStatusResponse(BaseModel):
    """Progress of one submitted file."""

    batch_id: str | None = None
    filename: str
    state: FileState
    progress: int = Field(..., ge=0, le=100)
    message: str
    policies_saved: int = 0

    @classmethod
    def from_status(cls, status: FileProcessingStatus) -> FileStatusResponse:
        return cls(
            batch_id=status.batch_id,
            filename=status.filename,
            state=status.state,
            progress=status.progress,
            message=status.message,
            policies_saved=status.policies_saved,
        )


class DuplicateEventResponse(BaseModel):
    policy_number: str
    existing_policy_id: str
    display_name: str
    source_file: str | None = None

    @classmethod
    def from_event(cls, event: DuplicateEvent) -> DuplicateEventResponse:
        return cls(**event.to_dict())


class RecordFailureResponse(BaseModel):
    index: int
    source_file: str | None
    step_name: str
    error_type: str
    message: str

    @classmethod
    def from_failure(cls, failure: RecordFailure) -> RecordFailureResponse:
        return cls(**failure.to_dict())


class BatchResponse(BaseModel):
    """Result of an inline batch upload."""

    batch_id: str
    status: BatchStatus
    records_received: int
    succeeded: int
    failed: int
    policies: list[CanonicalPolicy]
    files: list[FileStatusResponse]
    duplicates: list[DuplicateEventResponse]
    failures: list[RecordFailureResponse]

    @classmethod
    def from_result(cls, result: BatchResult) -> BatchResponse:
        return cls(
            batch_id=result.batch_id,
            status=result.status,
            records_received=result.records_received,
            succeeded=result.succeeded,
            failed=result.failed,
            policies=result.policies,
            files=[FileStatusResponse.from_status(s) for s in result.file_statuses],
            duplicates=[DuplicateEventResponse.from_event(e) for e in result.duplicates],
            failures=[RecordFailureResponse.from_failure(f) for f in result.failures],
        )


class QueuedBatchResponse(BaseModel):
    """Returned when a batch is handed to the worker queue."""

    message: str
    celery_task_id: str
    files: list[str]


class InstallmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    amount: Decimal | None
    due_date: date | None
    is_paid: bool


class CoverageLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    description: str
    limit_amount: Decimal | None


class PolicyResponse(BaseModel):
    """Stored policy with its children."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: str
    policy_number: str
    policy_number_is_placeholder: bool
    policy_name: str | None
    policy_type: str | None
    category: str | None
    insured_name: str | None
    insurer: str | None
    broker: str | None
    document_number: str | None
    document_kind: str | None
    premium: Decimal | None
    monthly_amount: Decimal | None
    installment_count: int | None
    deductible: Decimal | None
    payment_method: str | None
    start_date: date | None
    expiration_date: date | None
    status: str
    vehicle_brand: str | None
    vehicle_model: str | None
    vehicle_plate: str | None
    vehicle_year: int | None
    confidence: str
    warnings: list[str]
    source_file: str | None
    extracted_at: datetime | None
    created_at: datetime
    updated_at: datetime
    installments: list[InstallmentResponse]
    coverage_lines: list[CoverageLineResponse]
