"""Shared constants and enums used across the application."""

from enum import StrEnum


class PolicyStatus(StrEnum):
    """Lifecycle status derived from a policy's validity dates."""

    CURRENT = "current"
    EXPIRING = "expiring"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"


class FileState(StrEnum):
    """Lifecycle of one submitted file within a batch run."""

    QUEUED = "queued"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FileState.COMPLETED, FileState.FAILED)


class StepStatus(StrEnum):
    """Status of an individual record step."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class RecordShape(StrEnum):
    """Known layouts of a record returned by the extraction service."""

    FLAT = "flat"
    STRUCTURED = "structured"
    UNRECOGNIZED = "unrecognized"


class Confidence(StrEnum):
    """How much the normalizer trusts a canonical policy."""

    HIGH = "high"
    LOW = "low"


class DocumentKind(StrEnum):
    """Brazilian taxpayer document types."""

    CPF = "CPF"
    CNPJ = "CNPJ"


class BatchStatus(StrEnum):
    """Overall status of a batch run."""

    COMPLETED = "COMPLETED"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"
    FAILED = "FAILED"
